"""
SQLAlchemy declarative base for the record store.

Dependencies: sqlalchemy
System role: Metadata registry for backup history tables
"""

from datetime import datetime, timezone

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "pk": "pk_%(table_name)s",
}


def utcnow() -> datetime:
    """Timezone-aware current time; every stored timestamp is UTC."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base; create_tables() creates everything registered here."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
