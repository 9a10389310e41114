"""
Database boundary layer: ORM model, CRUD operations, and connection management.

Exports:
  - Base: Declarative base
  - get_async_engine(), get_async_session_factory(), create_tables(): Connection management
  - BackupRecordModel, BackupStatus: Backup record entity and state enum
  - backup_record_crud: CRUD operation singleton

Dependencies: sqlalchemy, backup_pipeline.configs
System role: Database adapter providing persistent storage for backup history
"""

from backup_pipeline.boundary.db.base import Base
from backup_pipeline.boundary.db.connection import (
    create_tables,
    get_async_engine,
    get_async_session_factory,
)
from backup_pipeline.boundary.db.models.backup_record_model import (
    TERMINAL_STATUSES,
    BackupRecordModel,
    BackupStatus,
)
from backup_pipeline.boundary.db.CRUD import BackupRecordCRUD, backup_record_crud

__all__ = [
    "Base",
    "create_tables",
    "get_async_engine",
    "get_async_session_factory",
    "BackupRecordModel",
    "BackupStatus",
    "TERMINAL_STATUSES",
    "BackupRecordCRUD",
    "backup_record_crud",
]
