"""
Database connection management.

Provides async SQLAlchemy engine and session factory for the record store.

Dependencies: sqlalchemy, backup_pipeline.configs
System role: Database connection lifecycle management
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)

from backup_pipeline.boundary.db.base import Base
from backup_pipeline.configs import get_settings


def get_async_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create async SQLAlchemy engine for the backup history database.

    pool_pre_ping=True verifies connections before use to detect
    stale/broken connections early.

    Args:
        database_url: Override for the configured URL (tests use this)

    Returns:
        AsyncEngine: Configured async SQLAlchemy engine

    Usage:
        engine = get_async_engine()
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
    """
    settings = get_settings()
    store_config = settings.record_store

    return create_async_engine(
        database_url or store_config.database_url,
        echo=store_config.echo_sql,
        pool_pre_ping=True,
    )


def get_async_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """
    Create async session factory for database operations.

    Returns async_sessionmaker bound to engine with autoflush=False for
    explicit transaction control and expire_on_commit=False so records stay
    readable after commit.

    Returns:
        async_sessionmaker: Async session factory configured for manual transaction control

    Usage:
        SessionFactory = get_async_session_factory(engine)
        async with SessionFactory() as session:
            session.add(obj)
            await session.commit()
    """
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all registered tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
