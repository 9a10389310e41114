"""
Dependency injection container.

Factory functions for FastAPI dependencies.

Dependencies: backup_pipeline.configs, backup_pipeline.application, backup_pipeline.boundary
System role: DI container for service injection
"""

from sqlalchemy.ext.asyncio import AsyncEngine

from backup_pipeline.application.services import BackupService
from backup_pipeline.boundary.db import get_async_engine, get_async_session_factory
from backup_pipeline.configs import get_settings


class ServiceCache:
    """Container for process-wide instances, built on first access."""

    def __init__(self) -> None:
        self._engine = None
        self._backup_service = None

    @property
    def engine(self) -> AsyncEngine:
        """Get cached record store engine."""
        if self._engine is None:
            self._engine = get_async_engine()
        return self._engine

    @property
    def backup_service(self) -> BackupService:
        """Get cached backup service."""
        if self._backup_service is None:
            self._backup_service = BackupService.from_settings(
                get_settings(),
                get_async_session_factory(self.engine),
            )
        return self._backup_service

    def clear(self) -> None:
        """Clear all cached instances."""
        self._engine = None
        self._backup_service = None


# Global service cache
_service_cache = ServiceCache()


def get_service_cache() -> ServiceCache:
    """Get service cache singleton."""
    return _service_cache


def get_backup_service() -> BackupService:
    """
    Get backup service instance.

    Returns:
        BackupService: Process-wide backup service
    """
    return get_service_cache().backup_service


def get_engine() -> AsyncEngine:
    """Get the record store engine."""
    return get_service_cache().engine
