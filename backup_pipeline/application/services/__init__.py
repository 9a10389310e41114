"""Service orchestrators."""

from .backup_service import BackupService

__all__ = [
    "BackupService",
]
