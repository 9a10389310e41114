"""
Database models package.

Exports:
  - BackupRecordModel, BackupStatus: Backup record ORM model and status enum

Dependencies: sqlalchemy, backup_pipeline.boundary.db.base
System role: Database model definitions for domain entities
"""

from backup_pipeline.boundary.db.models.backup_record_model import (
    TERMINAL_STATUSES,
    BackupRecordModel,
    BackupStatus,
)

__all__ = [
    "BackupRecordModel",
    "BackupStatus",
    "TERMINAL_STATUSES",
]
