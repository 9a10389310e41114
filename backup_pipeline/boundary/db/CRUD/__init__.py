"""
CRUD operations for the record store.

Usage:
    from backup_pipeline.boundary.db.CRUD import backup_record_crud

    record = await backup_record_crud.get_by_id(session, job_id)
"""

from backup_pipeline.boundary.db.CRUD.backup_record_crud import (
    BackupRecordCRUD,
    backup_record_crud,
)

__all__ = ["BackupRecordCRUD", "backup_record_crud"]
