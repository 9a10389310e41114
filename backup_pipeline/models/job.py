"""
Job domain models and schemas.

Read model for backup job records.

Dependencies: pydantic
System role: Job record API contracts
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from backup_pipeline.boundary.db.models.backup_record_model import BackupStatus


class JobRecord(BaseModel):
    """
    Snapshot of one backup job.

    Exactly one of download_reference (COMPLETED), error_detail
    (FAILED/CANCELLED) or a non-terminal status holds at any time.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    subject_name: str
    status: BackupStatus
    created_at: datetime
    completed_at: datetime | None = None
    artifact_name: str
    download_reference: str | None = None
    error_detail: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
