"""
Backup record ORM model.

Durable history of backup executions: one row per job from creation to its
terminal state.

Dependencies: sqlalchemy, backup_pipeline.boundary.db.base
System role: Job record persistence
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from backup_pipeline.boundary.db.base import Base, utcnow


class BackupStatus(str, enum.Enum):
    """
    Backup job states.

    QUEUED: Record created, waiting for a free execution slot
    PROCESSING: Dump process running and streaming
    COMPLETED: Artifact uploaded; download_reference populated
    FAILED: Dump or upload failed; error_detail populated
    CANCELLED: Stopped by the requester; error_detail holds the reason
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {BackupStatus.COMPLETED, BackupStatus.FAILED, BackupStatus.CANCELLED}
)


class BackupRecordModel(Base):
    """
    Backup record ORM model.

    Attributes:
        id: UUID v4 primary key (native UUID on PostgreSQL, CHAR(32) on SQLite)
        subject_name: Database name being backed up
        status: Current state enum (QUEUED/PROCESSING/COMPLETED/FAILED/CANCELLED)
        artifact_name: Dump file name, fixed at creation so failure and
                       cancellation paths can still reference the artifact
        completed_at: Set once, on entering a terminal state
        download_reference: Presigned retrieval URL (COMPLETED only)
        error_detail: Diagnostic text (FAILED/CANCELLED only)
        created_at: Job creation timestamp (UTC), orders the history
        updated_at: Last status change (UTC)
    """

    __tablename__ = "backup_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    subject_name: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[BackupStatus] = mapped_column(
        Enum(BackupStatus, native_enum=False),
        nullable=False,
        default=BackupStatus.QUEUED,
    )

    artifact_name: Mapped[str] = mapped_column(String(512), nullable=False)

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    download_reference: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Time-limited presigned download URL",
    )

    error_detail: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Failure or cancellation diagnostic",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
