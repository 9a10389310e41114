"""
Job record state management.

Owns the backup job state machine and serializes every read-modify-write
cycle against the record table.

Dependencies: sqlalchemy, backup_pipeline.boundary.db, backup_pipeline.core.exceptions
System role: Job tracking business logic shared by concurrent executions
"""

import asyncio
import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backup_pipeline.boundary.db.base import utcnow
from backup_pipeline.boundary.db.CRUD.backup_record_crud import backup_record_crud
from backup_pipeline.boundary.db.models.backup_record_model import (
    BackupRecordModel,
    BackupStatus,
)
from backup_pipeline.core.exceptions import InvalidTransitionError, JobNotFoundError
from backup_pipeline.models.job import JobRecord

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[BackupStatus, frozenset[BackupStatus]] = {
    BackupStatus.QUEUED: frozenset({BackupStatus.PROCESSING}),
    BackupStatus.PROCESSING: frozenset(
        {BackupStatus.COMPLETED, BackupStatus.FAILED, BackupStatus.CANCELLED}
    ),
    BackupStatus.COMPLETED: frozenset(),
    BackupStatus.FAILED: frozenset(),
    BackupStatus.CANCELLED: frozenset(),
}


def is_allowed_transition(current: BackupStatus, requested: BackupStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


class JobRecordStore:
    """
    Crash-tolerant persistence of backup job records.

    Each public mutator opens its own session and holds the store lock for
    the whole cycle (load, check, write, commit), so two executions never
    interleave their updates.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """
        Initialize job record store.

        Args:
            session_factory: Async session factory bound to the record database
        """
        self._session_factory = session_factory
        self._lock = asyncio.Lock()

    async def create(
        self,
        subject_name: str,
        artifact_name: str,
        status: BackupStatus = BackupStatus.PROCESSING,
    ) -> JobRecord:
        """
        Create a new job record.

        Args:
            subject_name: Database name being backed up
            artifact_name: Dump file name
            status: Initial status (QUEUED or PROCESSING)

        Returns:
            JobRecord: The stored record

        Raises:
            ValueError: If status is not an initial status
        """
        if status not in (BackupStatus.QUEUED, BackupStatus.PROCESSING):
            raise ValueError(f"Records cannot start in status {status.value}")

        async with self._lock:
            async with self._session_factory() as session:
                model = await backup_record_crud.create(
                    session,
                    subject_name=subject_name,
                    artifact_name=artifact_name,
                    status=status,
                )
                await session.commit()
                record = JobRecord.model_validate(model)

        logger.info(
            "Job record created",
            extra={"job_id": str(record.id), "subject": subject_name, "status": status.value},
        )
        return record

    async def transition(
        self,
        job_id: UUID,
        new_status: BackupStatus,
        *,
        download_reference: str | None = None,
        error_detail: str | None = None,
    ) -> JobRecord:
        """
        Apply one state machine edge with its terminal fields.

        Args:
            job_id: Job UUID
            new_status: Target status
            download_reference: Required for COMPLETED
            error_detail: Required for FAILED and CANCELLED

        Returns:
            JobRecord: Updated record

        Raises:
            JobNotFoundError: If no record has this id
            InvalidTransitionError: If the edge is not legal
            ValueError: If terminal fields do not match the target status
        """
        _check_terminal_fields(new_status, download_reference, error_detail)

        async with self._lock:
            async with self._session_factory() as session:
                model = await self._load(session, job_id)
                record = await self._apply(
                    session, model, new_status, download_reference, error_detail
                )
        return record

    async def cancel(self, job_id: UUID, reason: str) -> bool:
        """
        Move a PROCESSING record to CANCELLED.

        A record that already reached another state is left untouched.

        Args:
            job_id: Job UUID
            reason: Cancellation reason stored as error_detail

        Returns:
            bool: True if the record was cancelled by this call

        Raises:
            JobNotFoundError: If no record has this id
        """
        async with self._lock:
            async with self._session_factory() as session:
                model = await self._load(session, job_id)
                if model.status != BackupStatus.PROCESSING:
                    logger.info(
                        "Cancellation ignored, job already left processing",
                        extra={"job_id": str(job_id), "status": model.status.value},
                    )
                    return False
                await self._apply(session, model, BackupStatus.CANCELLED, None, reason)
        return True

    async def fail_interrupted(self, reason: str) -> int:
        """
        Fail records left non-terminal by a previous process.

        Called once at startup, before any execution starts.

        Args:
            reason: Error detail stored on each record

        Returns:
            int: Number of records failed
        """
        count = 0
        async with self._lock:
            async with self._session_factory() as session:
                for status in (BackupStatus.QUEUED, BackupStatus.PROCESSING):
                    for model in await backup_record_crud.get_by_status(session, status):
                        if model.status == BackupStatus.QUEUED:
                            model.status = BackupStatus.PROCESSING
                        _mark(model, BackupStatus.FAILED, None, reason)
                        count += 1
                await session.commit()
        if count:
            logger.warning("Failed interrupted job records", extra={"count": count})
        return count

    async def get(self, job_id: UUID) -> JobRecord:
        """
        Read one record.

        Raises:
            JobNotFoundError: If no record has this id
        """
        async with self._session_factory() as session:
            model = await self._load(session, job_id)
            return JobRecord.model_validate(model)

    async def list(self, limit: int | None = None) -> list[JobRecord]:
        """
        List records newest first by creation time.

        Args:
            limit: Maximum number of records

        Returns:
            list[JobRecord]: Records ordered by created_at descending
        """
        async with self._session_factory() as session:
            models = await backup_record_crud.get_history(session, limit=limit)
            return [JobRecord.model_validate(model) for model in models]

    async def _load(self, session: AsyncSession, job_id: UUID) -> BackupRecordModel:
        model = await backup_record_crud.get_by_id(session, job_id)
        if model is None:
            raise JobNotFoundError(str(job_id))
        return model

    async def _apply(
        self,
        session: AsyncSession,
        model: BackupRecordModel,
        new_status: BackupStatus,
        download_reference: str | None,
        error_detail: str | None,
    ) -> JobRecord:
        current = model.status
        if not is_allowed_transition(current, new_status):
            raise InvalidTransitionError(str(model.id), current.value, new_status.value)

        _mark(model, new_status, download_reference, error_detail)
        await session.commit()
        await session.refresh(model)

        logger.info(
            "Job record transitioned",
            extra={
                "job_id": str(model.id),
                "from_status": current.value,
                "to_status": new_status.value,
            },
        )
        return JobRecord.model_validate(model)


def _mark(
    model: BackupRecordModel,
    new_status: BackupStatus,
    download_reference: str | None,
    error_detail: str | None,
) -> None:
    model.status = new_status
    if new_status.is_terminal:
        model.completed_at = utcnow()
        model.download_reference = download_reference
        model.error_detail = error_detail


def _check_terminal_fields(
    status: BackupStatus,
    download_reference: str | None,
    error_detail: str | None,
) -> None:
    if status == BackupStatus.COMPLETED:
        if not download_reference or error_detail:
            raise ValueError("completed jobs need a download reference and no error detail")
    elif status in (BackupStatus.FAILED, BackupStatus.CANCELLED):
        if not error_detail or download_reference:
            raise ValueError(f"{status.value} jobs need an error detail and no download reference")
    elif download_reference or error_detail:
        raise ValueError(f"{status.value} jobs cannot carry terminal fields")
