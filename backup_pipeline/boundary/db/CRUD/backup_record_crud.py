"""
Backup record CRUD operations.

Insert and query helpers for BackupRecordModel. Callers own the session
and the commit; JobRecordStore wraps every cycle in its lock.

Dependencies: sqlalchemy, backup_pipeline.boundary.db.models
System role: Job record persistence operations
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backup_pipeline.boundary.db.models.backup_record_model import (
    BackupRecordModel,
    BackupStatus,
)


class BackupRecordCRUD:
    """CRUD operations for BackupRecordModel."""

    model = BackupRecordModel

    async def create(self, session: AsyncSession, **fields) -> BackupRecordModel:
        """
        Insert a record and load its generated id and timestamps.

        Args:
            session: Async database session
            **fields: Column values (subject_name, artifact_name, status)

        Returns:
            BackupRecordModel: Flushed, refreshed instance (not yet committed)
        """
        record = self.model(**fields)
        session.add(record)
        await session.flush()
        await session.refresh(record)
        return record

    async def get_by_id(self, session: AsyncSession, job_id: UUID) -> BackupRecordModel | None:
        stmt = select(self.model).where(self.model.id == job_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_history(
        self,
        session: AsyncSession,
        limit: int | None = None,
    ) -> Sequence[BackupRecordModel]:
        """
        Retrieve records newest first by creation time.

        Args:
            session: Async database session
            limit: Maximum number of records to return

        Returns:
            Sequence of BackupRecordModels ordered by created_at descending
        """
        stmt = select(self.model).order_by(self.model.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_by_status(
        self,
        session: AsyncSession,
        status: BackupStatus,
    ) -> Sequence[BackupRecordModel]:
        """Records currently in the given status, oldest first."""
        stmt = (
            select(self.model)
            .where(self.model.status == status)
            .order_by(self.model.created_at)
        )
        result = await session.execute(stmt)
        return result.scalars().all()


backup_record_crud = BackupRecordCRUD()
