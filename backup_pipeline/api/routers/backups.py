"""
Backup API endpoints.

Routes:
    POST /backups                  start a backup, or schedule it when a cron expression is given
    POST /backups/stream           run a backup and stream progress as server-sent events
    GET  /backups                  backup history, newest first
    GET  /backups/{job_id}         one backup record
    POST /backups/{job_id}/cancel  stop a running backup

Dependencies: backup_pipeline.application.services.backup_service, backup_pipeline.models
System role: Backup HTTP API
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from backup_pipeline.api.deps import get_backup_service
from backup_pipeline.application.services.backup_service import BackupService
from backup_pipeline.core.exceptions import (
    InvalidCronSpecError,
    JobNotFoundError,
    UnsupportedKindError,
)
from backup_pipeline.core.progress import ProgressChannel
from backup_pipeline.models.backup import BackupRequest
from backup_pipeline.models.job import JobRecord

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/backups", tags=["backups"])


class BackupAcceptedResponse(BaseModel):
    """Response for a backup started in the background."""

    job_id: UUID
    message: str


class BackupScheduledResponse(BaseModel):
    """Response for a recurring backup registration."""

    identity: str
    message: str


class CancelResponse(BaseModel):
    """Response for an accepted cancellation request."""

    job_id: UUID
    message: str


@router.post(
    "",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=BackupAcceptedResponse | BackupScheduledResponse,
)
async def create_backup(
    request: BackupRequest,
    service: BackupService = Depends(get_backup_service),
) -> BackupAcceptedResponse | BackupScheduledResponse:
    """
    Start a backup now, or register a recurring one.

    Without cronExpression the job record is created before responding and
    the backup runs in the background; poll GET /backups/{job_id} for its
    outcome. With cronExpression any schedule for the same database
    (type, host, name) is replaced.

    Raises:
        HTTPException(400): Unsupported database type, invalid cron expression
            or unusable storage settings
    """
    if request.cron_expression:
        try:
            entry = service.schedule(request)
        except (InvalidCronSpecError, UnsupportedKindError) as e:
            raise HTTPException(status_code=400, detail=e.message)
        return BackupScheduledResponse(
            identity=entry.identity,
            message=f"Backup for {request.db_name} has been successfully scheduled!",
        )

    try:
        runner = await service.start(request)
    except UnsupportedKindError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return BackupAcceptedResponse(
        job_id=runner.job_id,
        message="Backup initiated successfully! Check the job status for progress.",
    )


@router.post("/stream")
async def stream_backup(
    request: BackupRequest,
    service: BackupService = Depends(get_backup_service),
) -> StreamingResponse:
    """
    Run a backup and stream its progress.

    Each frame is "data: {json}\\n\\n" with optional jobId, message and status
    keys. The last frame has status "closed". Disconnecting cancels the
    backup.

    Raises:
        HTTPException(400): Unsupported database type, unusable storage
            settings, or a cron expression (streams cannot be scheduled)
    """
    if request.cron_expression:
        raise HTTPException(status_code=400, detail="Streamed backups cannot be scheduled")

    try:
        runner = await service.start(request, progress=ProgressChannel())
    except UnsupportedKindError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    async def event_stream():
        async for event in service.events(runner):
            yield event.to_sse()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("", response_model=list[JobRecord])
async def list_backups(
    limit: int | None = Query(default=None, ge=1, le=1000),
    service: BackupService = Depends(get_backup_service),
) -> list[JobRecord]:
    """Backup history, newest first."""
    return await service.history(limit=limit)


@router.get("/{job_id}", response_model=JobRecord)
async def get_backup(
    job_id: UUID,
    service: BackupService = Depends(get_backup_service),
) -> JobRecord:
    """
    Get one backup record.

    Raises:
        HTTPException(404): Record not found
    """
    try:
        return await service.get(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post(
    "/{job_id}/cancel",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=CancelResponse,
)
async def cancel_backup(
    job_id: UUID,
    service: BackupService = Depends(get_backup_service),
) -> CancelResponse:
    """
    Stop a running backup.

    The record moves to cancelled unless the backup already finished; read
    it back with GET /backups/{job_id}.

    Raises:
        HTTPException(404): No running backup with this id
    """
    if not service.cancel(job_id):
        raise HTTPException(status_code=404, detail=f"No running backup: {job_id}")
    logger.info("Backup cancellation accepted", extra={"job_id": str(job_id)})
    return CancelResponse(job_id=job_id, message="Cancellation requested")
