"""
Schedule API endpoints.

Routes: GET /schedules, POST /schedules/{identity}/run, DELETE /schedules/{identity}

Dependencies: backup_pipeline.application.services.backup_service
System role: Recurring backup HTTP API
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from backup_pipeline.api.deps import get_backup_service
from backup_pipeline.application.services.backup_service import BackupService

router = APIRouter(prefix="/schedules", tags=["schedules"])


class ScheduleResponse(BaseModel):
    """One live recurring backup."""

    identity: str
    cron_spec: str
    registered_at: datetime
    next_run_time: datetime | None = None


class ScheduleActionResponse(BaseModel):
    """Acknowledgement for a schedule action."""

    identity: str
    message: str


@router.get("", response_model=list[ScheduleResponse])
async def list_schedules(
    service: BackupService = Depends(get_backup_service),
) -> list[ScheduleResponse]:
    """List live schedules ordered by identity."""
    scheduler = service.scheduler
    return [
        ScheduleResponse(
            identity=entry.identity,
            cron_spec=entry.cron_spec,
            registered_at=entry.registered_at,
            next_run_time=scheduler.next_run_time(entry.identity),
        )
        for entry in scheduler.list_entries()
    ]


@router.post(
    "/{identity}/run",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ScheduleActionResponse,
)
async def run_schedule_now(
    identity: str,
    service: BackupService = Depends(get_backup_service),
) -> ScheduleActionResponse:
    """
    Fire one tick of a schedule immediately.

    Raises:
        HTTPException(404): No schedule with this identity
    """
    if not await service.scheduler.trigger(identity):
        raise HTTPException(status_code=404, detail=f"No schedule: {identity}")
    return ScheduleActionResponse(identity=identity, message="Scheduled backup launched")


@router.delete("/{identity}", response_model=ScheduleActionResponse)
async def delete_schedule(
    identity: str,
    service: BackupService = Depends(get_backup_service),
) -> ScheduleActionResponse:
    """
    Stop a recurring backup.

    Raises:
        HTTPException(404): No schedule with this identity
    """
    if not service.unschedule(identity):
        raise HTTPException(status_code=404, detail=f"No schedule: {identity}")
    return ScheduleActionResponse(identity=identity, message="Schedule stopped")
