"""
Backup service orchestrator.

Owns the execution pool, the live runners and the recurring schedules.
Routes and the scheduler start backups through this service; they never
build runners themselves.

Dependencies: backup_pipeline.core, backup_pipeline.boundary.aws, backup_pipeline.configs
System role: Backup execution orchestration
"""

import asyncio
import logging
from functools import partial
from typing import AsyncIterator, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backup_pipeline.boundary.aws.s3_client import S3StreamingUploader
from backup_pipeline.configs import Settings
from backup_pipeline.core.backup_runner import (
    DEFAULT_CANCEL_REASON,
    ArtifactUploader,
    BackupRunner,
)
from backup_pipeline.core.dump_commands import DumpCommandResolver
from backup_pipeline.core.exceptions import BackupPipelineException
from backup_pipeline.core.job_record_store import JobRecordStore
from backup_pipeline.core.progress import NullProgressChannel, ProgressChannel
from backup_pipeline.core.scheduler import BackupScheduler, ScheduleEntry
from backup_pipeline.models.backup import BackupRequest, StorageTarget
from backup_pipeline.models.job import JobRecord
from backup_pipeline.models.streaming import ProgressEvent, ProgressStatus

logger = logging.getLogger(__name__)

UploaderFactory = Callable[[StorageTarget], ArtifactUploader]

WATCHDOG_REASON = "Backup cancelled: execution time limit exceeded"
SHUTDOWN_REASON = "Backup cancelled: service shutting down"
DISCONNECT_REASON = "Backup cancelled: client disconnected"


class BackupService:
    """
    Backup service orchestrator.

    Starts executions in background tasks bounded by a shared semaphore,
    tracks live runners by job id for explicit cancellation, and registers
    recurring schedules.
    """

    def __init__(
        self,
        *,
        resolver: DumpCommandResolver,
        store: JobRecordStore,
        uploader_factory: UploaderFactory,
        work_dir: str = "/tmp",
        max_concurrent_backups: int = 4,
        execution_timeout_seconds: float | None = None,
        read_chunk_size: int = 64 * 1024,
        stream_queue_depth: int = 16,
        stderr_tail_lines: int = 20,
        scheduler_timezone: str = "UTC",
        misfire_grace_time: int = 60,
    ) -> None:
        """
        Initialize backup service.

        Args:
            resolver: Dump command resolver
            store: Job record store
            uploader_factory: Builds an uploader for a request's storage target
            work_dir: Directory for local artifacts
            max_concurrent_backups: Executions allowed to stream at once
            execution_timeout_seconds: Watchdog limit per execution (None disables)
            read_chunk_size: Bytes per stdout read
            stream_queue_depth: Chunks buffered per stream consumer
            stderr_tail_lines: Diagnostic lines kept for failure messages
            scheduler_timezone: Time zone for cron expressions
            misfire_grace_time: Seconds a late tick may still fire
        """
        self._resolver = resolver
        self._store = store
        self._uploader_factory = uploader_factory
        self._work_dir = work_dir
        self._slots = asyncio.Semaphore(max_concurrent_backups)
        self._execution_timeout = execution_timeout_seconds
        self._runner_options = {
            "read_chunk_size": read_chunk_size,
            "stream_queue_depth": stream_queue_depth,
            "stderr_tail_lines": stderr_tail_lines,
        }
        self._live: dict[UUID, BackupRunner] = {}
        self._tasks: set[asyncio.Task] = set()
        self._scheduler = BackupScheduler(
            launcher=self.launch,
            timezone=scheduler_timezone,
            misfire_grace_time=misfire_grace_time,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> "BackupService":
        """Build the service and its collaborators from application settings."""
        return cls(
            resolver=DumpCommandResolver.from_settings(settings.dump_tools),
            store=JobRecordStore(session_factory),
            uploader_factory=partial(
                S3StreamingUploader.from_target,
                part_size=settings.storage.part_size,
                presigned_url_expiry=settings.storage.presigned_url_expiry,
            ),
            work_dir=settings.dump_tools.work_dir,
            max_concurrent_backups=settings.runner.max_concurrent_backups,
            execution_timeout_seconds=settings.runner.execution_timeout_seconds,
            read_chunk_size=settings.runner.read_chunk_size,
            stream_queue_depth=settings.runner.stream_queue_depth,
            stderr_tail_lines=settings.runner.stderr_tail_lines,
            scheduler_timezone=settings.scheduler.timezone,
            misfire_grace_time=settings.scheduler.misfire_grace_time,
        )

    @property
    def store(self) -> JobRecordStore:
        return self._store

    @property
    def scheduler(self) -> BackupScheduler:
        return self._scheduler

    def live_job_ids(self) -> list[UUID]:
        return list(self._live)

    async def start(
        self,
        request: BackupRequest,
        progress: ProgressChannel | None = None,
    ) -> BackupRunner:
        """
        Create the job record and start the execution in the background.

        Args:
            request: Validated backup request
            progress: Channel for live events (NullProgressChannel if omitted)

        Returns:
            BackupRunner: Runner whose record is already stored

        Raises:
            UnsupportedKindError: If the database kind has no dump strategy
            ValueError: If the storage target is unusable
        """
        uploader = self._uploader_factory(request.storage_target())
        runner = BackupRunner(
            request.db_type,
            request.connection_params(),
            resolver=self._resolver,
            store=self._store,
            uploader=uploader,
            progress=progress or NullProgressChannel(),
            work_dir=self._work_dir,
            slots=self._slots,
            **self._runner_options,
        )
        record = await runner.prepare()
        self._live[record.id] = runner

        task = asyncio.create_task(self._execute(runner), name=f"backup-{record.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(
            "Backup started",
            extra={
                "job_id": str(record.id),
                "db_type": request.db_type.value,
                "subject": record.subject_name,
            },
        )
        return runner

    def launch(self, request: BackupRequest) -> asyncio.Task:
        """
        Start a backup without waiting for its record. Used by scheduler ticks.

        Returns:
            asyncio.Task: Task that creates the record and starts the execution
        """
        task = asyncio.create_task(self._launch_detached(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def events(self, runner: BackupRunner) -> AsyncIterator[ProgressEvent]:
        """
        Yield a runner's progress events, ending with a closed marker.

        Closing the iterator early (client disconnect) cancels the execution.
        """
        finished = False
        try:
            async for event in runner.progress:
                yield event
            finished = True
            yield ProgressEvent(job_id=runner.job_id, status=ProgressStatus.CLOSED)
        finally:
            if not finished:
                self.cancel(runner.job_id, DISCONNECT_REASON)

    def cancel(self, job_id: UUID, reason: str = DEFAULT_CANCEL_REASON) -> bool:
        """
        Request cancellation of a live execution.

        Returns:
            bool: False if no execution with this id is live
        """
        runner = self._live.get(job_id)
        if runner is None:
            return False
        runner.cancel(reason)
        return True

    def schedule(self, request: BackupRequest) -> ScheduleEntry:
        """
        Register a recurring backup for the request's identity.

        Raises:
            UnsupportedKindError: If the database kind has no dump strategy
            InvalidCronSpecError: If the cron expression does not parse
        """
        self._resolver.strategy_for(request.db_type)
        return self._scheduler.schedule(
            request.schedule_identity(),
            request.cron_expression,
            request.model_copy,
        )

    def unschedule(self, identity: str) -> bool:
        return self._scheduler.unschedule(identity)

    async def get(self, job_id: UUID) -> JobRecord:
        """
        Get one job record.

        Raises:
            JobNotFoundError: If no record has this id
        """
        return await self._store.get(job_id)

    async def history(self, limit: int | None = None) -> list[JobRecord]:
        """Job records newest first."""
        return await self._store.list(limit=limit)

    async def shutdown(self, grace_seconds: float = 10.0) -> None:
        """
        Stop schedules, cancel live executions and wait for them to finalize.

        Args:
            grace_seconds: Time allowed for runners to record their outcome
                before their tasks are cancelled outright
        """
        self._scheduler.shutdown()

        stopped = 0
        # Launch tasks still in flight may register more runners.
        while True:
            tasks = [task for task in self._tasks if not task.done()]
            if not tasks:
                break
            for runner in list(self._live.values()):
                runner.cancel(SHUTDOWN_REASON)
            _, pending = await asyncio.wait(tasks, timeout=grace_seconds)
            for task in pending:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            stopped += len(tasks)
        logger.info("Backup service stopped", extra={"tasks": stopped})

    async def _execute(self, runner: BackupRunner) -> None:
        job_id = runner.job_id
        watchdog = None
        if self._execution_timeout is not None:
            watchdog = asyncio.get_running_loop().call_later(
                self._execution_timeout, runner.cancel, WATCHDOG_REASON
            )
        try:
            record = await runner.execute()
            logger.info(
                "Backup execution ended",
                extra={"job_id": str(job_id), "status": record.status.value},
            )
        finally:
            if watchdog is not None:
                watchdog.cancel()
            self._live.pop(job_id, None)

    async def _launch_detached(self, request: BackupRequest) -> None:
        try:
            await self.start(request)
        except (BackupPipelineException, ValueError) as e:
            logger.error(
                "Scheduled backup could not start",
                extra={"identity": request.schedule_identity(), "error_msg": str(e)},
            )
