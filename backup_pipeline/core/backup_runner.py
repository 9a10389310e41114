"""
Backup runner.

Runs one backup execution end to end: resolves the dump command, spawns the
dump process, fans its stdout out to a local file and to the uploader at the
same time, forwards stderr lines as progress, reacts to cancellation and
records the outcome in the job record store.

Phases: starting -> streaming -> finalizing (success | failure | cancelled).

Dependencies: asyncio, backup_pipeline.core, backup_pipeline.boundary.db
System role: Backup execution orchestration
"""

import asyncio
import logging
import os
from collections import deque
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from backup_pipeline.boundary.db.models.backup_record_model import BackupStatus
from backup_pipeline.core.broadcaster import ByteStreamBroadcaster
from backup_pipeline.core.dump_commands import (
    DumpCommandResolver,
    JobInvocation,
    build_artifact_name,
)
from backup_pipeline.core.exceptions import (
    BackupPipelineException,
    DumpProcessError,
    InvalidTransitionError,
    JobNotFoundError,
    SpawnFailureError,
    UploadError,
)
from backup_pipeline.core.job_record_store import JobRecordStore
from backup_pipeline.core.progress import ProgressChannel
from backup_pipeline.models.backup import ConnectionParams, DatabaseKind
from backup_pipeline.models.job import JobRecord
from backup_pipeline.models.streaming import ProgressStatus

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Backup cancelled by requester"


class ArtifactUploader(Protocol):
    """Object storage contract the runner depends on."""

    async def upload(self, key: str, source: AsyncIterator[bytes]) -> str: ...

    async def delete(self, key: str) -> None: ...


@dataclass(frozen=True)
class _Outcome:
    status: BackupStatus
    download_reference: str | None = None
    error: BackupPipelineException | None = None
    reason: str | None = None


class BackupRunner:
    """
    One backup execution.

    Call prepare() to resolve the command and create the job record, then
    execute() to stream; run() does both. cancel() may be called any number
    of times from any task; only the first reason is kept.

    Usage:
        runner = BackupRunner(kind, params, resolver=resolver, store=store,
                              uploader=uploader, progress=channel)
        record = await runner.run()
    """

    def __init__(
        self,
        kind: DatabaseKind | str,
        params: ConnectionParams,
        *,
        resolver: DumpCommandResolver,
        store: JobRecordStore,
        uploader: ArtifactUploader,
        progress: ProgressChannel | None = None,
        work_dir: str | Path = "/tmp",
        slots: asyncio.Semaphore | None = None,
        read_chunk_size: int = 64 * 1024,
        stream_queue_depth: int = 16,
        stderr_tail_lines: int = 20,
    ) -> None:
        """
        Initialize backup runner.

        Args:
            kind: Database kind
            params: Connection parameters
            resolver: Dump command resolver
            store: Job record store
            uploader: Object storage uploader bound to the destination bucket
            progress: Channel receiving progress events (closed when the run ends)
            work_dir: Directory for the local artifact
            slots: Execution pool semaphore; None runs immediately
            read_chunk_size: Bytes per stdout read
            stream_queue_depth: Chunks buffered per stream consumer
            stderr_tail_lines: Diagnostic lines kept for failure messages
        """
        self._kind = kind
        self._params = params
        self._resolver = resolver
        self._store = store
        self._uploader = uploader
        self._progress = progress or ProgressChannel()
        self._work_dir = Path(work_dir)
        self._slots = slots
        self._read_chunk_size = read_chunk_size
        self._stream_queue_depth = stream_queue_depth
        self._stderr_tail: deque[str] = deque(maxlen=stderr_tail_lines)

        self._cancel_event = asyncio.Event()
        self._cancel_reason: str | None = None
        self._invocation: JobInvocation | None = None
        self._record: JobRecord | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._uploaded = False

    @property
    def record(self) -> JobRecord | None:
        return self._record

    @property
    def job_id(self) -> UUID | None:
        return self._record.id if self._record else None

    @property
    def progress(self) -> ProgressChannel:
        return self._progress

    @property
    def local_path(self) -> Path | None:
        if self._record is None:
            return None
        return self._work_dir / self._record.artifact_name

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        """Dump process, once spawned."""
        return self._process

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self, reason: str = DEFAULT_CANCEL_REASON) -> None:
        """Request cancellation. Idempotent."""
        if self._cancel_event.is_set():
            return
        self._cancel_reason = reason
        self._cancel_event.set()
        logger.info(
            "Backup cancellation requested",
            extra={"job_id": str(self.job_id), "reason": reason},
        )

    async def run(self) -> JobRecord:
        """Prepare and execute. See execute()."""
        await self.prepare()
        return await self.execute()

    async def prepare(self) -> JobRecord:
        """
        Resolve the dump command and create the QUEUED job record.

        Returns:
            JobRecord: The new record

        Raises:
            UnsupportedKindError: If the kind has no dump strategy; nothing
                is created and no process is spawned
        """
        if self._record is not None:
            return self._record

        self._invocation = self._resolver.resolve(self._kind, self._params)
        artifact_name = build_artifact_name(
            self._params.database, self._invocation.artifact_extension
        )
        self._record = await self._store.create(
            self._params.database, artifact_name, status=BackupStatus.QUEUED
        )
        return self._record

    async def execute(self) -> JobRecord:
        """
        Stream the backup and record its terminal state.

        Every failure is converted into exactly one terminal transition and
        one terminal progress event. If the task running execute() is itself
        cancelled, the job is finalized as cancelled before the cancellation
        propagates.

        Returns:
            JobRecord: The record after finalization

        Raises:
            RuntimeError: If prepare() has not run
        """
        if self._record is None or self._invocation is None:
            raise RuntimeError("prepare() must be awaited before execute()")

        try:
            return await self._execute()
        except asyncio.CancelledError:
            self.cancel("Backup task was cancelled")
            await asyncio.shield(self._finalize_after_task_cancel())
            raise
        finally:
            self._progress.close()

    async def _execute(self) -> JobRecord:
        job_id = self._record.id
        slot_acquired = await self._acquire_slot()
        try:
            try:
                self._record = await self._store.transition(job_id, BackupStatus.PROCESSING)
            except (InvalidTransitionError, JobNotFoundError, SQLAlchemyError) as e:
                logger.exception(
                    "Job record could not be started",
                    extra={"job_id": str(job_id), "error_type": type(e).__name__},
                )
                self._emit(_unrecorded_message(e), ProgressStatus.FAILED)
                return self._record

            self._emit(
                f"Starting backup for {_kind_name(self._kind)} database: "
                f"'{self._params.database}'...",
                ProgressStatus.PROCESSING,
            )
            if not slot_acquired or self.cancel_requested:
                outcome = _Outcome(BackupStatus.CANCELLED, reason=self._cancel_reason)
            else:
                try:
                    outcome = await self._stream()
                except Exception as e:
                    logger.exception(
                        "Unexpected error during backup",
                        extra={"job_id": str(job_id), "error_type": type(e).__name__},
                    )
                    outcome = _Outcome(
                        BackupStatus.FAILED,
                        error=BackupPipelineException(f"Unexpected backup error: {e}"),
                    )
            return await self._finalize(outcome)
        finally:
            if slot_acquired and self._slots is not None:
                self._slots.release()

    async def _acquire_slot(self) -> bool:
        """
        Wait for an execution slot unless cancelled first.

        Returns:
            bool: True if a slot is held (or no pool is configured)
        """
        if self._slots is None:
            return True
        if self._slots.locked():
            self._emit("Waiting for a free backup slot...")

        acquire = asyncio.ensure_future(self._slots.acquire())
        cancel_wait = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({acquire, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_wait.cancel()
            if not acquire.done():
                acquire.cancel()
            elif not acquire.cancelled() and acquire.exception() is None and (
                self.cancel_requested or asyncio.current_task().cancelling()
            ):
                # Acquired too late to be used.
                self._slots.release()
                acquire = None
        return acquire is not None and acquire.done() and not acquire.cancelled()

    async def _stream(self) -> _Outcome:
        invocation = self._invocation
        job_id = self._record.id
        local_path = self.local_path

        try:
            process = await asyncio.create_subprocess_exec(
                invocation.executable,
                *invocation.args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=invocation.process_env(),
            )
        except OSError as e:
            error = SpawnFailureError(
                f"Failed to start backup process: {e}", executable=invocation.executable
            )
            logger.error(str(error), extra={"job_id": str(job_id)})
            return _Outcome(BackupStatus.FAILED, error=error)

        self._process = process
        logger.info(
            "Dump process started",
            extra={"job_id": str(job_id), "pid": process.pid, "executable": invocation.executable},
        )

        broadcaster = ByteStreamBroadcaster(
            process.stdout,
            chunk_size=self._read_chunk_size,
            queue_depth=self._stream_queue_depth,
        )
        sink_feed = broadcaster.subscribe()
        upload_feed = broadcaster.subscribe()

        sink_task = asyncio.create_task(self._write_local(local_path, sink_feed))
        upload_task = asyncio.create_task(
            self._uploader.upload(self._record.artifact_name, upload_feed)
        )
        stderr_task = asyncio.create_task(self._forward_stderr(process.stderr))
        exit_task = asyncio.create_task(self._wait_for_exit(process, broadcaster, stderr_task))
        cancel_task = asyncio.create_task(self._cancel_event.wait())
        tasks = [sink_task, upload_task, stderr_task, exit_task, cancel_task]

        try:
            pending = {exit_task, sink_task, upload_task}
            while pending:
                done, _ = await asyncio.wait(
                    pending | {cancel_task}, return_when=asyncio.FIRST_COMPLETED
                )
                if cancel_task in done:
                    return _Outcome(BackupStatus.CANCELLED, reason=self._cancel_reason)
                pending -= done

                if exit_task in done:
                    if exit_task.exception() is not None:
                        broadcaster.abort("dump output could not be read")
                        return self._consumer_failure("process", exit_task.exception())
                    exit_code = exit_task.result()
                    if exit_code != 0:
                        broadcaster.abort(f"dump process exited with code {exit_code}")
                        return _Outcome(BackupStatus.FAILED, error=self._exit_failure(exit_code))
                    broadcaster.finish()
                    self._emit(
                        "Database dump successful. Now uploading to S3...",
                        ProgressStatus.UPLOADING,
                    )

                for name, task in (("upload", upload_task), ("local sink", sink_task)):
                    if task in done and task.exception() is not None:
                        return self._consumer_failure(name, task.exception())

            return _Outcome(BackupStatus.COMPLETED, download_reference=upload_task.result())
        finally:
            await self._release(process, tasks)
            self._uploaded = (
                upload_task.done()
                and not upload_task.cancelled()
                and upload_task.exception() is None
            )

    async def _wait_for_exit(
        self,
        process: asyncio.subprocess.Process,
        broadcaster: ByteStreamBroadcaster,
        stderr_task: asyncio.Task,
    ) -> int:
        await broadcaster.pump()
        await asyncio.wait({stderr_task})
        exit_code = await process.wait()
        logger.info(
            "Dump process exited",
            extra={
                "job_id": str(self.job_id),
                "exit_code": exit_code,
                "bytes": broadcaster.bytes_read,
            },
        )
        return exit_code

    async def _write_local(self, path: Path, feed: AsyncIterator[bytes]) -> Path:
        with open(path, "wb") as fh:
            async for chunk in feed:
                await asyncio.to_thread(fh.write, chunk)
            await asyncio.to_thread(fh.flush)
            await asyncio.to_thread(os.fsync, fh.fileno())
        return path

    async def _forward_stderr(self, stream: asyncio.StreamReader) -> None:
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Longer than the reader limit; readline() has already
                # dropped it from the buffer.
                logger.warning(
                    "Oversized diagnostic line skipped", extra={"job_id": str(self.job_id)}
                )
                continue
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            self._stderr_tail.append(line)
            self._emit(line)

    async def _release(self, process: asyncio.subprocess.Process, tasks: list[asyncio.Task]) -> None:
        if process.returncode is None:
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            logger.info(
                "Dump process killed",
                extra={"job_id": str(self.job_id), "pid": process.pid},
            )
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _exit_failure(self, exit_code: int) -> DumpProcessError:
        tail = "\n".join(self._stderr_tail)
        if tail:
            message = f"Backup process exited with code {exit_code}: {tail}"
        else:
            message = (
                f"Backup process exited with code {exit_code}. "
                "Check credentials and network access."
            )
        logger.warning(message, extra={"job_id": str(self.job_id)})
        return DumpProcessError(message, exit_code=exit_code)

    def _consumer_failure(self, name: str, exc: BaseException) -> _Outcome:
        if isinstance(exc, UploadError):
            message = f"S3 Upload failed: {exc.message}"
        else:
            message = f"Backup {name} failed: {exc}"
        logger.error(
            message,
            extra={"job_id": str(self.job_id), "error_type": type(exc).__name__},
        )
        return _Outcome(BackupStatus.FAILED, error=BackupPipelineException(message))

    async def _finalize(self, outcome: _Outcome) -> JobRecord:
        job_id = self._record.id
        try:
            try:
                await self._record_outcome(outcome)
            except SQLAlchemyError:
                logger.exception(
                    "Record store error while finalizing; retrying once",
                    extra={"job_id": str(job_id), "status": outcome.status.value},
                )
                await self._record_outcome(outcome)
        except (InvalidTransitionError, JobNotFoundError, SQLAlchemyError) as e:
            logger.exception(
                "Job record could not be finalized",
                extra={"job_id": str(job_id), "error_type": type(e).__name__},
            )
            self._emit(_unrecorded_message(e), ProgressStatus.FAILED)
        finally:
            await self._cleanup(outcome)

        logger.info(
            "Backup finished",
            extra={"job_id": str(job_id), "status": self._record.status.value},
        )
        return self._record

    async def _record_outcome(self, outcome: _Outcome) -> None:
        job_id = self._record.id
        if outcome.status == BackupStatus.COMPLETED:
            self._record = await self._store.transition(
                job_id,
                BackupStatus.COMPLETED,
                download_reference=outcome.download_reference,
            )
            self._emit("Upload complete! ✅", ProgressStatus.COMPLETED)
        elif outcome.status == BackupStatus.FAILED:
            self._record = await self._store.transition(
                job_id,
                BackupStatus.FAILED,
                error_detail=outcome.error.message,
            )
            self._emit(outcome.error.message, ProgressStatus.FAILED)
        else:
            reason = outcome.reason or DEFAULT_CANCEL_REASON
            await self._store.cancel(job_id, reason)
            self._record = await self._store.get(job_id)
            self._emit_record_status(reason)

    async def _finalize_after_task_cancel(self) -> None:
        outcome = _Outcome(BackupStatus.CANCELLED, reason=self._cancel_reason)
        try:
            record = await self._store.get(self._record.id)
            if record.status == BackupStatus.QUEUED:
                record = await self._store.transition(record.id, BackupStatus.PROCESSING)
        except (InvalidTransitionError, JobNotFoundError, SQLAlchemyError) as e:
            logger.exception(
                "Job record could not be finalized",
                extra={"job_id": str(self._record.id), "error_type": type(e).__name__},
            )
            self._emit(_unrecorded_message(e), ProgressStatus.FAILED)
            await self._cleanup(outcome)
            return
        self._record = record
        if record.status.is_terminal:
            await self._cleanup(outcome)
            return
        await self._finalize(outcome)

    async def _cleanup(self, outcome: _Outcome) -> None:
        if outcome.status != BackupStatus.COMPLETED and self._uploaded:
            try:
                await self._uploader.delete(self._record.artifact_name)
                logger.info(
                    "Remote artifact removed",
                    extra={"job_id": str(self.job_id), "key": self._record.artifact_name},
                )
            except UploadError as e:
                logger.warning(
                    "Failed to remove remote artifact",
                    extra={"job_id": str(self.job_id), "error_msg": e.message},
                )

        local_path = self.local_path
        try:
            local_path.unlink()
            logger.debug("Temporary file deleted", extra={"path": str(local_path)})
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(
                "Failed to delete temporary file",
                extra={"path": str(local_path), "error_msg": str(e)},
            )

    def _emit_record_status(self, reason: str) -> None:
        status = self._record.status
        if status == BackupStatus.COMPLETED:
            self._emit("Upload complete! ✅", ProgressStatus.COMPLETED)
        elif status == BackupStatus.FAILED:
            self._emit(self._record.error_detail, ProgressStatus.FAILED)
        else:
            self._emit(reason, ProgressStatus.CANCELLED)

    def _emit(self, message: str | None, status: ProgressStatus | None = None) -> None:
        self._progress.emit(self.job_id, message, status)


def _unrecorded_message(error: Exception) -> str:
    if isinstance(error, BackupPipelineException):
        return f"Backup could not be recorded: {error.message}"
    return "Backup could not be recorded: record store unavailable"


def _kind_name(kind: DatabaseKind | str) -> str:
    return kind.value if isinstance(kind, DatabaseKind) else str(kind)
