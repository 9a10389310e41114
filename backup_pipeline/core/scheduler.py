"""
Recurring backup scheduler.

Keeps at most one live cron schedule per job identity. Each tick builds a
fresh request through the entry's factory and hands it to the launcher,
which starts an execution without the tick waiting for it.

Dependencies: apscheduler, backup_pipeline.core.exceptions
System role: Cron-driven backup triggering
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from backup_pipeline.core.exceptions import InvalidCronSpecError

logger = logging.getLogger(__name__)

InvocationFactory = Callable[[], Any]
Launcher = Callable[[Any], Any]


@dataclass(frozen=True)
class ScheduleEntry:
    """
    One live recurring schedule.

    Attributes:
        identity: Logical job identity, e.g. "postgresql-db.internal-orders"
        cron_spec: Five-field crontab expression
        invocation_factory: Builds the request for each tick
        job_id: APScheduler job id
        registered_at: Registration time (UTC)
    """

    identity: str
    cron_spec: str
    invocation_factory: InvocationFactory = field(repr=False, compare=False)
    job_id: str
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ScheduleRegistry:
    """Identity to live schedule map. register() and stop() are the only mutators."""

    def __init__(self) -> None:
        self._entries: dict[str, ScheduleEntry] = {}

    def register(self, entry: ScheduleEntry) -> ScheduleEntry | None:
        """
        Store an entry, replacing any entry with the same identity.

        Returns:
            ScheduleEntry | None: The replaced entry, which the caller must stop
        """
        previous = self._entries.get(entry.identity)
        self._entries[entry.identity] = entry
        return previous

    def stop(self, identity: str) -> ScheduleEntry | None:
        """Remove and return the entry for identity, if any."""
        return self._entries.pop(identity, None)

    def get(self, identity: str) -> ScheduleEntry | None:
        return self._entries.get(identity)

    def entries(self) -> list[ScheduleEntry]:
        return sorted(self._entries.values(), key=lambda entry: entry.identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class BackupScheduler:
    """
    Cron front end over APScheduler's AsyncIOScheduler.

    Usage:
        scheduler = BackupScheduler(launcher=service.launch)
        scheduler.start()
        scheduler.schedule(request.schedule_identity(), "0 2 * * *", lambda: request)
    """

    def __init__(
        self,
        launcher: Launcher,
        scheduler: AsyncIOScheduler | None = None,
        timezone: str = "UTC",
        misfire_grace_time: int = 60,
    ) -> None:
        """
        Initialize backup scheduler.

        Args:
            launcher: Called with each tick's request; must not block
            scheduler: APScheduler instance (created if omitted)
            timezone: Time zone cron expressions are evaluated in
            misfire_grace_time: Seconds a late tick may still fire
        """
        self._launcher = launcher
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone)
        self._timezone = timezone
        self._misfire_grace_time = misfire_grace_time
        self._registry = ScheduleRegistry()

    @property
    def registry(self) -> ScheduleRegistry:
        return self._registry

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def schedule(
        self,
        identity: str,
        cron_spec: str,
        invocation_factory: InvocationFactory,
    ) -> ScheduleEntry:
        """
        Register a recurring backup, replacing any schedule for identity.

        Args:
            identity: Logical job identity
            cron_spec: Five-field crontab expression
            invocation_factory: Returns a fresh request on every tick

        Returns:
            ScheduleEntry: The live entry

        Raises:
            InvalidCronSpecError: If cron_spec does not parse; nothing changes
        """
        try:
            trigger = CronTrigger.from_crontab(cron_spec, timezone=self._timezone)
        except ValueError as e:
            raise InvalidCronSpecError(cron_spec, str(e)) from e

        previous = self._registry.stop(identity)
        if previous is not None:
            self._remove_job(previous.job_id)
            logger.info(
                "Previous schedule stopped",
                extra={"identity": identity, "cron_spec": previous.cron_spec},
            )

        job_id = f"backup:{identity}"
        self._scheduler.add_job(
            self._tick,
            trigger=trigger,
            args=[identity],
            id=job_id,
            name=identity,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=self._misfire_grace_time,
        )
        entry = ScheduleEntry(
            identity=identity,
            cron_spec=cron_spec,
            invocation_factory=invocation_factory,
            job_id=job_id,
        )
        self._registry.register(entry)

        logger.info("Backup scheduled", extra={"identity": identity, "cron_spec": cron_spec})
        return entry

    def unschedule(self, identity: str) -> bool:
        """
        Stop the schedule for identity.

        Returns:
            bool: True if a schedule was stopped
        """
        entry = self._registry.stop(identity)
        if entry is None:
            return False
        self._remove_job(entry.job_id)
        logger.info("Backup unscheduled", extra={"identity": identity})
        return True

    def list_entries(self) -> list[ScheduleEntry]:
        return self._registry.entries()

    def next_run_time(self, identity: str) -> datetime | None:
        """Next fire time, or None before start() or for unknown identities."""
        entry = self._registry.get(identity)
        if entry is None:
            return None
        job = self._scheduler.get_job(entry.job_id)
        return getattr(job, "next_run_time", None)

    async def trigger(self, identity: str) -> bool:
        """
        Run one tick for identity now.

        Returns:
            bool: False if identity has no schedule
        """
        if identity not in self._registry:
            return False
        await self._tick(identity)
        return True

    def start(self) -> None:
        """Start firing ticks. Must run inside the event loop."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Backup scheduler started", extra={"schedules": len(self._registry)})

    def shutdown(self) -> None:
        """Stop every schedule and the underlying scheduler."""
        for entry in self._registry.entries():
            self._registry.stop(entry.identity)
            self._remove_job(entry.job_id)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Backup scheduler stopped")

    async def _tick(self, identity: str) -> None:
        entry = self._registry.get(identity)
        if entry is None:
            logger.warning("Tick for unknown schedule ignored", extra={"identity": identity})
            return

        logger.info("Scheduled backup firing", extra={"identity": identity})
        try:
            request = entry.invocation_factory()
            self._launcher(request)
        except Exception as e:
            logger.exception(
                "Scheduled backup could not be launched",
                extra={"identity": identity, "error_type": type(e).__name__},
            )

    def _remove_job(self, job_id: str) -> None:
        job = self._scheduler.get_job(job_id)
        if job is not None:
            job.remove()
