"""
Test suite for BackupScheduler and ScheduleRegistry.

Tests one-schedule-per-identity replacement, cron validation, manual
triggers and lifecycle against a real AsyncIOScheduler.

System role: Verification of recurring backup triggering
"""

from unittest.mock import MagicMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from backup_pipeline.core.exceptions import InvalidCronSpecError
from backup_pipeline.core.scheduler import BackupScheduler, ScheduleEntry, ScheduleRegistry


def make_scheduler(launcher=None) -> tuple[BackupScheduler, AsyncIOScheduler]:
    aps = AsyncIOScheduler(timezone="UTC")
    return BackupScheduler(launcher=launcher or MagicMock(), scheduler=aps), aps


class TestScheduleRegistry:
    """Test suite for the identity registry."""

    def test_register_should_return_replaced_entry(self) -> None:
        # Arrange
        registry = ScheduleRegistry()
        first = ScheduleEntry("pg-a-orders", "0 2 * * *", MagicMock(), "backup:pg-a-orders")
        second = ScheduleEntry("pg-a-orders", "0 3 * * *", MagicMock(), "backup:pg-a-orders")

        # Act
        assert registry.register(first) is None
        replaced = registry.register(second)

        # Assert
        assert replaced is first
        assert registry.entries() == [second]
        assert len(registry) == 1

    def test_stop_should_remove_entry(self) -> None:
        registry = ScheduleRegistry()
        registry.register(ScheduleEntry("x", "* * * * *", MagicMock(), "backup:x"))

        assert registry.stop("x") is not None
        assert registry.stop("x") is None
        assert "x" not in registry


class TestSchedule:
    """Test suite for BackupScheduler.schedule()."""

    @pytest.mark.asyncio
    async def test_same_identity_should_keep_one_live_schedule(self) -> None:
        # Arrange
        scheduler, aps = make_scheduler()

        # Act
        scheduler.schedule("postgresql-db-orders", "0 2 * * *", MagicMock())
        scheduler.schedule("postgresql-db-orders", "30 4 * * 1", MagicMock())

        # Assert
        entries = scheduler.list_entries()
        assert [entry.cron_spec for entry in entries] == ["30 4 * * 1"]
        assert len(aps.get_jobs()) == 1

    @pytest.mark.asyncio
    async def test_distinct_identities_should_coexist(self) -> None:
        scheduler, aps = make_scheduler()

        scheduler.schedule("postgresql-db-orders", "0 2 * * *", MagicMock())
        scheduler.schedule("mysql-db-users", "0 3 * * *", MagicMock())

        assert [entry.identity for entry in scheduler.list_entries()] == [
            "mysql-db-users",
            "postgresql-db-orders",
        ]
        assert len(aps.get_jobs()) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cron_spec", ["not a cron", "61 * * * *", "* * * *"])
    async def test_invalid_cron_should_raise_without_side_effects(self, cron_spec: str) -> None:
        # Arrange
        scheduler, aps = make_scheduler()
        scheduler.schedule("postgresql-db-orders", "0 2 * * *", MagicMock())

        # Act / Assert
        with pytest.raises(InvalidCronSpecError):
            scheduler.schedule("postgresql-db-orders", cron_spec, MagicMock())

        assert [entry.cron_spec for entry in scheduler.list_entries()] == ["0 2 * * *"]
        assert len(aps.get_jobs()) == 1


class TestTriggerAndUnschedule:
    """Test suite for manual ticks and removal."""

    @pytest.mark.asyncio
    async def test_trigger_should_launch_fresh_request_once(self) -> None:
        # Arrange
        launcher = MagicMock()
        factory = MagicMock(return_value="request-1")
        scheduler, _ = make_scheduler(launcher)
        scheduler.schedule("postgresql-db-orders", "0 2 * * *", factory)

        # Act
        fired = await scheduler.trigger("postgresql-db-orders")

        # Assert
        assert fired is True
        factory.assert_called_once_with()
        launcher.assert_called_once_with("request-1")

    @pytest.mark.asyncio
    async def test_trigger_unknown_identity_should_return_false(self) -> None:
        launcher = MagicMock()
        scheduler, _ = make_scheduler(launcher)

        assert await scheduler.trigger("missing") is False
        launcher.assert_not_called()

    @pytest.mark.asyncio
    async def test_launcher_error_should_not_escape_tick(self) -> None:
        launcher = MagicMock(side_effect=RuntimeError("pool closed"))
        scheduler, _ = make_scheduler(launcher)
        scheduler.schedule("postgresql-db-orders", "0 2 * * *", MagicMock())

        assert await scheduler.trigger("postgresql-db-orders") is True
        launcher.assert_called_once()

    @pytest.mark.asyncio
    async def test_unschedule_should_remove_job(self) -> None:
        scheduler, aps = make_scheduler()
        scheduler.schedule("postgresql-db-orders", "0 2 * * *", MagicMock())

        assert scheduler.unschedule("postgresql-db-orders") is True
        assert scheduler.unschedule("postgresql-db-orders") is False
        assert scheduler.list_entries() == []
        assert aps.get_jobs() == []


class TestLifecycle:
    """Test suite for start() and shutdown()."""

    @pytest.mark.asyncio
    async def test_start_should_compute_next_run(self) -> None:
        # Arrange
        scheduler, _ = make_scheduler()
        scheduler.schedule("postgresql-db-orders", "0 2 * * *", MagicMock())

        # Act
        scheduler.start()

        # Assert
        try:
            assert scheduler.running
            next_run = scheduler.next_run_time("postgresql-db-orders")
            assert next_run is not None
            assert (next_run.hour, next_run.minute) == (2, 0)
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_should_stop_all_schedules(self) -> None:
        scheduler, aps = make_scheduler()
        scheduler.schedule("postgresql-db-orders", "0 2 * * *", MagicMock())
        scheduler.start()

        scheduler.shutdown()

        assert scheduler.list_entries() == []
        assert aps.get_jobs() == []
