"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from backup_pipeline.configs.dump_tools import DumpToolSettings
from backup_pipeline.configs.record_store import RecordStoreSettings
from backup_pipeline.configs.runner import RunnerSettings
from backup_pipeline.configs.scheduler import SchedulerSettings
from backup_pipeline.configs.storage import StorageSettings


class TestDefaults:
    """Defaults used when no environment is set."""

    def test_record_store_defaults_to_embedded_sqlite(self, monkeypatch) -> None:
        monkeypatch.delenv("RECORD_STORE_DATABASE_URL", raising=False)

        settings = RecordStoreSettings(_env_file=None)

        assert settings.database_url.startswith("sqlite+aiosqlite://")

    def test_runner_defaults(self) -> None:
        settings = RunnerSettings()

        assert settings.max_concurrent_backups == 4
        assert settings.execution_timeout_seconds is None

    def test_storage_part_size_respects_s3_minimum(self) -> None:
        assert StorageSettings().part_size >= 5 * 1024 * 1024


class TestEnvironmentOverrides:
    """Prefixed environment variables override defaults."""

    def test_dump_tool_paths(self, monkeypatch) -> None:
        monkeypatch.setenv("DUMP_TOOLS_PG_DUMP_PATH", "/opt/pg/bin/pg_dump")
        monkeypatch.setenv("DUMP_TOOLS_ENABLED_KINDS", '["postgresql"]')

        settings = DumpToolSettings(_env_file=None)

        assert settings.pg_dump_path == "/opt/pg/bin/pg_dump"
        assert settings.enabled_kinds == ["postgresql"]

    def test_runner_limits(self, monkeypatch) -> None:
        monkeypatch.setenv("RUNNER_MAX_CONCURRENT_BACKUPS", "2")
        monkeypatch.setenv("RUNNER_EXECUTION_TIMEOUT_SECONDS", "3600")

        settings = RunnerSettings()

        assert settings.max_concurrent_backups == 2
        assert settings.execution_timeout_seconds == 3600.0

    def test_scheduler_timezone(self, monkeypatch) -> None:
        monkeypatch.setenv("SCHEDULER_TIMEZONE", "Europe/Berlin")

        assert SchedulerSettings().timezone == "Europe/Berlin"


class TestValidation:
    """Out-of-range values are rejected at startup."""

    def test_part_size_below_minimum(self, monkeypatch) -> None:
        monkeypatch.setenv("STORAGE_PART_SIZE", str(1024 * 1024))

        with pytest.raises(ValidationError):
            StorageSettings()

    def test_zero_concurrency(self, monkeypatch) -> None:
        monkeypatch.setenv("RUNNER_MAX_CONCURRENT_BACKUPS", "0")

        with pytest.raises(ValidationError):
            RunnerSettings()

    def test_zero_misfire_grace(self, monkeypatch) -> None:
        monkeypatch.setenv("SCHEDULER_MISFIRE_GRACE_TIME", "0")

        with pytest.raises(ValidationError):
            SchedulerSettings()
