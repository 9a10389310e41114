"""
Unified application settings.

Aggregates the record store, dump tool, storage, runner and scheduler
settings into one Settings object.

Dependencies: All config modules
System role: Central configuration aggregator for the application
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from backup_pipeline.configs.dump_tools import DumpToolSettings
from backup_pipeline.configs.record_store import RecordStoreSettings
from backup_pipeline.configs.runner import RunnerSettings
from backup_pipeline.configs.scheduler import SchedulerSettings
from backup_pipeline.configs.storage import StorageSettings


class Settings(BaseSettings):
    """Service-wide settings plus one section per component."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(
        default="INFO",
        description="Root logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    record_store: RecordStoreSettings = Field(default_factory=RecordStoreSettings)
    dump_tools: DumpToolSettings = Field(default_factory=DumpToolSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    runner: RunnerSettings = Field(default_factory=RunnerSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get application settings singleton.

    Environment variables are read once, on first call.

    Usage:
        from backup_pipeline.configs import get_settings
        settings = get_settings()
    """
    return Settings()
