"""
Scheduler configuration settings.

Time zone and misfire handling for recurring backups.

Dependencies: pydantic_settings
System role: Recurring backup configuration
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Settings for cron-driven backups."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        case_sensitive=False,
        extra="ignore",
    )

    timezone: str = Field(
        default="UTC",
        description="Time zone cron expressions are evaluated in",
    )
    misfire_grace_time: int = Field(
        default=60,
        ge=1,
        description="Seconds a late tick may still fire after its scheduled time",
    )
