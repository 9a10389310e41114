"""
Record store configuration settings.

Manages the connection URL for the backup history table. Defaults to an
embedded SQLite file so a single instance runs without a database server.

Dependencies: pydantic, pydantic_settings
System role: Persistence configuration for job records
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RecordStoreSettings(BaseSettings):
    """Backup history database configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RECORD_STORE_",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./backup-history.db",
        description="SQLAlchemy async URL (sqlite+aiosqlite or postgresql+asyncpg)",
    )
    echo_sql: bool = Field(default=False, description="Echo SQL statements to logs")
