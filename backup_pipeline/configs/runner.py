"""
Backup runner configuration settings.

Concurrency limits and stream buffering for backup executions.

Dependencies: pydantic, pydantic_settings
System role: Execution pool configuration
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RunnerSettings(BaseSettings):
    """Execution pool and stream settings."""

    model_config = SettingsConfigDict(
        env_prefix="RUNNER_",
        case_sensitive=False,
        extra="ignore",
    )

    max_concurrent_backups: int = Field(
        default=4, ge=1, description="Executions allowed to stream at once"
    )
    read_chunk_size: int = Field(
        default=64 * 1024, description="Bytes read from the dump process per chunk"
    )
    stream_queue_depth: int = Field(
        default=16, ge=1, description="Chunks buffered per stream consumer"
    )
    stderr_tail_lines: int = Field(
        default=20, description="Diagnostic lines kept for failure messages"
    )
    execution_timeout_seconds: float | None = Field(
        default=None,
        description="Cancel an execution after this many seconds (unset disables)",
    )
