"""
Dump tool configuration settings.

Locates the external dump binaries and the scratch directory that receives
local copies of each dump while it streams.

Dependencies: pydantic, pydantic_settings
System role: External process configuration for the dump command resolver
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DumpToolSettings(BaseSettings):
    """Paths to database client binaries."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DUMP_TOOLS_",
        case_sensitive=False,
        extra="ignore",
    )

    pg_dump_path: str = Field(default="pg_dump", description="pg_dump executable")
    mysqldump_path: str = Field(default="mysqldump", description="mysqldump executable")
    mongodump_path: str = Field(default="mongodump", description="mongodump executable")

    enabled_kinds: list[str] = Field(
        default=["postgresql", "mysql", "mongodb"],
        description="Database kinds accepted by the resolver",
    )
    work_dir: str = Field(
        default="/tmp",
        description="Directory for local dump artifacts while a job streams",
    )
