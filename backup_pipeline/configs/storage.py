"""
Object storage configuration settings.

Upload tuning and presigned URL lifetime. Endpoint, bucket and credentials
arrive with each backup request, not from the environment.

Dependencies: pydantic_settings
System role: S3 upload configuration
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Settings for streaming uploads to S3-compatible storage."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        case_sensitive=False,
        extra="ignore",
    )

    presigned_url_expiry: int = Field(
        default=3600,
        description="Presigned download URL expiry in seconds (default 1 hour)",
    )
    part_size: int = Field(
        default=8 * 1024 * 1024,
        ge=5 * 1024 * 1024,
        description="Multipart part size in bytes (S3 minimum is 5 MiB)",
    )
