"""
Backup request schemas.

Inbound payload for one-off and recurring backups, plus the value objects
the core components consume.

Dependencies: pydantic
System role: Backup request API contracts
"""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class DatabaseKind(str, Enum):
    """Database engines with a dump strategy."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MONGODB = "mongodb"


@dataclass(frozen=True)
class ConnectionParams:
    """Database connection parameters handed to the dump command resolver."""

    host: str
    port: int
    user: str
    database: str
    password: str = field(default="", repr=False)
    require_ssl: bool = False


@dataclass(frozen=True)
class StorageTarget:
    """S3-compatible destination for one upload."""

    endpoint: str | None
    bucket: str
    region: str | None
    access_key: str
    secret_key: str = field(default="", repr=False)


class BackupRequest(BaseModel):
    """
    Request to back up one database.

    Absence of cron_expression means "run once now"; its presence means
    "register a recurring schedule and return immediately".
    """

    db_type: DatabaseKind = Field(alias="dbType")
    db_host: str = Field(alias="dbHost")
    db_port: int = Field(alias="dbPort", gt=0, lt=65536)
    db_user: str = Field(alias="dbUser")
    db_password: SecretStr = Field(default=SecretStr(""), alias="dbPassword")
    db_name: str = Field(alias="dbName", min_length=1)
    db_require_ssl: bool = Field(default=False, alias="dbRequireSsl")

    s3_endpoint: str | None = Field(default=None, alias="s3Endpoint")
    s3_bucket_name: str = Field(alias="s3BucketName", min_length=1)
    s3_region: str | None = Field(default=None, alias="s3Region")
    s3_access_key: str = Field(alias="s3AccessKey")
    s3_secret_key: SecretStr = Field(alias="s3SecretKey")

    cron_expression: str | None = Field(default=None, alias="cronExpression")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def strip_whitespace(cls, value):
        """Trim stray whitespace copied into form fields."""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("s3_endpoint", "s3_region", "cron_expression")
    @classmethod
    def empty_as_none(cls, value: str | None) -> str | None:
        return value or None

    def connection_params(self) -> ConnectionParams:
        return ConnectionParams(
            host=self.db_host,
            port=self.db_port,
            user=self.db_user,
            database=self.db_name,
            password=self.db_password.get_secret_value(),
            require_ssl=self.db_require_ssl,
        )

    def storage_target(self) -> StorageTarget:
        return StorageTarget(
            endpoint=self.s3_endpoint,
            bucket=self.s3_bucket_name,
            region=self.s3_region,
            access_key=self.s3_access_key,
            secret_key=self.s3_secret_key.get_secret_value(),
        )

    def schedule_identity(self) -> str:
        """Identity used to keep one live schedule per database."""
        return f"{self.db_type.value}-{self.db_host}-{self.db_name}"
