"""
Dump command resolution.

Maps a database kind and connection parameters to the external process
invocation that writes a dump to standard output. Pure: no I/O, no network.

Dependencies: backup_pipeline.models.backup, backup_pipeline.core.exceptions
System role: Dump strategy selection for the backup runner
"""

import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping
from urllib.parse import quote_plus

from backup_pipeline.core.exceptions import UnsupportedKindError
from backup_pipeline.models.backup import ConnectionParams, DatabaseKind

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class JobInvocation:
    """
    Resolved external process description.

    Attributes:
        executable: Binary to launch
        args: Ordered argument list (never contains an env-injectable secret)
        env: Variables overlaid on the parent environment
        artifact_extension: File suffix for the produced dump
    """

    executable: str
    args: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict, repr=False)
    artifact_extension: str = ".dump"

    def process_env(self) -> dict[str, str]:
        """Parent environment with the overlay applied."""
        return {**os.environ, **self.env}


class DumpStrategy(ABC):
    """Builds the invocation for one database kind."""

    kind: DatabaseKind
    artifact_extension = ".dump"
    supports_env_password = True

    def __init__(self, executable: str) -> None:
        self.executable = executable

    @abstractmethod
    def build(self, params: ConnectionParams) -> JobInvocation:
        """Describe the dump process for these connection parameters."""


class PostgresDumpStrategy(DumpStrategy):
    """pg_dump in custom format; password through PGPASSWORD."""

    kind = DatabaseKind.POSTGRESQL
    artifact_extension = ".dump"

    def build(self, params: ConnectionParams) -> JobInvocation:
        env = {"PGPASSWORD": params.password}
        if params.require_ssl:
            env["PGSSLMODE"] = "require"
        return JobInvocation(
            executable=self.executable,
            args=(
                "-h", params.host,
                "-p", str(params.port),
                "-U", params.user,
                "-d", params.database,
                "-F", "c",
                "--no-password",
            ),
            env=env,
            artifact_extension=self.artifact_extension,
        )


class MySQLDumpStrategy(DumpStrategy):
    """mysqldump as plain SQL; password through MYSQL_PWD."""

    kind = DatabaseKind.MYSQL
    artifact_extension = ".sql"

    def build(self, params: ConnectionParams) -> JobInvocation:
        args = [
            "--no-tablespaces",
            "--single-transaction",
            "-h", params.host,
            "-P", str(params.port),
            "-u", params.user,
        ]
        if params.require_ssl:
            args.append("--ssl-mode=REQUIRED")
        args += ["--databases", params.database]
        return JobInvocation(
            executable=self.executable,
            args=tuple(args),
            env={"MYSQL_PWD": params.password},
            artifact_extension=self.artifact_extension,
        )


class MongoDumpStrategy(DumpStrategy):
    """
    mongodump as a gzipped archive on stdout.

    mongodump reads credentials only from its arguments or an interactive
    prompt, so the password travels inside the connection URI.
    """

    kind = DatabaseKind.MONGODB
    artifact_extension = ".gz"
    supports_env_password = False

    def build(self, params: ConnectionParams) -> JobInvocation:
        credentials = quote_plus(params.user)
        if params.password:
            credentials = f"{credentials}:{quote_plus(params.password)}"
        uri = (
            f"mongodb://{credentials}@{params.host}:{params.port}/"
            f"{params.database}?authSource=admin"
        )
        if params.require_ssl:
            uri += "&tls=true"
        return JobInvocation(
            executable=self.executable,
            args=(f"--uri={uri}", "--archive", "--gzip"),
            artifact_extension=self.artifact_extension,
        )


_STRATEGIES: dict[DatabaseKind, type[DumpStrategy]] = {
    DatabaseKind.POSTGRESQL: PostgresDumpStrategy,
    DatabaseKind.MYSQL: MySQLDumpStrategy,
    DatabaseKind.MONGODB: MongoDumpStrategy,
}


class DumpCommandResolver:
    """
    Resolves dump invocations for the enabled database kinds.

    A deployment that bundles a single pg_dump binary is just
    DumpCommandResolver({"postgresql": "/opt/bundled/pg_dump"}).
    """

    def __init__(self, executables: Mapping[str, str]) -> None:
        """
        Initialize resolver.

        Args:
            executables: Enabled kinds mapped to their binary path

        Raises:
            UnsupportedKindError: If a kind has no strategy
        """
        self._strategies: dict[DatabaseKind, DumpStrategy] = {}
        for kind_name, executable in executables.items():
            kind = _parse_kind(kind_name)
            self._strategies[kind] = _STRATEGIES[kind](executable)

    @classmethod
    def from_settings(cls, settings) -> "DumpCommandResolver":
        """Build from DumpToolSettings, honouring enabled_kinds."""
        paths = {
            DatabaseKind.POSTGRESQL.value: settings.pg_dump_path,
            DatabaseKind.MYSQL.value: settings.mysqldump_path,
            DatabaseKind.MONGODB.value: settings.mongodump_path,
        }
        return cls({kind: paths[kind] for kind in settings.enabled_kinds if kind in paths})

    @property
    def kinds(self) -> list[DatabaseKind]:
        return list(self._strategies)

    def strategy_for(self, kind: DatabaseKind | str) -> DumpStrategy:
        parsed = _parse_kind(kind)
        strategy = self._strategies.get(parsed)
        if strategy is None:
            raise UnsupportedKindError(parsed.value)
        return strategy

    def resolve(self, kind: DatabaseKind | str, params: ConnectionParams) -> JobInvocation:
        """
        Build the process invocation for a backup.

        Args:
            kind: Database kind
            params: Connection parameters

        Returns:
            JobInvocation: Executable, arguments and environment overlay

        Raises:
            UnsupportedKindError: If the kind is unknown or not enabled
        """
        return self.strategy_for(kind).build(params)


def _parse_kind(kind: DatabaseKind | str) -> DatabaseKind:
    if isinstance(kind, DatabaseKind):
        return kind
    try:
        return DatabaseKind(str(kind).strip().lower())
    except ValueError:
        raise UnsupportedKindError(str(kind)) from None


def build_artifact_name(
    subject_name: str,
    extension: str,
    now: datetime | None = None,
) -> str:
    """
    Deterministic artifact name: <subject>_<UTC timestamp with microseconds><ext>.

    Args:
        subject_name: Database name
        extension: Suffix including the dot
        now: Timestamp override

    Returns:
        str: File name safe to use as both a local path component and an S3 key
    """
    now = now or datetime.now(timezone.utc)
    subject = _UNSAFE_NAME_CHARS.sub("_", subject_name).strip("._") or "backup"
    timestamp = now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return f"{subject}_{timestamp}{extension}"
