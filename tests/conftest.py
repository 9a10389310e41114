"""
Shared test fixtures and configuration for entire test suite.

Provides: SQLite-backed record store, scripted dump tools, in-memory uploader,
sample backup requests
Dependencies: pytest, pytest_asyncio, sqlalchemy
System role: Test infrastructure and fixture management
"""

import asyncio
import sys
import textwrap
import uuid
from typing import AsyncIterator, Iterable

import pytest
import pytest_asyncio

from backup_pipeline.core.dump_commands import JobInvocation
from backup_pipeline.core.exceptions import StreamAbortedError, UnsupportedKindError, UploadError
from backup_pipeline.models.backup import BackupRequest, ConnectionParams, DatabaseKind


class ScriptResolver:
    """
    Resolver that runs a Python snippet instead of a real dump tool.

    The snippet sees the connection parameters as DB_NAME in its environment.
    """

    def __init__(
        self,
        script: str,
        executable: str = sys.executable,
        kinds: Iterable[DatabaseKind] = (DatabaseKind.POSTGRESQL,),
    ) -> None:
        self.script = textwrap.dedent(script)
        self.executable = executable
        self.kinds = list(kinds)
        self.resolved: list[ConnectionParams] = []

    def strategy_for(self, kind):
        kind = DatabaseKind(kind)
        if kind not in self.kinds:
            raise UnsupportedKindError(kind.value)
        return kind

    def resolve(self, kind, params: ConnectionParams) -> JobInvocation:
        self.strategy_for(kind)
        self.resolved.append(params)
        return JobInvocation(
            executable=self.executable,
            args=("-c", self.script),
            env={"DB_NAME": params.database},
            artifact_extension=".dump",
        )


class RecordingUploader:
    """
    In-memory uploader.

    Modes:
        fail_with: raise UploadError with this message before reading anything
        hold: keep the upload open after the source ends, until released
    """

    def __init__(self, fail_with: str | None = None, hold: bool = False) -> None:
        self.fail_with = fail_with
        self.data = bytearray()
        self.keys: list[str] = []
        self.deleted: list[str] = []
        self.completed = False
        self.released = asyncio.Event()
        if not hold:
            self.released.set()

    @property
    def received(self) -> int:
        return len(self.data)

    async def upload(self, key: str, source: AsyncIterator[bytes]) -> str:
        self.keys.append(key)
        if self.fail_with:
            raise UploadError(self.fail_with, key=key)
        try:
            async for chunk in source:
                self.data.extend(chunk)
        except StreamAbortedError as e:
            raise UploadError(f"Upload abandoned: {e.message}", key=key) from e
        await self.released.wait()
        self.completed = True
        return f"https://storage.test/backups/{key}?signature=abc"

    async def delete(self, key: str) -> None:
        self.deleted.append(key)


async def wait_until(predicate, timeout: float = 10.0, interval: float = 0.02) -> None:
    """Poll predicate (sync or async) until it returns truthy."""

    async def _poll():
        while True:
            result = predicate()
            if asyncio.iscoroutine(result):
                result = await result
            if result:
                return
            await asyncio.sleep(interval)

    await asyncio.wait_for(_poll(), timeout)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """
    Create a file-backed SQLite record database for one test.

    Yields:
        async_sessionmaker: Session factory bound to a fresh schema
    """
    from backup_pipeline.boundary.db.connection import (
        create_tables,
        get_async_engine,
        get_async_session_factory,
    )

    engine = get_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
    await create_tables(engine)

    yield get_async_session_factory(engine)

    await engine.dispose()


@pytest_asyncio.fixture
async def record_store(session_factory):
    """Provide a JobRecordStore over the test database."""
    from backup_pipeline.core.job_record_store import JobRecordStore

    return JobRecordStore(session_factory)


@pytest.fixture
def work_dir(tmp_path):
    """Directory receiving local artifacts."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def connection_params() -> ConnectionParams:
    """Connection parameters for a PostgreSQL database named orders."""
    return ConnectionParams(
        host="db.internal",
        port=5432,
        user="backup",
        database="orders",
        password="s3cret",
    )


@pytest.fixture
def backup_payload() -> dict:
    """Camel-case request body as sent by the web form."""
    return {
        "dbType": "postgresql",
        "dbHost": "db.internal",
        "dbPort": 5432,
        "dbUser": "backup",
        "dbPassword": "s3cret",
        "dbName": "orders",
        "s3Endpoint": "http://minio:9000",
        "s3BucketName": "backups",
        "s3Region": "us-east-1",
        "s3AccessKey": "AKIAEXAMPLE",
        "s3SecretKey": "secret-key",
    }


@pytest.fixture
def backup_request(backup_payload) -> BackupRequest:
    """Validated request built from backup_payload."""
    return BackupRequest(**backup_payload)


@pytest.fixture
def job_id():
    """Generate a test job ID."""
    return uuid.uuid4()


@pytest.fixture
def make_resolver():
    """Factory for ScriptResolver(script, executable=..., kinds=...)."""
    return ScriptResolver


@pytest.fixture
def make_uploader():
    """Factory for RecordingUploader(fail_with=..., hold=...)."""
    return RecordingUploader


@pytest.fixture
def poll():
    """wait_until(predicate, timeout=...) helper."""
    return wait_until
