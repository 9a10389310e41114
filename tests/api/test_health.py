from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from backup_pipeline.api.deps import get_engine
from backup_pipeline.api.main import create_app


@pytest.fixture
def client():
    app = create_app()
    return TestClient(app)


def test_health_check(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "message": "Server Healthy"}


def test_health_check_db(client, tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'health.db'}", poolclass=NullPool
    )
    client.app.dependency_overrides[get_engine] = lambda: engine

    response = client.get("/api/v1/health/db")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "message": "Database connection OK"}


def test_health_check_db_unreachable(client):
    engine = MagicMock()
    engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
    client.app.dependency_overrides[get_engine] = lambda: engine

    response = client.get("/api/v1/health/db")

    assert response.status_code == 503
    assert response.json()["detail"] == "Database connection failed"


def test_health_check_should_generate_correlation_id(client):
    response = client.get("/api/v1/health")

    assert response.headers["X-Correlation-ID"]
