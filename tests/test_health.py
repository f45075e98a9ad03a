"""
Tests for GET /health.
Uses dependency_overrides to simulate failures.
"""

from collections.abc import Generator
from unittest.mock import MagicMock

import redis
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from apps.api.db import get_db
from apps.api.redis_client import get_redis


def mock_db_fail() -> Generator[MagicMock, None, None]:
    mock = MagicMock()
    mock.execute.side_effect = OperationalError("SELECT 1", {}, Exception("Connection refused"))
    yield mock


def test_health_ok(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["db"] == "ok"
    assert data["redis"] == "ok"
    assert "db_latency_ms" in data
    assert data["version"]


def test_health_redis_down(client: TestClient, redis_mock: MagicMock):
    redis_mock.ping.side_effect = redis.ConnectionError("Connection refused")

    response = client.get("/health")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "degraded"
    assert data["redis"] == "fail"
    assert data["db"] == "ok"


def test_health_db_down(client: TestClient, app):
    app.dependency_overrides[get_db] = mock_db_fail

    response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["db"] == "fail"


def test_health_both_down(client: TestClient, app):
    failing_redis = MagicMock()
    failing_redis.ping.side_effect = redis.TimeoutError("timeout")
    app.dependency_overrides[get_db] = mock_db_fail
    app.dependency_overrides[get_redis] = lambda: failing_redis

    response = client.get("/health")

    assert response.status_code == 503
    data = response.json()
    assert data["db"] == "fail"
    assert data["redis"] == "fail"
