"""
Pytest configuration and fixtures.

Provides reusable fixtures for FastAPI testing:
- app: The FastAPI application instance
- client: Sync TestClient with database, Redis and storage overrides
- db_session / session_factory: in-memory SQLite shared with the app
- test_settings: Settings pointing local uploads at a temp directory
- user helpers: register + login, create a family
"""

import os
import tempfile

# Set before any app module reads settings or creates the engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6380/0")
os.environ.setdefault("LOCAL_UPLOAD_PATH", os.path.join(tempfile.gettempdir(), "fami-test-uploads"))

from collections.abc import Generator  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from apps.api.config import Settings, get_settings  # noqa: E402
from apps.api.db import create_db_engine, get_db, get_session_factory  # noqa: E402
from apps.api.redis_client import get_redis  # noqa: E402
from apps.api.storage import get_system_s3  # noqa: E402
from db.base import Base  # noqa: E402

import apps.api.auth.models  # noqa: E402,F401
import db.models  # noqa: E402,F401

DEFAULT_PASSWORD = "SecurePass123"


# =============================================================================
# Settings Fixture
# =============================================================================


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings with local uploads in a per-test temp directory."""
    return Settings(
        local_upload_path=str(tmp_path / "uploads"),
        base_url="http://testserver",
        storage_fallback_to_local=True,
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """Fresh in-memory database per test, one connection shared across threads."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Redis Fixture
# =============================================================================


@pytest.fixture
def redis_mock() -> MagicMock:
    """Redis client whose counters always report the first request in a window."""
    client = MagicMock()
    client.pipeline.return_value.execute.return_value = [1, True]
    client.ping.return_value = True
    return client


# =============================================================================
# App and Client Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def app() -> FastAPI:
    """Import and return the FastAPI application."""
    from apps.api.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(
    app: FastAPI,
    session_factory: sessionmaker,
    redis_mock: MagicMock,
    test_settings: Settings,
) -> Generator[TestClient, None, None]:
    """
    TestClient wired to the in-memory database, a mocked Redis and local storage.

    Clears dependency_overrides before and after each test.
    """

    def override_get_db() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides.clear()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_redis] = lambda: redis_mock
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_system_s3] = lambda: None

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# User and Family Helpers
# =============================================================================


def auth_header(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def register_and_login(
    client: TestClient,
    email: str,
    first_name: str = "Test",
    last_name: str = "User",
    password: str = DEFAULT_PASSWORD,
) -> dict[str, Any]:
    """Register a user, log in, and return tokens, headers and the user payload."""
    response = client.post(
        "/api/auth/register",
        json={
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "password": password,
        },
    )
    assert response.status_code == 201, response.text

    response = client.post(
        "/api/auth/login",
        json={"email": email, "password": password},
    )
    assert response.status_code == 200, response.text
    data = response.json()
    return {
        "access_token": data["access_token"],
        "refresh_token": data["refresh_token"],
        "headers": auth_header(data["access_token"]),
        "user": data["user"],
    }


def create_family(client: TestClient, headers: dict[str, str], name: str = "Smith") -> dict:
    response = client.post("/api/families", json={"name": name}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def alice(client: TestClient) -> dict[str, Any]:
    return register_and_login(client, "alice@famiportal.org", "Alice", "Smith")


@pytest.fixture
def bob(client: TestClient) -> dict[str, Any]:
    return register_and_login(client, "bob@famiportal.org", "Bob", "Smith")


@pytest.fixture
def family(client: TestClient, alice: dict[str, Any]) -> dict[str, Any]:
    """A family created by Alice (who is its Admin)."""
    return create_family(client, alice["headers"])


@pytest.fixture
def joined_family(client: TestClient, family: dict, bob: dict) -> dict[str, Any]:
    """Alice's family with Bob joined as a Member."""
    response = client.post(
        f"/api/families/{family['id']}/join",
        json={"passcode": family["passcode"], "relationship": "Brother"},
        headers=bob["headers"],
    )
    assert response.status_code == 200, response.text
    return family
