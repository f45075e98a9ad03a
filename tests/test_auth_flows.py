"""
Integration tests for authentication flows.

Tests cover:
1. Register -> 201, duplicate email -> 409, weak password -> 400
2. Login -> access + refresh tokens, wrong password -> 401
3. /auth/me with and without a valid token
4. Refresh rotation: A -> B, reusing A -> 401
5. Logout revokes the refresh token
6. Storage settings report the selected backend without secrets
"""

from datetime import timedelta
from uuid import UUID

from fastapi.testclient import TestClient
from sqlalchemy import select

from apps.api.auth.models import User
from apps.api.auth.security import create_access_token
from conftest import DEFAULT_PASSWORD, auth_header, register_and_login

NEW_USER = {
    "first_name": "Carol",
    "last_name": "Jones",
    "email": "Carol@FamiPortal.org",
    "password": DEFAULT_PASSWORD,
}


# =============================================================================
# Registration and login
# =============================================================================


class TestRegistration:
    def test_register_success(self, client: TestClient):
        response = client.post("/api/auth/register", json=NEW_USER)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["email"] == "carol@famiportal.org"
        assert body["data"]["first_name"] == "Carol"
        assert "password_hash" not in body["data"]

    def test_register_duplicate_email(self, client: TestClient):
        client.post("/api/auth/register", json=NEW_USER)

        response = client.post("/api/auth/register", json=NEW_USER)

        assert response.status_code == 409
        assert response.json() == {"success": False, "message": "Email already registered"}

    def test_register_weak_password(self, client: TestClient):
        response = client.post("/api/auth/register", json={**NEW_USER, "password": "short"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "8 characters" in body["message"]


class TestLogin:
    def test_login_success(self, client: TestClient):
        session = register_and_login(client, "dave@famiportal.org")

        assert session["access_token"]
        assert session["refresh_token"]
        assert session["user"]["email"] == "dave@famiportal.org"

    def test_login_wrong_password(self, client: TestClient):
        client.post("/api/auth/register", json=NEW_USER)

        response = client.post(
            "/api/auth/login",
            json={"email": NEW_USER["email"], "password": "WrongPass999"},
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    def test_login_inactive_user(self, client: TestClient, db_session):
        client.post("/api/auth/register", json=NEW_USER)
        user = db_session.execute(
            select(User).where(User.email == "carol@famiportal.org")
        ).scalar_one()
        user.is_active = False
        db_session.commit()

        response = client.post(
            "/api/auth/login",
            json={"email": NEW_USER["email"], "password": DEFAULT_PASSWORD},
        )

        assert response.status_code == 403


class TestProtectedEndpoint:
    def test_me_with_valid_token(self, client: TestClient, alice):
        response = client.get("/api/auth/me", headers=alice["headers"])

        assert response.status_code == 200
        assert response.json()["data"]["email"] == "alice@famiportal.org"

    def test_me_without_token(self, client: TestClient):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Not authenticated"}

    def test_me_with_expired_token(self, client: TestClient, alice):
        token = create_access_token(
            UUID(alice["user"]["id"]), "user", expires_delta=timedelta(seconds=-1)
        )

        response = client.get("/api/auth/me", headers=auth_header(token))

        assert response.status_code == 401


# =============================================================================
# Refresh rotation and logout
# =============================================================================


class TestTokenRefresh:
    def test_rotation_invalidates_old_token(self, client: TestClient, alice):
        token_a = alice["refresh_token"]

        response = client.post("/api/auth/refresh", json={"refresh_token": token_a})
        assert response.status_code == 200
        token_b = response.json()["refresh_token"]
        assert token_b != token_a

        reuse = client.post("/api/auth/refresh", json={"refresh_token": token_a})
        assert reuse.status_code == 401
        assert reuse.json()["success"] is False

        # The rotated token still works exactly once
        again = client.post("/api/auth/refresh", json={"refresh_token": token_b})
        assert again.status_code == 200

    def test_refresh_with_unknown_token(self, client: TestClient):
        response = client.post("/api/auth/refresh", json={"refresh_token": "nope"})
        assert response.status_code == 401

    def test_new_access_token_works(self, client: TestClient, alice):
        response = client.post(
            "/api/auth/refresh", json={"refresh_token": alice["refresh_token"]}
        )
        access_token = response.json()["access_token"]

        me = client.get("/api/auth/me", headers=auth_header(access_token))

        assert me.status_code == 200


class TestLogout:
    def test_logout_revokes_refresh_token(self, client: TestClient, alice):
        response = client.post(
            "/api/auth/logout",
            json={"refresh_token": alice["refresh_token"]},
            headers=alice["headers"],
        )
        assert response.status_code == 200

        refresh = client.post(
            "/api/auth/refresh", json={"refresh_token": alice["refresh_token"]}
        )
        assert refresh.status_code == 401


# =============================================================================
# Storage settings
# =============================================================================


class TestStorageSettings:
    def test_defaults_to_local(self, client: TestClient, alice):
        response = client.get("/api/auth/me/storage", headers=alice["headers"])

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["backend"] == "local"
        assert data["google_drive_connected"] is False
        assert data["system_s3_configured"] is False

    def test_enable_user_s3(self, client: TestClient, alice):
        response = client.put(
            "/api/auth/me/storage",
            json={
                "s3_enabled": True,
                "s3_access_key_id": "AKIAUSER",
                "s3_secret_access_key": "super-secret",
                "s3_bucket": "alice-photos",
                "s3_region": "eu-west-1",
            },
            headers=alice["headers"],
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["backend"] == "userS3"
        assert data["user_s3_bucket"] == "alice-photos"
        assert "super-secret" not in response.text

    def test_enable_user_s3_requires_all_fields(self, client: TestClient, alice):
        response = client.put(
            "/api/auth/me/storage",
            json={"s3_enabled": True, "s3_bucket": "alice-photos"},
            headers=alice["headers"],
        )

        assert response.status_code == 400
