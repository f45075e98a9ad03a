"""
Tests for the error taxonomy and the `{success: false, message}` envelope.
"""

from types import SimpleNamespace

import httpx
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from fastapi.testclient import TestClient
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError
from sqlalchemy.exc import OperationalError

from apps.api.main import create_app
from packages.shared.exceptions import (
    AppException,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
    classify_exception,
)


class TestClassifyException:
    def test_app_exceptions_pass_through(self):
        exc = ConflictError("Email already registered")
        assert classify_exception(exc) is exc

    def test_s3_client_error_is_bad_gateway(self):
        exc = ClientError({"Error": {"Code": "NoSuchBucket", "Message": "x"}}, "PutObject")

        result = classify_exception(exc)

        assert isinstance(result, UpstreamError)
        assert result.status_code == 502
        assert "NoSuchBucket" in result.message
        assert result.detail["hint"]

    def test_s3_unreachable_is_unavailable(self):
        exc = EndpointConnectionError(endpoint_url="http://minio:9000")
        assert classify_exception(exc).status_code == 503

    def test_drive_refresh_error(self):
        result = classify_exception(RefreshError("invalid_grant"))
        assert result.status_code == 502
        assert "Reconnect" in result.detail["hint"]

    def test_drive_http_error(self):
        exc = HttpError(SimpleNamespace(status=403, reason="Forbidden"), b"{}")
        result = classify_exception(exc)
        assert result.status_code == 502
        assert "403" in result.message

    def test_outbound_http_error(self):
        result = classify_exception(httpx.ConnectError("refused"))
        assert result.status_code == 503

    def test_database_unavailable(self):
        exc = OperationalError("SELECT 1", {}, Exception("connection refused"))
        result = classify_exception(exc)
        assert result.status_code == 503
        assert result.message == "Database unavailable"

    def test_unknown_is_internal(self):
        result = classify_exception(KeyError("boom"))
        assert result.status_code == 500
        assert result.message == "Internal server error"

    @pytest.mark.parametrize(
        "exc,status_code",
        [
            (ValidationError("bad"), 400),
            (NotFoundError("Memory"), 404),
            (ConflictError("dup"), 409),
            (UpstreamError("down", unavailable=True), 503),
        ],
    )
    def test_status_codes(self, exc: AppException, status_code: int):
        assert exc.status_code == status_code


class TestEnvelope:
    @pytest.fixture
    def failing_client(self, test_settings):
        app = create_app(test_settings)

        @app.get("/boom")
        def boom():
            raise RuntimeError("secret internals")

        @app.get("/not-found")
        def not_found():
            raise NotFoundError("Memory", "abc")

        return TestClient(app, raise_server_exceptions=False)

    def test_unexpected_error_hides_internals(self, failing_client: TestClient):
        response = failing_client.get("/boom")

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Internal server error"}
        assert "secret internals" not in response.text

    def test_app_exception_envelope(self, failing_client: TestClient):
        response = failing_client.get("/not-found")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "message": "Memory with id 'abc' not found",
        }

    def test_unknown_route_uses_envelope(self, failing_client: TestClient):
        response = failing_client.get("/api/nowhere")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_validation_error_is_400(self, client: TestClient):
        response = client.post("/api/auth/login", json={"email": "not-an-email"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["detail"]["errors"]
