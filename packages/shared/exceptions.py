"""Shared exception classes, classification and handlers."""

import logging
from typing import Any

import httpx
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.detail = detail or {}
        super().__init__(self.message)


class ValidationError(AppException):
    """Missing or malformed input."""

    def __init__(
        self,
        message: str,
        errors: list[Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"errors": errors} if errors else None,
        )


class AuthError(AppException):
    """Missing or invalid credentials."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppException):
    """Authenticated but not allowed (wrong role, not a family member)."""

    def __init__(self, message: str = "Not authorized") -> None:
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(
        self,
        resource: str,
        identifier: str | None = None,
    ) -> None:
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
        )


class ConflictError(AppException):
    """Request conflicts with existing state."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, status_code=status.HTTP_409_CONFLICT)


class UpstreamError(AppException):
    """A dependency (S3, Drive, SendGrid, database) failed."""

    def __init__(
        self,
        message: str,
        hint: str | None = None,
        unavailable: bool = False,
    ) -> None:
        self.hint = hint
        super().__init__(
            message=message,
            status_code=(
                status.HTTP_503_SERVICE_UNAVAILABLE
                if unavailable
                else status.HTTP_502_BAD_GATEWAY
            ),
            detail={"hint": hint} if hint else None,
        )


def classify_exception(exc: Exception) -> AppException:
    """Map any exception onto the application error taxonomy."""
    if isinstance(exc, AppException):
        return exc
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "Unknown")
        return UpstreamError(
            f"S3 request failed ({code})",
            hint="Check the bucket name, region and access keys.",
        )
    if isinstance(exc, BotoCoreError):
        return UpstreamError(
            "S3 is unreachable",
            hint="Check network access to the S3 endpoint.",
            unavailable=True,
        )
    if isinstance(exc, RefreshError):
        return UpstreamError(
            "Google Drive token could not be refreshed",
            hint="Reconnect your Google Drive account.",
        )
    if isinstance(exc, HttpError):
        return UpstreamError(
            f"Google Drive request failed ({exc.resp.status})",
            hint="Reconnect your Google Drive account if the problem persists.",
        )
    if isinstance(exc, httpx.HTTPError):
        return UpstreamError("Outbound HTTP request failed", unavailable=True)
    if isinstance(exc, OperationalError):
        return UpstreamError(
            "Database unavailable",
            hint="Check DATABASE_URL and that the database server is running.",
            unavailable=True,
        )
    return AppException("Internal server error")


def error_response(
    status_code: int,
    message: str,
    detail: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the `{success: false, message}` error envelope."""
    content: dict[str, Any] = {"success": False, "message": message}
    if detail:
        content["detail"] = detail
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def app_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle AppException and any unexpected exception."""
    app_exc = classify_exception(exc)
    if app_exc.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {app_exc.message}",
            exc_info=exc,
        )
    return error_response(app_exc.status_code, app_exc.message, app_exc.detail)


async def http_exception_handler(
    request: Request,
    exc: HTTPException,
) -> JSONResponse:
    """Render HTTPException raised by dependencies in the shared envelope."""
    if isinstance(exc.detail, dict):
        message = exc.detail.get("message", "Request failed")
        detail = exc.detail
    else:
        message = str(exc.detail)
        detail = None
    return error_response(exc.status_code, message, detail, headers=exc.headers)


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Request validation errors are client errors (400)."""
    errors = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    message = errors[0]["msg"] if errors else "Invalid request"
    return error_response(
        status.HTTP_400_BAD_REQUEST, message, {"errors": errors}
    )
