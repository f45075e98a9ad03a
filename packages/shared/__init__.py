"""Shared utilities package."""

from packages.shared.exceptions import (
    AppException,
    AuthError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UpstreamError,
    ValidationError,
    classify_exception,
)

__all__ = [
    "AppException",
    "AuthError",
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "UpstreamError",
    "ValidationError",
    "classify_exception",
]
