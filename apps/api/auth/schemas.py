"""Pydantic schemas for authentication and per-user storage settings."""

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

from apps.api.auth.models import UserRole

# =============================================================================
# Request Schemas
# =============================================================================


class UserRegister(BaseModel):
    """User registration request."""

    first_name: str
    last_name: str
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password strength."""
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        if not re.search(r"[A-Z]", v):
            raise ValueError("Password must contain an uppercase letter")
        if not re.search(r"[a-z]", v):
            raise ValueError("Password must contain a lowercase letter")
        if not re.search(r"\d", v):
            raise ValueError("Password must contain a digit")
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        return v


class UserLogin(BaseModel):
    """User login request."""

    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class TokenRefresh(BaseModel):
    """Token refresh request."""

    refresh_token: str


class LogoutRequest(BaseModel):
    """Logout request."""

    refresh_token: str
    all_sessions: bool = False


class StorageSettingsUpdate(BaseModel):
    """Set or clear the user's own S3 bucket."""

    s3_enabled: bool
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_bucket: str | None = None
    s3_region: str | None = "us-east-1"


# =============================================================================
# Response Schemas
# =============================================================================


class UserResponse(BaseModel):
    """User response (public info)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime


class TokenResponse(BaseModel):
    """Token response after refresh."""

    success: bool = True
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class LoginResponse(TokenResponse):
    """Login response with tokens and user info."""

    user: UserResponse


class UserEnvelope(BaseModel):
    success: bool = True
    data: UserResponse


class MessageResponse(BaseModel):
    """Simple message response."""

    success: bool = True
    message: str


class StorageStatus(BaseModel):
    """Which backend an upload would use now; never includes secrets."""

    backend: str
    google_drive_connected: bool
    user_s3_enabled: bool
    user_s3_bucket: str | None = None
    user_s3_region: str | None = None
    system_s3_configured: bool


class StorageStatusResponse(BaseModel):
    success: bool = True
    data: StorageStatus
