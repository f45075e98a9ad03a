"""Authentication routes."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from apps.api.auth.dependencies import get_current_user
from apps.api.auth.models import User
from apps.api.auth.schemas import (
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    StorageSettingsUpdate,
    StorageStatus,
    StorageStatusResponse,
    TokenRefresh,
    TokenResponse,
    UserEnvelope,
    UserLogin,
    UserRegister,
    UserResponse,
)
from apps.api.auth.service import (
    authenticate_user,
    create_tokens,
    create_user,
    get_token_expiry_seconds,
    refresh_tokens,
    revoke_all_user_tokens,
    revoke_refresh_token,
    update_storage_settings,
)
from apps.api.db import get_db
from apps.api.ratelimit import get_client_ip, rate_limit_auth
from apps.api.storage import get_system_s3
from packages.shared.storage import S3FileStorage, UserStorageConfig, select_storage_backend

router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_client_info(request: Request) -> tuple[str | None, str | None]:
    """Extract user agent and IP from request."""
    return request.headers.get("user-agent"), get_client_ip(request)


@router.post(
    "/register",
    response_model=UserEnvelope,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_auth)],
)
def register(
    data: UserRegister,
    db: Session = Depends(get_db),
) -> UserEnvelope:
    """Register a new user account."""
    user = create_user(db, data)
    return UserEnvelope(data=UserResponse.model_validate(user))


@router.post(
    "/login",
    response_model=LoginResponse,
    dependencies=[Depends(rate_limit_auth)],
)
def login(
    data: UserLogin,
    request: Request,
    db: Session = Depends(get_db),
) -> LoginResponse:
    """Login with email and password."""
    user = authenticate_user(db, data.email, data.password)

    user_agent, ip_address = get_client_info(request)
    access_token, refresh_token = create_tokens(
        db, user, user_agent=user_agent, ip_address=ip_address
    )

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=get_token_expiry_seconds(),
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/refresh",
    response_model=TokenResponse,
    dependencies=[Depends(rate_limit_auth)],
)
def refresh(
    data: TokenRefresh,
    request: Request,
    db: Session = Depends(get_db),
) -> TokenResponse:
    """Refresh access token using refresh token.

    Implements refresh token rotation: the old refresh token is
    invalidated and a new one is issued.
    """
    user_agent, ip_address = get_client_info(request)
    access_token, new_refresh_token, _ = refresh_tokens(
        db,
        data.refresh_token,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return TokenResponse(
        access_token=access_token,
        refresh_token=new_refresh_token,
        expires_in=get_token_expiry_seconds(),
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    data: LogoutRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Logout user by revoking refresh token(s)."""
    if data.all_sessions:
        count = revoke_all_user_tokens(db, user.id)
        return MessageResponse(message=f"Logged out from all {count} sessions")

    if revoke_refresh_token(db, data.refresh_token):
        return MessageResponse(message="Logged out successfully")
    return MessageResponse(message="Token already revoked or not found")


@router.get("/me", response_model=UserEnvelope)
def get_me(user: User = Depends(get_current_user)) -> UserEnvelope:
    """Get current user profile."""
    return UserEnvelope(data=UserResponse.model_validate(user))


# =============================================================================
# Storage settings
# =============================================================================


def _storage_status(user: User, system_s3: S3FileStorage | None) -> StorageStatus:
    user_storage = UserStorageConfig.from_user(user)
    selection = select_storage_backend(
        user_storage, system_s3_configured=system_s3 is not None
    )
    return StorageStatus(
        backend=selection.backend.value,
        google_drive_connected=user_storage.has_google_drive,
        user_s3_enabled=user_storage.has_user_s3,
        user_s3_bucket=user.s3_bucket if user_storage.has_user_s3 else None,
        user_s3_region=user.s3_region if user_storage.has_user_s3 else None,
        system_s3_configured=system_s3 is not None,
    )


@router.get("/me/storage", response_model=StorageStatusResponse)
def get_storage_settings(
    user: User = Depends(get_current_user),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> StorageStatusResponse:
    """Report which backend the next upload would use."""
    return StorageStatusResponse(data=_storage_status(user, system_s3))


@router.put("/me/storage", response_model=StorageStatusResponse)
def put_storage_settings(
    data: StorageSettingsUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> StorageStatusResponse:
    """Set or clear the user's own S3 bucket."""
    user = update_storage_settings(db, user, data)
    return StorageStatusResponse(data=_storage_status(user, system_s3))
