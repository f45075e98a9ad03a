"""Storage backend selection for an upload request."""

from dataclasses import dataclass
from datetime import datetime, timedelta
import enum
import logging
import time
from typing import Any

logger = logging.getLogger(__name__)

# Same margin google-auth uses before it refreshes a token by itself
TOKEN_REFRESH_THRESHOLD = timedelta(minutes=3, seconds=45)


class StorageBackend(str, enum.Enum):
    GOOGLE_DRIVE = "googleDrive"
    USER_S3 = "userS3"
    SYSTEM_S3 = "systemS3"
    LOCAL = "local"

    @property
    def source(self) -> str:
        """Descriptor source tag written by this backend."""
        if self in (StorageBackend.USER_S3, StorageBackend.SYSTEM_S3):
            return "s3"
        return self.value


@dataclass
class UserStorageConfig:
    """The storage-relevant subset of a user record."""

    google_drive_tokens: dict[str, Any] | None = None
    google_drive_root_folder_id: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_enabled: bool = False

    @classmethod
    def from_user(cls, user: Any) -> "UserStorageConfig":
        return cls(
            google_drive_tokens=user.google_drive_tokens,
            google_drive_root_folder_id=user.google_drive_root_folder_id,
            s3_access_key_id=user.s3_access_key_id,
            s3_secret_access_key=user.s3_secret_access_key,
            s3_bucket=user.s3_bucket,
            s3_region=user.s3_region,
            s3_enabled=bool(user.s3_enabled),
        )

    @property
    def has_google_drive(self) -> bool:
        return bool(self.google_drive_tokens and self.google_drive_tokens.get("access_token"))

    @property
    def has_user_s3(self) -> bool:
        return bool(
            self.s3_enabled
            and self.s3_access_key_id
            and self.s3_secret_access_key
            and self.s3_bucket
        )


@dataclass(frozen=True)
class StorageSelection:
    """
    Outcome of backend selection.

    `credentials` carries what the chosen backend needs from the user
    record; `needs_token_refresh` asks the caller to refresh the Drive
    token before use and persist the result.
    """

    backend: StorageBackend
    credentials: dict[str, Any] | None = None
    needs_token_refresh: bool = False


def _token_expired(tokens: dict[str, Any], now: datetime | None) -> bool:
    expiry_ms = tokens.get("expiry_date")
    if not expiry_ms:
        return False
    now_ms = (now.timestamp() if now else time.time()) * 1000
    margin_ms = TOKEN_REFRESH_THRESHOLD.total_seconds() * 1000
    return now_ms >= float(expiry_ms) - margin_ms


def select_storage_backend(
    user_storage: UserStorageConfig,
    system_s3_configured: bool,
    now: datetime | None = None,
) -> StorageSelection:
    """
    Pick the single backend used for every file of one upload request.

    Priority (first match wins): Google Drive, the user's own S3 bucket,
    the system S3 bucket, local disk. No capability probing is done.
    """
    if user_storage.has_google_drive:
        tokens = dict(user_storage.google_drive_tokens)
        selection = StorageSelection(
            backend=StorageBackend.GOOGLE_DRIVE,
            credentials=tokens,
            needs_token_refresh=_token_expired(tokens, now),
        )
    elif user_storage.has_user_s3:
        selection = StorageSelection(
            backend=StorageBackend.USER_S3,
            credentials={
                "aws_access_key_id": user_storage.s3_access_key_id,
                "aws_secret_access_key": user_storage.s3_secret_access_key,
                "bucket": user_storage.s3_bucket,
                "region": user_storage.s3_region or "us-east-1",
            },
        )
    elif system_s3_configured:
        selection = StorageSelection(backend=StorageBackend.SYSTEM_S3)
    else:
        selection = StorageSelection(backend=StorageBackend.LOCAL)

    logger.info(
        f"Selected storage backend {selection.backend.value} "
        f"(drive={user_storage.has_google_drive}, user_s3={user_storage.has_user_s3}, "
        f"system_s3={system_s3_configured})"
    )
    return selection
