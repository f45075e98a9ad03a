"""Factory for creating storage backends from a selection and settings."""

from typing import TYPE_CHECKING

from packages.shared.storage.base import FileStorageBackend
from packages.shared.storage.google_drive import GoogleDriveStorage
from packages.shared.storage.local import LocalFileStorage
from packages.shared.storage.s3 import S3FileStorage
from packages.shared.storage.selector import StorageBackend, StorageSelection

if TYPE_CHECKING:
    from apps.api.config import Settings


def get_local_storage(settings: "Settings") -> LocalFileStorage:
    return LocalFileStorage(
        base_path=settings.local_upload_path,
        base_url=settings.resolved_base_url,
    )


def get_system_s3_storage(settings: "Settings") -> S3FileStorage | None:
    """
    Create the process-wide S3 backend, or None when not configured.

    Args:
        settings: Application settings

    Returns:
        S3FileStorage using the system credentials
    """
    if not settings.system_s3_configured:
        return None
    return S3FileStorage(
        bucket=settings.aws_s3_bucket,
        region=settings.aws_region,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        endpoint_url=settings.s3_endpoint_url,
        private=settings.s3_bucket_private,
        signed_url_expiry=settings.s3_signed_url_expiry_seconds,
    )


def build_storage_backend(
    selection: StorageSelection,
    settings: "Settings",
    system_s3: S3FileStorage | None = None,
    root_folder_id: str | None = None,
) -> FileStorageBackend:
    """
    Turn a storage selection into a ready backend instance.

    User-credential backends are created fresh for each call; the system
    S3 backend is the shared instance passed in by the caller.
    """
    if selection.backend == StorageBackend.GOOGLE_DRIVE:
        return GoogleDriveStorage(
            tokens=selection.credentials or {},
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            root_folder_name=settings.google_drive_root_folder,
            root_folder_id=root_folder_id,
            needs_token_refresh=selection.needs_token_refresh,
        )
    if selection.backend == StorageBackend.USER_S3:
        creds = selection.credentials or {}
        return S3FileStorage(
            bucket=creds["bucket"],
            region=creds.get("region") or "us-east-1",
            aws_access_key_id=creds["aws_access_key_id"],
            aws_secret_access_key=creds["aws_secret_access_key"],
        )
    if selection.backend == StorageBackend.SYSTEM_S3:
        if system_s3 is None:
            system_s3 = get_system_s3_storage(settings)
        if system_s3 is not None:
            return system_s3
    return get_local_storage(settings)
