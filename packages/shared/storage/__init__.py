"""
Media storage backends for uploads.

Provides abstract interface and implementations for:
- Local disk storage (fallback when nothing else is configured)
- S3 storage (user or system credentials)
- Google Drive storage (user OAuth tokens)
"""

from packages.shared.storage.base import (
    FileStorageBackend,
    MediaDescriptor,
    UploadedFile,
    UploadTarget,
)
from packages.shared.storage.google_drive import GoogleDriveStorage
from packages.shared.storage.local import LocalFileStorage
from packages.shared.storage.s3 import S3FileStorage
from packages.shared.storage.selector import (
    StorageBackend,
    StorageSelection,
    UserStorageConfig,
    select_storage_backend,
)
from packages.shared.storage.factory import (
    build_storage_backend,
    get_local_storage,
    get_system_s3_storage,
)

__all__ = [
    "FileStorageBackend",
    "GoogleDriveStorage",
    "LocalFileStorage",
    "MediaDescriptor",
    "S3FileStorage",
    "StorageBackend",
    "StorageSelection",
    "UploadTarget",
    "UploadedFile",
    "UserStorageConfig",
    "build_storage_backend",
    "get_local_storage",
    "get_system_s3_storage",
    "select_storage_backend",
]
