"""
Upload orchestration for the API layer.

Picks the storage backend for a request, validates incoming files,
writes them in order and applies one fallback policy for every route.

Usage:
    uploader = build_uploader(user, settings, system_s3)
    result = await uploader.upload(files, UploadTarget(family.name, event_name))
    apply_storage_state(user, result)
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache
import logging
from typing import Any, TypeVar

from fastapi import UploadFile
from sqlalchemy.orm import Session

from apps.api.config import Settings, get_settings
from packages.shared.exceptions import UpstreamError, ValidationError, classify_exception
from packages.shared.storage import (
    FileStorageBackend,
    GoogleDriveStorage,
    LocalFileStorage,
    MediaDescriptor,
    S3FileStorage,
    UploadedFile,
    UploadTarget,
    UserStorageConfig,
    build_storage_backend,
    get_local_storage,
    get_system_s3_storage,
    select_storage_backend,
)

logger = logging.getLogger(__name__)

MB = 1024 * 1024

T = TypeVar("T")

__all__ = [
    "MediaUploader",
    "UploadResult",
    "apply_storage_state",
    "build_uploader",
    "delete_stored_media",
    "get_system_s3",
    "is_system_object",
    "persist_upload",
    "read_upload_files",
    "sign_descriptor_url",
    "sign_media",
    "validate_files",
]


# =============================================================================
# System S3 singleton
# =============================================================================


@lru_cache(maxsize=1)
def _system_s3_storage() -> S3FileStorage | None:
    return get_system_s3_storage(get_settings())


def get_system_s3() -> S3FileStorage | None:
    """Dependency: the process-wide S3 backend (None when not configured)."""
    return _system_s3_storage()


# =============================================================================
# File intake and validation
# =============================================================================


async def read_upload_files(files: list[UploadFile] | None) -> list[UploadedFile]:
    """Read multipart files into memory, skipping empty form slots."""
    result = []
    for upload in files or []:
        if not upload.filename:
            continue
        content = await upload.read()
        result.append(
            UploadedFile(
                filename=upload.filename,
                content_type=upload.content_type or "application/octet-stream",
                content=content,
            )
        )
    return result


def _size_limit(content_type: str, settings: Settings) -> tuple[int, str]:
    if content_type.startswith("image/"):
        return settings.max_image_size_mb, "image"
    if content_type.startswith("video/"):
        return settings.max_video_size_mb, "video"
    return settings.max_document_size_mb, "document"


def validate_files(
    files: list[UploadedFile],
    settings: Settings,
    allow_video: bool = True,
    max_files: int | None = None,
) -> None:
    """
    Reject the request before any write happens.

    Raises:
        ValidationError: no files, too many, wrong type or too large
    """
    if not files:
        raise ValidationError("At least one file is required")
    if max_files is not None and len(files) > max_files:
        raise ValidationError(f"At most {max_files} files can be uploaded at once")

    for file in files:
        ctype = file.content_type
        allowed = ctype.startswith("image/") or (allow_video and ctype.startswith("video/"))
        if not allowed:
            kinds = "images and videos" if allow_video else "images"
            raise ValidationError(f"{file.filename}: only {kinds} are allowed")

        if file.size > settings.max_upload_size_mb * MB:
            raise ValidationError(
                f"{file.filename} exceeds the maximum upload size of "
                f"{settings.max_upload_size_mb}MB"
            )
        limit_mb, kind = _size_limit(ctype, settings)
        if file.size > limit_mb * MB:
            raise ValidationError(
                f"{file.filename} exceeds the {limit_mb}MB limit for {kind} files"
            )


# =============================================================================
# Uploader
# =============================================================================


@dataclass
class UploadResult:
    """Descriptors in input order plus storage state the caller must persist."""

    descriptors: list[MediaDescriptor] = field(default_factory=list)
    refreshed_tokens: dict[str, Any] | None = None
    root_folder_id: str | None = None
    fallbacks: int = 0


class MediaUploader:
    """
    Writes every file of one request to a single backend.

    When `fallback_to_local` is on, a failed remote write is retried once
    on local storage. Otherwise, or when the local write fails too, the
    whole upload fails with UpstreamError and nothing should be persisted.
    """

    def __init__(
        self,
        backend: FileStorageBackend,
        local: LocalFileStorage,
        fallback_to_local: bool = True,
    ):
        self.backend = backend
        self.local = local
        self.fallback_to_local = fallback_to_local

    async def _save_one(self, file: UploadedFile, target: UploadTarget) -> tuple[MediaDescriptor, bool]:
        try:
            return await self.backend.save(file, target), False
        except Exception as exc:
            if self.backend.backend_name == "local" or not self.fallback_to_local:
                error = classify_exception(exc)
                if not isinstance(error, UpstreamError):
                    error = UpstreamError(
                        f"Failed to store {file.filename} on {self.backend.backend_name}",
                        hint="Check the storage configuration and try again.",
                    )
                raise error from exc
            logger.warning(
                f"{self.backend.backend_name} write failed for {file.filename}, "
                f"falling back to local storage: {exc}"
            )

        try:
            return await self.local.save(file, target), True
        except OSError as exc:
            raise UpstreamError(
                f"Failed to store {file.filename}",
                hint="Remote storage failed and the local upload directory is not writable.",
            ) from exc

    async def discard(self, descriptors: list[MediaDescriptor]) -> None:
        """
        Best-effort removal of files written by this uploader.

        Used when a request fails after some files were stored; the
        descriptors were never persisted so remote objects go too.
        """
        for descriptor in descriptors:
            store = self.local if descriptor.source == "local" else self.backend
            if store.backend_name != descriptor.source:
                continue
            try:
                await store.delete(descriptor)
            except Exception as e:
                logger.warning(
                    f"Could not discard {descriptor.source} file {descriptor.filename}: {e}"
                )

    async def upload(
        self,
        files: list[UploadedFile],
        target: UploadTarget,
    ) -> UploadResult:
        result = UploadResult()
        try:
            for file in files:
                descriptor, fell_back = await self._save_one(file, target)
                result.descriptors.append(descriptor)
                if fell_back:
                    result.fallbacks += 1
        except Exception:
            if result.descriptors:
                logger.warning(
                    f"Upload failed after {len(result.descriptors)} of {len(files)} files, "
                    f"discarding the stored ones"
                )
                await self.discard(result.descriptors)
            raise

        if isinstance(self.backend, GoogleDriveStorage):
            result.refreshed_tokens = self.backend.refreshed_tokens
            result.root_folder_id = self.backend.root_folder_id
        return result


def build_uploader(
    user: Any,
    settings: Settings,
    system_s3: S3FileStorage | None,
) -> MediaUploader:
    """Select the backend for this request and wrap it in an uploader."""
    user_storage = UserStorageConfig.from_user(user)
    selection = select_storage_backend(
        user_storage,
        system_s3_configured=system_s3 is not None,
    )
    backend = build_storage_backend(
        selection,
        settings,
        system_s3=system_s3,
        root_folder_id=user_storage.google_drive_root_folder_id,
    )
    return MediaUploader(
        backend=backend,
        local=get_local_storage(settings),
        fallback_to_local=settings.storage_fallback_to_local,
    )


def apply_storage_state(user: Any, result: UploadResult) -> None:
    """Copy refreshed Drive tokens and the root folder id onto the user."""
    if result.refreshed_tokens:
        user.google_drive_tokens = result.refreshed_tokens
    if result.root_folder_id and result.root_folder_id != user.google_drive_root_folder_id:
        user.google_drive_root_folder_id = result.root_folder_id


# =============================================================================
# Persisting an upload
# =============================================================================


async def persist_upload(
    db: Session,
    uploader: MediaUploader,
    result: UploadResult,
    persist: Callable[[], T],
) -> T:
    """
    Run the blocking database work of an upload route in a worker thread.

    `persist` adds the rows and commits. If it raises, the session is
    rolled back and the files written for this request are discarded.
    """
    try:
        return await asyncio.to_thread(persist)
    except Exception:
        await asyncio.to_thread(db.rollback)
        await uploader.discard(result.descriptors)
        raise


# =============================================================================
# Reads and deletes
# =============================================================================


def is_system_object(
    descriptor: dict[str, Any],
    system_s3: S3FileStorage | None,
) -> bool:
    """True for an S3 object that lives in the system bucket."""
    return (
        system_s3 is not None
        and descriptor.get("source") == "s3"
        and bool(descriptor.get("s3_key"))
        and descriptor.get("bucket") == system_s3.bucket
    )


async def sign_descriptor_url(
    descriptor: dict[str, Any],
    settings: Settings,
    system_s3: S3FileStorage | None,
) -> dict[str, Any]:
    """
    Re-sign a system-bucket descriptor's URL when that bucket is private.

    Objects in a user's own bucket keep the URL they were stored with.
    """
    if settings.s3_bucket_private and is_system_object(descriptor, system_s3):
        url = await system_s3.generate_presigned_url(descriptor["s3_key"])
        return {**descriptor, "url": url, "thumbnail": url}
    return descriptor


async def delete_stored_media(descriptors: list[MediaDescriptor], settings: Settings) -> int:
    """
    Best-effort removal of stored files.

    Only local files are deleted; remote objects are left in place.
    """
    local = get_local_storage(settings)
    removed = 0
    for descriptor in descriptors:
        if descriptor.source == "local":
            try:
                if await local.delete(descriptor):
                    removed += 1
            except OSError as e:
                logger.warning(f"Could not delete local file {descriptor.filename}: {e}")
        else:
            logger.info(
                f"Leaving {descriptor.source} object in place for {descriptor.filename}"
            )
    return removed


async def sign_media(items: list[Any], settings: Settings, system_s3: S3FileStorage | None) -> None:
    """Re-sign the URLs of serialized media items in place."""
    if not settings.s3_bucket_private or system_s3 is None:
        return
    for item in items:
        signed = await sign_descriptor_url(
            {
                "source": item.source,
                "s3_key": item.s3_key,
                "bucket": item.bucket,
                "url": item.url,
                "thumbnail": item.thumbnail,
            },
            settings,
            system_s3,
        )
        item.url = signed["url"]
        item.thumbnail = signed["thumbnail"]
