"""Abstract base class and value types for media storage backends."""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
import os
import re
import secrets
import time
from typing import Any, Literal

MediaSource = Literal["local", "s3", "googleDrive"]
MediaType = Literal["image", "video"]

_SAFE_EXTENSION = re.compile(r"[a-z0-9]{1,10}")


@dataclass
class UploadedFile:
    """One in-memory file taken from a multipart request."""

    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def media_type(self) -> MediaType:
        return "video" if self.content_type.startswith("video/") else "image"

    @property
    def extension(self) -> str:
        ext = os.path.splitext(self.filename)[1].lstrip(".").lower()
        if _SAFE_EXTENSION.fullmatch(ext):
            return ext
        # Fall back to the MIME subtype (image/jpeg -> jpeg, image/svg+xml -> svg)
        subtype = self.content_type.split("/")[-1].split(";")[0].strip().lower()
        subtype = re.split(r"[^a-z0-9]", subtype)[0][:10]
        return subtype or "bin"


@dataclass
class UploadTarget:
    """Naming context used to build folder structure on remote backends."""

    family_name: str | None = None
    folder_name: str | None = None


@dataclass
class MediaDescriptor:
    """
    Normalized record of one stored file.

    `source` is set by the backend that wrote the file and never changes.
    `bucket` names the S3 bucket an `s3` object lives in, so reads can
    tell system-bucket objects from ones in a user's own bucket.
    """

    type: MediaType
    url: str
    thumbnail: str
    source: MediaSource
    filename: str | None = None
    s3_key: str | None = None
    google_drive_id: str | None = None
    bucket: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def generate_filename(extension: str) -> str:
    """Collision-resistant name: `<epoch-ms>-<16 hex>.<ext>`."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}.{extension}"


class FileStorageBackend(ABC):
    """
    Abstract base for media storage backends.

    Provides a common interface for writing uploaded files and removing
    them again, shared by local disk, S3 and Google Drive storage.
    """

    @property
    @abstractmethod
    def backend_name(self) -> MediaSource:
        """Return the descriptor source tag of this backend."""
        pass

    @abstractmethod
    async def save(
        self,
        file: UploadedFile,
        target: UploadTarget,
    ) -> MediaDescriptor:
        """
        Store a file and describe where it ended up.

        Args:
            file: The uploaded file with its declared content type
            target: Family and event/album names for folder layout

        Returns:
            MediaDescriptor tagged with this backend's source
        """
        pass

    @abstractmethod
    async def delete(self, descriptor: MediaDescriptor) -> bool:
        """
        Remove the stored file behind a descriptor.

        Returns:
            True if a file was removed, False otherwise
        """
        pass
