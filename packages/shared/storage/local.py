"""Local disk storage backend, used when no remote backend is configured."""

import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from packages.shared.storage.base import (
    FileStorageBackend,
    MediaDescriptor,
    UploadedFile,
    UploadTarget,
    generate_filename,
)

logger = logging.getLogger(__name__)


class LocalFileStorage(FileStorageBackend):
    """
    Local disk storage backend.

    Files are written flat into the upload directory as
    `<epoch-ms>-<hex>.<ext>` and served from `<base_url>/uploads/<name>`.
    """

    def __init__(self, base_path: str = "./uploads", base_url: str = ""):
        """
        Initialize local file storage.

        Args:
            base_path: Directory files are written to
            base_url: Public base URL the API is reachable at
        """
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")

    @property
    def backend_name(self) -> str:
        return "local"

    def url_for(self, filename: str) -> str:
        return f"{self.base_url}/uploads/{filename}"

    async def save(
        self,
        file: UploadedFile,
        target: UploadTarget,
    ) -> MediaDescriptor:
        """Write the file to disk; the target is not used for local layout."""
        filename = generate_filename(file.extension)
        full_path = self.base_path / filename

        await aiofiles.os.makedirs(self.base_path, exist_ok=True)
        async with aiofiles.open(full_path, "wb") as f:
            await f.write(file.content)

        url = self.url_for(filename)
        logger.info(f"Stored {file.filename} locally as {filename} ({file.size} bytes)")
        return MediaDescriptor(
            type=file.media_type,
            url=url,
            thumbnail=url,
            source="local",
            filename=filename,
        )

    async def delete(self, descriptor: MediaDescriptor) -> bool:
        """
        Delete the file behind a local descriptor.

        Returns:
            True if deleted, False if not found
        """
        if not descriptor.filename:
            return False
        # Only the basename is trusted so a stored value cannot escape the directory
        full_path = self.base_path / Path(descriptor.filename).name
        if full_path.exists():
            await aiofiles.os.remove(full_path)
            logger.info(f"Deleted local file {full_path.name}")
            return True
        return False
