"""S3 (or S3-compatible) storage backend."""

import logging
import re
from io import BytesIO

import aioboto3

from packages.shared.storage.base import (
    FileStorageBackend,
    MediaDescriptor,
    UploadedFile,
    UploadTarget,
    generate_filename,
)

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_key_segment(name: str) -> str:
    """Replace anything outside `[A-Za-z0-9_-]` with an underscore."""
    return _UNSAFE_KEY_CHARS.sub("_", name)


class S3FileStorage(FileStorageBackend):
    """
    S3 storage backend.

    Used with either a user's own bucket credentials (one instance per
    request) or the system-wide credentials (one instance per process).
    Keys follow `uploads/<family>/<event-or-album>/<filename>`.
    """

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        endpoint_url: str | None = None,
        prefix: str = "uploads",
        private: bool = False,
        signed_url_expiry: int = 3600,
    ):
        """
        Initialize S3 file storage.

        Args:
            bucket: S3 bucket name
            region: AWS region
            aws_access_key_id: AWS access key (uses env/IAM if not set)
            aws_secret_access_key: AWS secret key (uses env/IAM if not set)
            endpoint_url: Custom endpoint URL for MinIO (None for AWS S3)
            prefix: Key prefix for all uploads
            private: Return presigned URLs instead of public object URLs
            signed_url_expiry: Lifetime of presigned URLs in seconds
        """
        self.bucket = bucket
        self.region = region or "us-east-1"
        self.endpoint_url = endpoint_url
        self.prefix = prefix.strip("/")
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self.private = private
        self.signed_url_expiry = signed_url_expiry
        self._session = aioboto3.Session()

    @property
    def backend_name(self) -> str:
        return "s3"

    def _get_client_kwargs(self) -> dict:
        """Build kwargs for S3 client."""
        kwargs = {
            "region_name": self.region,
        }
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.aws_access_key_id and self.aws_secret_access_key:
            kwargs["aws_access_key_id"] = self.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.aws_secret_access_key
        return kwargs

    def build_key(self, filename: str, target: UploadTarget) -> str:
        """
        Build the object key for a generated filename.

        The event/album segment is only used under a family segment.
        """
        parts = [self.prefix]
        if target.family_name:
            parts.append(sanitize_key_segment(target.family_name))
            if target.folder_name:
                parts.append(sanitize_key_segment(target.folder_name))
        parts.append(filename)
        return "/".join(parts)

    def public_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def save(
        self,
        file: UploadedFile,
        target: UploadTarget,
    ) -> MediaDescriptor:
        """
        Upload a file to the bucket.

        Returns:
            MediaDescriptor with the object key and a fetchable URL
        """
        filename = generate_filename(file.extension)
        key = self.build_key(filename, target)

        async with self._session.client("s3", **self._get_client_kwargs()) as s3:
            await s3.upload_fileobj(
                BytesIO(file.content),
                self.bucket,
                key,
                ExtraArgs={"ContentType": file.content_type},
            )

        if self.private:
            url = await self.generate_presigned_url(key)
        else:
            url = self.public_url(key)

        logger.info(f"Stored {file.filename} in s3://{self.bucket}/{key}")
        return MediaDescriptor(
            type=file.media_type,
            url=url,
            thumbnail=url,
            source="s3",
            filename=filename,
            s3_key=key,
            bucket=self.bucket,
        )

    async def delete(self, descriptor: MediaDescriptor) -> bool:
        """
        Delete an object from the bucket.

        Returns:
            True if deleted (S3 always returns success for delete)
        """
        if not descriptor.s3_key:
            return False
        async with self._session.client("s3", **self._get_client_kwargs()) as s3:
            await s3.delete_object(Bucket=self.bucket, Key=descriptor.s3_key)
        return True

    async def generate_presigned_url(
        self,
        key: str,
        expires_in: int | None = None,
    ) -> str:
        """
        Generate a presigned GET URL for a private object.

        Args:
            key: S3 key
            expires_in: URL expiration time in seconds

        Returns:
            Presigned URL string
        """
        async with self._session.client("s3", **self._get_client_kwargs()) as s3:
            url = await s3.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in or self.signed_url_expiry,
            )
            return url
