"""
Unit tests for upload validation and the uploader's fallback policy.

Tests cover:
1. Validation rejects empty, oversized, too many and wrong-type files
2. Files are stored in input order
3. Remote failure falls back to local storage when enabled
4. Remote failure fails the whole upload when fallback is disabled
5. Refreshed Drive tokens and the root folder id reach the caller
6. A failure part-way through removes the files already written
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from apps.api.config import Settings
from apps.api.storage import (
    MediaUploader,
    UploadResult,
    apply_storage_state,
    build_uploader,
    persist_upload,
    validate_files,
)
from packages.shared.exceptions import UpstreamError, ValidationError
from packages.shared.storage import (
    GoogleDriveStorage,
    LocalFileStorage,
    MediaDescriptor,
    S3FileStorage,
    UploadedFile,
    UploadTarget,
)

MB = 1024 * 1024


def make_file(name: str, content_type: str = "image/jpeg", size: int = 10) -> UploadedFile:
    return UploadedFile(filename=name, content_type=content_type, content=b"x" * size)


def s3_descriptor(name: str) -> MediaDescriptor:
    url = f"https://bucket.s3.us-east-1.amazonaws.com/uploads/{name}"
    return MediaDescriptor(
        type="image", url=url, thumbnail=url, source="s3", filename=name, s3_key=f"uploads/{name}"
    )


def failing_s3() -> MagicMock:
    backend = MagicMock(spec=S3FileStorage)
    backend.backend_name = "s3"
    backend.save = AsyncMock(
        side_effect=ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")
    )
    return backend


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(local_upload_path=str(tmp_path), base_url="http://api.test")


@pytest.fixture
def local(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(base_path=str(tmp_path), base_url="http://api.test")


# =============================================================================
# Validation
# =============================================================================


class TestValidateFiles:
    def test_no_files(self, settings):
        with pytest.raises(ValidationError, match="At least one file"):
            validate_files([], settings)

    def test_too_many_files(self, settings):
        files = [make_file(f"{i}.jpg") for i in range(3)]
        with pytest.raises(ValidationError, match="At most 2"):
            validate_files(files, settings, max_files=2)

    def test_rejects_non_media(self, settings):
        with pytest.raises(ValidationError, match="only images and videos"):
            validate_files([make_file("notes.pdf", "application/pdf")], settings)

    def test_albums_reject_video(self, settings):
        with pytest.raises(ValidationError, match="only images"):
            validate_files([make_file("clip.mp4", "video/mp4")], settings, allow_video=False)

    def test_image_size_limit(self, settings):
        with pytest.raises(ValidationError, match="10MB limit for image"):
            validate_files([make_file("big.jpg", size=10 * MB + 1)], settings)

    def test_video_allowed_up_to_its_own_limit(self, settings):
        validate_files([make_file("clip.mp4", "video/mp4", size=20 * MB)], settings)

    def test_accepts_valid_batch(self, settings):
        validate_files([make_file("a.jpg"), make_file("b.png", "image/png")], settings)


# =============================================================================
# Upload policy
# =============================================================================


class TestMediaUploader:
    @pytest.mark.asyncio
    async def test_preserves_input_order(self, local):
        uploader = MediaUploader(backend=local, local=local)
        files = [make_file(f"{i}.jpg") for i in range(4)]

        result = await uploader.upload(files, UploadTarget("Smith"))

        assert [d.source for d in result.descriptors] == ["local"] * 4
        assert len({d.filename for d in result.descriptors}) == 4
        assert result.fallbacks == 0

    @pytest.mark.asyncio
    async def test_remote_descriptors_pass_through(self, local):
        backend = MagicMock(spec=S3FileStorage)
        backend.backend_name = "s3"
        backend.save = AsyncMock(side_effect=[s3_descriptor("a.jpg"), s3_descriptor("b.jpg")])
        uploader = MediaUploader(backend=backend, local=local)

        result = await uploader.upload([make_file("a.jpg"), make_file("b.jpg")], UploadTarget())

        assert [d.filename for d in result.descriptors] == ["a.jpg", "b.jpg"]
        assert all(d.source == "s3" for d in result.descriptors)

    @pytest.mark.asyncio
    async def test_falls_back_to_local_when_enabled(self, local, tmp_path):
        uploader = MediaUploader(backend=failing_s3(), local=local, fallback_to_local=True)

        result = await uploader.upload([make_file("a.jpg"), make_file("b.jpg")], UploadTarget())

        assert result.fallbacks == 2
        assert [d.source for d in result.descriptors] == ["local", "local"]
        for descriptor in result.descriptors:
            assert (tmp_path / descriptor.filename).exists()

    @pytest.mark.asyncio
    async def test_fails_fast_when_fallback_disabled(self, local, tmp_path):
        uploader = MediaUploader(backend=failing_s3(), local=local, fallback_to_local=False)

        with pytest.raises(UpstreamError) as exc_info:
            await uploader.upload([make_file("a.jpg")], UploadTarget())

        assert exc_info.value.status_code == 502
        assert "AccessDenied" in exc_info.value.message
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_local_failure_is_upstream_error(self, local):
        broken_local = MagicMock(spec=LocalFileStorage)
        broken_local.backend_name = "local"
        broken_local.save = AsyncMock(side_effect=PermissionError("read-only"))
        uploader = MediaUploader(backend=broken_local, local=broken_local)

        with pytest.raises(UpstreamError):
            await uploader.upload([make_file("a.jpg")], UploadTarget())

    @pytest.mark.asyncio
    async def test_drive_state_is_reported(self, local):
        drive = GoogleDriveStorage(tokens={"access_token": "t"}, service=MagicMock())
        drive.save = AsyncMock(return_value=s3_descriptor("a.jpg"))
        drive._credentials = MagicMock(token="new", refresh_token=None, expiry=None, scopes=None)
        drive.root_folder_id = "root-id"
        uploader = MediaUploader(backend=drive, local=local)

        result = await uploader.upload([make_file("a.jpg")], UploadTarget())

        assert result.refreshed_tokens["access_token"] == "new"
        assert result.root_folder_id == "root-id"


# =============================================================================
# Partial uploads
# =============================================================================


class FlakyLocalStorage(LocalFileStorage):
    """Local storage whose writes start failing after `succeed` files."""

    def __init__(self, base_path: str, succeed: int):
        super().__init__(base_path=base_path, base_url="http://api.test")
        self.succeed = succeed
        self.saved = 0

    async def save(self, file, target):
        if self.saved >= self.succeed:
            raise PermissionError("upload directory is read-only")
        self.saved += 1
        return await super().save(file, target)


class TestPartialUpload:
    @pytest.mark.asyncio
    async def test_failed_local_write_removes_earlier_files(self, tmp_path):
        storage = FlakyLocalStorage(str(tmp_path), succeed=1)
        uploader = MediaUploader(backend=storage, local=storage)

        with pytest.raises(UpstreamError):
            await uploader.upload([make_file("a.jpg"), make_file("b.jpg")], UploadTarget())

        assert storage.saved == 1
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_failed_remote_write_deletes_earlier_objects(self, local):
        backend = MagicMock(spec=S3FileStorage)
        backend.backend_name = "s3"
        backend.save = AsyncMock(
            side_effect=[
                s3_descriptor("a.jpg"),
                ClientError({"Error": {"Code": "SlowDown", "Message": "no"}}, "PutObject"),
            ]
        )
        backend.delete = AsyncMock(return_value=True)
        uploader = MediaUploader(backend=backend, local=local, fallback_to_local=False)

        with pytest.raises(UpstreamError):
            await uploader.upload([make_file("a.jpg"), make_file("b.jpg")], UploadTarget())

        backend.delete.assert_awaited_once()
        assert backend.delete.call_args.args[0].s3_key == "uploads/a.jpg"

    @pytest.mark.asyncio
    async def test_discard_keeps_going_after_a_failed_delete(self, local, tmp_path):
        uploader = MediaUploader(backend=local, local=local)
        result = await uploader.upload([make_file("a.jpg"), make_file("b.jpg")], UploadTarget())
        local.delete = AsyncMock(side_effect=[OSError("busy"), True])

        await uploader.discard(result.descriptors)

        assert local.delete.await_count == 2

    @pytest.mark.asyncio
    async def test_persist_failure_rolls_back_and_discards(self, local, tmp_path):
        uploader = MediaUploader(backend=local, local=local)
        result = await uploader.upload([make_file("a.jpg")], UploadTarget())
        db = MagicMock()

        def persist():
            raise RuntimeError("database is gone")

        with pytest.raises(RuntimeError, match="database is gone"):
            await persist_upload(db, uploader, result, persist)

        db.rollback.assert_called_once()
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_persist_result_is_returned(self, local):
        uploader = MediaUploader(backend=local, local=local)
        result = await uploader.upload([make_file("a.jpg")], UploadTarget())

        value = await persist_upload(MagicMock(), uploader, result, lambda: "saved")

        assert value == "saved"


# =============================================================================
# Wiring helpers
# =============================================================================


def make_user(**overrides) -> SimpleNamespace:
    values = {
        "google_drive_tokens": None,
        "google_drive_root_folder_id": None,
        "s3_access_key_id": None,
        "s3_secret_access_key": None,
        "s3_bucket": None,
        "s3_region": None,
        "s3_enabled": False,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_build_uploader_defaults_to_local(settings):
    uploader = build_uploader(make_user(), settings, system_s3=None)

    assert isinstance(uploader.backend, LocalFileStorage)
    assert uploader.fallback_to_local is True


def test_build_uploader_uses_shared_system_s3(settings):
    system_s3 = S3FileStorage(bucket="fami-media")

    uploader = build_uploader(make_user(), settings, system_s3=system_s3)

    assert uploader.backend is system_s3


def test_build_uploader_prefers_user_s3(settings):
    user = make_user(
        s3_enabled=True,
        s3_access_key_id="AKIAUSER",
        s3_secret_access_key="secret",
        s3_bucket="alice-bucket",
    )

    uploader = build_uploader(user, settings, system_s3=S3FileStorage(bucket="fami-media"))

    assert isinstance(uploader.backend, S3FileStorage)
    assert uploader.backend.bucket == "alice-bucket"


def test_apply_storage_state_copies_tokens_and_folder():
    user = make_user(google_drive_tokens={"access_token": "old"})
    result = UploadResult(refreshed_tokens={"access_token": "new"}, root_folder_id="root-id")

    apply_storage_state(user, result)

    assert user.google_drive_tokens == {"access_token": "new"}
    assert user.google_drive_root_folder_id == "root-id"
