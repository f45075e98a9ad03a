"""
Unit tests for storage backend selection.

Tests cover:
1. Priority order: Drive > user S3 > system S3 > local
2. Incomplete user S3 configuration is skipped
3. Expired Drive tokens ask for a refresh
4. Same inputs always give the same selection
"""

from datetime import datetime, timezone

import pytest

from packages.shared.storage import (
    StorageBackend,
    UserStorageConfig,
    select_storage_backend,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)

DRIVE_TOKENS = {
    "access_token": "ya29.token",
    "refresh_token": "1//refresh",
    "expiry_date": NOW_MS + 3_600_000,
}

USER_S3 = {
    "s3_enabled": True,
    "s3_access_key_id": "AKIAUSER",
    "s3_secret_access_key": "user-secret",
    "s3_bucket": "alice-photos",
    "s3_region": "eu-west-1",
}


# =============================================================================
# Priority
# =============================================================================


class TestPriority:
    def test_drive_wins_over_everything(self):
        config = UserStorageConfig(google_drive_tokens=DRIVE_TOKENS, **USER_S3)

        selection = select_storage_backend(config, system_s3_configured=True, now=NOW)

        assert selection.backend == StorageBackend.GOOGLE_DRIVE
        assert selection.credentials["access_token"] == "ya29.token"
        assert selection.needs_token_refresh is False

    def test_user_s3_when_no_drive(self):
        config = UserStorageConfig(**USER_S3)

        selection = select_storage_backend(config, system_s3_configured=True, now=NOW)

        assert selection.backend == StorageBackend.USER_S3
        assert selection.credentials == {
            "aws_access_key_id": "AKIAUSER",
            "aws_secret_access_key": "user-secret",
            "bucket": "alice-photos",
            "region": "eu-west-1",
        }

    def test_system_s3_when_user_has_nothing(self):
        selection = select_storage_backend(
            UserStorageConfig(), system_s3_configured=True, now=NOW
        )
        assert selection.backend == StorageBackend.SYSTEM_S3
        assert selection.credentials is None

    def test_local_when_nothing_configured(self):
        selection = select_storage_backend(
            UserStorageConfig(), system_s3_configured=False, now=NOW
        )
        assert selection.backend == StorageBackend.LOCAL

    def test_drive_tokens_without_access_token_are_ignored(self):
        config = UserStorageConfig(google_drive_tokens={"refresh_token": "1//r"})

        selection = select_storage_backend(config, system_s3_configured=False, now=NOW)

        assert selection.backend == StorageBackend.LOCAL

    @pytest.mark.parametrize(
        "missing",
        ["s3_access_key_id", "s3_secret_access_key", "s3_bucket"],
    )
    def test_incomplete_user_s3_falls_through(self, missing):
        values = {**USER_S3, missing: None}

        selection = select_storage_backend(
            UserStorageConfig(**values), system_s3_configured=True, now=NOW
        )

        assert selection.backend == StorageBackend.SYSTEM_S3

    def test_disabled_user_s3_falls_through(self):
        values = {**USER_S3, "s3_enabled": False}

        selection = select_storage_backend(
            UserStorageConfig(**values), system_s3_configured=False, now=NOW
        )

        assert selection.backend == StorageBackend.LOCAL

    def test_user_s3_region_defaults(self):
        values = {**USER_S3, "s3_region": None}

        selection = select_storage_backend(
            UserStorageConfig(**values), system_s3_configured=False, now=NOW
        )

        assert selection.credentials["region"] == "us-east-1"


# =============================================================================
# Token refresh and determinism
# =============================================================================


class TestTokenRefresh:
    def test_expired_token_needs_refresh(self):
        tokens = {**DRIVE_TOKENS, "expiry_date": NOW_MS - 1}

        selection = select_storage_backend(
            UserStorageConfig(google_drive_tokens=tokens),
            system_s3_configured=False,
            now=NOW,
        )

        assert selection.backend == StorageBackend.GOOGLE_DRIVE
        assert selection.needs_token_refresh is True

    def test_token_close_to_expiry_needs_refresh(self):
        tokens = {**DRIVE_TOKENS, "expiry_date": NOW_MS + 60_000}

        selection = select_storage_backend(
            UserStorageConfig(google_drive_tokens=tokens),
            system_s3_configured=False,
            now=NOW,
        )

        assert selection.needs_token_refresh is True

    def test_token_outside_refresh_margin_is_kept(self):
        tokens = {**DRIVE_TOKENS, "expiry_date": NOW_MS + 5 * 60_000}

        selection = select_storage_backend(
            UserStorageConfig(google_drive_tokens=tokens),
            system_s3_configured=False,
            now=NOW,
        )

        assert selection.needs_token_refresh is False

    def test_token_without_expiry_is_used_as_is(self):
        tokens = {"access_token": "ya29.token"}

        selection = select_storage_backend(
            UserStorageConfig(google_drive_tokens=tokens),
            system_s3_configured=False,
            now=NOW,
        )

        assert selection.needs_token_refresh is False


def test_selection_is_deterministic():
    config = UserStorageConfig(google_drive_tokens=DRIVE_TOKENS, **USER_S3)

    first = select_storage_backend(config, system_s3_configured=True, now=NOW)
    second = select_storage_backend(config, system_s3_configured=True, now=NOW)

    assert first == second


def test_backend_source_tags():
    assert StorageBackend.GOOGLE_DRIVE.source == "googleDrive"
    assert StorageBackend.USER_S3.source == "s3"
    assert StorageBackend.SYSTEM_S3.source == "s3"
    assert StorageBackend.LOCAL.source == "local"
