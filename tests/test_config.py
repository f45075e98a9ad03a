"""Tests for derived settings."""

import pytest

from apps.api.config import Settings


@pytest.mark.parametrize(
    "overrides,expected",
    [
        ({"base_url": "https://media.example.org/"}, "https://media.example.org"),
        ({"api_url": "https://api.example.org/api"}, "https://api.example.org"),
        ({"api_url": "https://api.example.org/api/"}, "https://api.example.org"),
        ({"environment": "production"}, "https://api.arakala.net"),
        ({"port": 8080}, "http://localhost:8080"),
    ],
)
def test_resolved_base_url(overrides, expected):
    assert Settings(**overrides).resolved_base_url == expected


def test_base_url_beats_api_url():
    settings = Settings(base_url="https://a.example.org", api_url="https://b.example.org/api")
    assert settings.resolved_base_url == "https://a.example.org"


def test_system_s3_requires_all_values():
    assert not Settings(aws_s3_bucket="fami-media", aws_region="us-east-1").system_s3_configured
    assert Settings(
        aws_s3_bucket="fami-media",
        aws_region="us-east-1",
        aws_access_key_id="AKIA",
        aws_secret_access_key="secret",
    ).system_s3_configured


def test_placeholder_s3_values_are_ignored():
    settings = Settings(
        aws_s3_bucket="your-bucket-name",
        aws_region="us-east-1",
        aws_access_key_id="AKIA",
        aws_secret_access_key="secret",
    )
    assert settings.system_s3_configured is False


def test_google_drive_needs_real_secret():
    assert not Settings(google_client_id="id", google_client_secret="short").google_drive_configured
    assert Settings(
        google_client_id="id", google_client_secret="GOCSPX-long-secret"
    ).google_drive_configured


def test_redirect_uri_defaults_to_client_callback():
    settings = Settings(client_url="https://fami.example.org/")
    assert settings.resolved_google_redirect_uri == "https://fami.example.org/auth/google/callback"


def test_email_configured():
    assert not Settings(sendgrid_api_key="SG.x").email_configured
    assert Settings(sendgrid_api_key="SG.x", from_email="noreply@famiportal.org").email_configured
