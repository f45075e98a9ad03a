"""
Google Drive connection routes.

The client app sends the user to `auth-url`; Google redirects back to
`callback`, which forwards the code to the client app; the client app
then posts the code to `authorize` with the user's bearer token.
"""

import asyncio
from datetime import datetime
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error
from sqlalchemy.orm import Session

from apps.api.auth.dependencies import get_current_user
from apps.api.auth.models import User
from apps.api.config import Settings, get_settings
from apps.api.db import get_db
from apps.api.schemas import (
    Envelope,
    GoogleAuthorizeRequest,
    GoogleAuthUrl,
    GoogleDriveStatus,
)
from packages.shared.exceptions import ValidationError
from packages.shared.storage.google_drive import DRIVE_SCOPES, tokens_from_credentials

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-drive", tags=["Google Drive"])

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


def get_oauth_flow(settings: Settings = Depends(get_settings)) -> Flow:
    """Dependency: an OAuth web flow, or 400 when Drive is not configured."""
    if not settings.google_drive_configured:
        raise ValidationError("Google Drive integration is not configured")
    client_config = {
        "web": {
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
            "auth_uri": GOOGLE_AUTH_URI,
            "token_uri": GOOGLE_TOKEN_URI,
            "redirect_uris": [settings.resolved_google_redirect_uri],
        }
    }
    return Flow.from_client_config(
        client_config,
        scopes=DRIVE_SCOPES,
        redirect_uri=settings.resolved_google_redirect_uri,
        # The code is exchanged in a later request, so no PKCE verifier
        autogenerate_code_verifier=False,
    )


@router.get("/auth-url", response_model=Envelope[GoogleAuthUrl])
def get_auth_url(
    user: User = Depends(get_current_user),
    flow: Flow = Depends(get_oauth_flow),
) -> Envelope[GoogleAuthUrl]:
    url, _state = flow.authorization_url(
        access_type="offline",
        prompt="consent",
        include_granted_scopes="true",
        state=str(user.id),
    )
    return Envelope(data=GoogleAuthUrl(url=url))


@router.get("/callback")
def oauth_callback(
    code: str | None = None,
    error: str | None = None,
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Forward Google's redirect to the client app."""
    if error:
        params = {"error": error}
    elif code:
        params = {"code": code}
    else:
        params = {"error": "missing_code"}
    target = f"{settings.client_url.rstrip('/')}/settings/storage?{urlencode(params)}"
    return RedirectResponse(target)


@router.post("/authorize", response_model=Envelope[GoogleDriveStatus])
async def authorize(
    data: GoogleAuthorizeRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    flow: Flow = Depends(get_oauth_flow),
) -> Envelope[GoogleDriveStatus]:
    """Exchange an authorization code and store the tokens on the user."""
    try:
        await asyncio.to_thread(flow.fetch_token, code=data.code)
    except OAuth2Error as e:
        logger.warning(f"Google code exchange failed for user {user.id}: {e}")
        raise ValidationError("Invalid or expired Google authorization code") from e

    tokens = tokens_from_credentials(flow.credentials)
    previous = user.google_drive_tokens or {}
    if "refresh_token" not in tokens and previous.get("refresh_token"):
        tokens["refresh_token"] = previous["refresh_token"]

    def _store() -> GoogleDriveStatus:
        user.google_drive_tokens = tokens
        # A new grant may belong to another Google account
        user.google_drive_root_folder_id = None
        db.commit()
        logger.info(f"User {user.id} connected Google Drive")
        return drive_status(user, True)

    connected = await asyncio.to_thread(_store)
    return Envelope(data=connected, message="Google Drive connected")


def drive_status(user: User, configured: bool) -> GoogleDriveStatus:
    tokens = user.google_drive_tokens or {}
    expires_at = None
    if tokens.get("expiry_date"):
        expires_at = datetime.utcfromtimestamp(tokens["expiry_date"] / 1000)
    return GoogleDriveStatus(
        configured=configured,
        connected=bool(tokens.get("access_token")),
        root_folder_id=user.google_drive_root_folder_id,
        token_expires_at=expires_at,
    )


@router.get("/status", response_model=Envelope[GoogleDriveStatus])
def get_status(
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> Envelope[GoogleDriveStatus]:
    return Envelope(data=drive_status(user, settings.google_drive_configured))


@router.delete("/disconnect", response_model=Envelope[GoogleDriveStatus])
def disconnect(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Envelope[GoogleDriveStatus]:
    """Forget the user's Drive tokens; stored files stay in their Drive."""
    user.google_drive_tokens = None
    user.google_drive_root_folder_id = None
    db.commit()
    logger.info(f"User {user.id} disconnected Google Drive")
    return Envelope(
        data=drive_status(user, settings.google_drive_configured),
        message="Google Drive disconnected",
    )
