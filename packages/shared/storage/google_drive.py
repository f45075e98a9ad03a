"""Google Drive storage backend using a user's OAuth tokens."""

import asyncio
import calendar
from io import BytesIO
import logging
import re
from datetime import datetime
from typing import Any

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from packages.shared.storage.base import (
    FileStorageBackend,
    MediaDescriptor,
    UploadedFile,
    UploadTarget,
    generate_filename,
)

logger = logging.getLogger(__name__)

DRIVE_SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/userinfo.email",
]
TOKEN_URI = "https://oauth2.googleapis.com/token"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

_UNSAFE_FOLDER_CHARS = re.compile(r'[<>:"/\\|?*]')


def sanitize_folder_name(name: str) -> str:
    return _UNSAFE_FOLDER_CHARS.sub("_", name).strip()


def drive_view_url(file_id: str) -> str:
    return f"https://drive.google.com/uc?export=view&id={file_id}"


def credentials_from_tokens(
    tokens: dict[str, Any],
    client_id: str | None,
    client_secret: str | None,
) -> Credentials:
    """Build google-auth credentials from a stored token bundle."""
    expiry = None
    if tokens.get("expiry_date"):
        # google-auth compares against naive UTC datetimes
        expiry = datetime.utcfromtimestamp(tokens["expiry_date"] / 1000)
    scopes = tokens.get("scope")
    return Credentials(
        token=tokens.get("access_token"),
        refresh_token=tokens.get("refresh_token"),
        token_uri=TOKEN_URI,
        client_id=client_id,
        client_secret=client_secret,
        scopes=scopes.split() if isinstance(scopes, str) else scopes,
        expiry=expiry,
    )


def tokens_from_credentials(
    credentials: Credentials,
    previous: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Serialize credentials back to the stored token bundle shape."""
    tokens = dict(previous or {})
    tokens["access_token"] = credentials.token
    if credentials.refresh_token:
        tokens["refresh_token"] = credentials.refresh_token
    if credentials.expiry:
        tokens["expiry_date"] = (
            calendar.timegm(credentials.expiry.utctimetuple()) * 1000
        )
    if credentials.scopes:
        tokens["scope"] = " ".join(credentials.scopes)
    tokens.setdefault("token_type", "Bearer")
    return tokens


class GoogleDriveStorage(FileStorageBackend):
    """
    Google Drive storage backend.

    Files go into a per-user root folder (`fami` by default) and an
    optional subfolder named after the event or album. Every uploaded
    file is shared as `anyone:reader` so the view URL works without auth.

    google-auth refreshes the access token on its own when it is close to
    expiry or rejected, besides the explicit refresh asked for by the
    selector. Whenever the token in use differs from the stored one the
    new bundle is exposed as `refreshed_tokens`; persisting it is the
    caller's job.
    """

    def __init__(
        self,
        tokens: dict[str, Any],
        client_id: str | None = None,
        client_secret: str | None = None,
        root_folder_name: str = "fami",
        root_folder_id: str | None = None,
        needs_token_refresh: bool = False,
        service: Any = None,
    ):
        self.tokens = tokens
        self.root_folder_name = root_folder_name
        self.root_folder_id = root_folder_id
        self.needs_token_refresh = needs_token_refresh
        self.folder_cache: dict[str, str] = {}
        self._credentials = credentials_from_tokens(tokens, client_id, client_secret)
        self._service = service

    @property
    def backend_name(self) -> str:
        return "googleDrive"

    # =========================================================================
    # Credentials and service
    # =========================================================================

    def _refresh_credentials(self) -> None:
        logger.info("Refreshing expired Google Drive access token")
        self._credentials.refresh(Request())
        self.needs_token_refresh = False

    def current_tokens(self) -> dict[str, Any] | None:
        """Token bundle to persist if the access token changed since construction."""
        token = self._credentials.token
        if not token or token == self.tokens.get("access_token"):
            return None
        return tokens_from_credentials(self._credentials, self.tokens)

    @property
    def refreshed_tokens(self) -> dict[str, Any] | None:
        return self.current_tokens()

    def _get_service(self) -> Any:
        if self.needs_token_refresh:
            self._refresh_credentials()
        if self._service is None:
            self._service = build(
                "drive", "v3", credentials=self._credentials, cache_discovery=False
            )
        return self._service

    # =========================================================================
    # Folders
    # =========================================================================

    def _find_folder(self, name: str, parent_id: str) -> str | None:
        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        query = (
            f"name='{escaped}' and '{parent_id}' in parents "
            f"and mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
        )
        results = self._get_service().files().list(
            q=query,
            fields="files(id, name)",
            pageSize=1,
        ).execute()
        files = results.get("files", [])
        return files[0]["id"] if files else None

    def _create_folder(self, name: str, parent_id: str) -> str:
        metadata = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id != "root":
            metadata["parents"] = [parent_id]
        folder = self._get_service().files().create(
            body=metadata,
            fields="id",
        ).execute()
        logger.info(f"Created Drive folder {name} (ID: {folder['id']})")
        return folder["id"]

    def get_or_create_folder(self, name: str, parent_id: str = "root") -> str:
        """Get existing folder or create if it doesn't exist."""
        cache_key = f"{parent_id}:{name}"
        if cache_key in self.folder_cache:
            return self.folder_cache[cache_key]

        folder_id = self._find_folder(name, parent_id)
        if not folder_id:
            folder_id = self._create_folder(name, parent_id)

        self.folder_cache[cache_key] = folder_id
        return folder_id

    def _resolve_folder(self, target: UploadTarget) -> str:
        if not self.root_folder_id:
            self.root_folder_id = self.get_or_create_folder(self.root_folder_name)
        if target.folder_name:
            name = sanitize_folder_name(target.folder_name)
            if name:
                return self.get_or_create_folder(name, self.root_folder_id)
        return self.root_folder_id

    # =========================================================================
    # Storage interface
    # =========================================================================

    def _save_sync(self, file: UploadedFile, target: UploadTarget) -> MediaDescriptor:
        folder_id = self._resolve_folder(target)
        filename = generate_filename(file.extension)
        media = MediaIoBaseUpload(
            BytesIO(file.content), mimetype=file.content_type, resumable=False
        )
        service = self._get_service()
        created = service.files().create(
            body={"name": filename, "mimeType": file.content_type, "parents": [folder_id]},
            media_body=media,
            fields="id, name, thumbnailLink",
        ).execute()
        file_id = created["id"]

        try:
            service.permissions().create(
                fileId=file_id,
                body={"role": "reader", "type": "anyone"},
            ).execute()
        except HttpError as e:
            logger.warning(f"Could not share Drive file {file_id} publicly: {e}")

        url = drive_view_url(file_id)
        logger.info(f"Stored {file.filename} in Google Drive as {file_id}")
        return MediaDescriptor(
            type=file.media_type,
            url=url,
            thumbnail=created.get("thumbnailLink") or url,
            source="googleDrive",
            filename=filename,
            google_drive_id=file_id,
        )

    async def save(
        self,
        file: UploadedFile,
        target: UploadTarget,
    ) -> MediaDescriptor:
        """Upload a file; the client library is blocking so it runs in a thread."""
        return await asyncio.to_thread(self._save_sync, file, target)

    async def delete(self, descriptor: MediaDescriptor) -> bool:
        if not descriptor.google_drive_id:
            return False

        def _delete() -> None:
            self._get_service().files().delete(fileId=descriptor.google_drive_id).execute()

        await asyncio.to_thread(_delete)
        return True
