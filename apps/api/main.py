"""
FastAPI application entrypoint.
"""

import logging
from pathlib import Path

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from apps.api.config import Settings, get_settings
from apps.api.logging_config import configure_logging
from apps.api.notifications import FamilyRoomManager
from apps.api.ratelimit import rate_limit_default
from apps.api.routers import (
    albums,
    auth,
    events,
    families,
    google_drive,
    health,
    invitations,
    media,
    memories,
    members,
    messages,
    notifications,
    realtime,
)
from packages.shared.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )
    app.state.rooms = FamilyRoomManager()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Every error leaves the app as {"success": false, "message": ...}
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, app_exception_handler)

    # Include routers
    app.include_router(health.router)
    app.include_router(realtime.router)
    # Auth routes carry the stricter per-IP limiter themselves
    app.include_router(auth.router, prefix=settings.api_prefix)
    for module in (
        families,
        memories,
        media,
        albums,
        events,
        members,
        messages,
        invitations,
        notifications,
        google_drive,
    ):
        app.include_router(
            module.router,
            prefix=settings.api_prefix,
            dependencies=[Depends(rate_limit_default)],
        )

    upload_dir = Path(settings.local_upload_path)
    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Could not create upload directory {upload_dir}: {e}")
    app.mount("/uploads", StaticFiles(directory=upload_dir, check_dir=False), name="uploads")

    logger.info(
        f"{settings.app_name} {settings.app_version} started "
        f"(environment={settings.environment}, system S3={settings.system_s3_configured}, "
        f"Google Drive={settings.google_drive_configured}, email={settings.email_configured})"
    )
    return app


app = create_app()
