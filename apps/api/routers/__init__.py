"""API routers package."""

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

__all__ = [
    "albums",
    "auth",
    "events",
    "families",
    "google_drive",
    "health",
    "invitations",
    "media",
    "memories",
    "members",
    "messages",
    "notifications",
    "realtime",
]
