"""Best-effort family notifications: in-app rows, email and realtime fan-out."""

from apps.api.notifications.dispatcher import (
    FamilyNotice,
    NotificationDispatcher,
    get_dispatcher,
)
from apps.api.notifications.email import EmailSender, get_email_sender
from apps.api.notifications.realtime import FamilyRoomManager, get_room_manager

__all__ = [
    "EmailSender",
    "FamilyNotice",
    "FamilyRoomManager",
    "NotificationDispatcher",
    "get_dispatcher",
    "get_email_sender",
    "get_room_manager",
]
