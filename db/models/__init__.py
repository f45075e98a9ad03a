"""Database models package."""

from db.models.base_model import BaseModel, TimestampMixin
from db.models.content import (
    Album,
    AlbumPhoto,
    Event,
    EventType,
    MediaItem,
    Memory,
    MemoryComment,
    MemoryLike,
    Notification,
)
from db.models.family import (
    Gender,
    Invitation,
    InvitationStatus,
    Kinship,
    Message,
    TreeMember,
)

__all__ = [
    # Base models and mixins
    "BaseModel",
    "TimestampMixin",
    # Content models
    "Album",
    "AlbumPhoto",
    "Event",
    "EventType",
    "MediaItem",
    "Memory",
    "MemoryComment",
    "MemoryLike",
    "Notification",
    # Family tree, chat and invitations
    "Gender",
    "Invitation",
    "InvitationStatus",
    "Kinship",
    "Message",
    "TreeMember",
]
