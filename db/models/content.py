"""
SQLAlchemy models for family content.

Tables:
- Memory: a post with ordered media, likes and comments
- MediaItem: one stored file attached to a memory
- Album / AlbumPhoto: named photo collections
- Event: family calendar entries
- Notification: in-app notifications per user
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from db.base import Base
from db.models.base_model import BaseModel
from packages.shared.storage import MediaDescriptor


class EventType(str, Enum):
    """Kinds of family events."""

    BIRTHDAY = "Birthday"
    ANNIVERSARY = "Anniversary"
    REUNION = "Reunion"
    HOLIDAY = "Holiday"
    OTHER = "Other"


class DescriptorMixin:
    """Columns of a stored media descriptor plus its position in the owner."""

    type: Mapped[str] = mapped_column(String(10), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    thumbnail: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    s3_key: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    bucket: Mapped[str | None] = mapped_column(String(255), nullable=True)
    google_drive_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    @declared_attr
    def uploaded_by_id(cls) -> Mapped[uuid.UUID | None]:
        return mapped_column(
            ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        )

    @declared_attr
    def uploaded_by(cls):
        return relationship("User")

    @classmethod
    def from_descriptor(
        cls,
        descriptor: MediaDescriptor,
        position: int,
        uploaded_by_id: uuid.UUID | None = None,
        **kwargs,
    ):
        return cls(
            type=descriptor.type,
            url=descriptor.url,
            thumbnail=descriptor.thumbnail,
            source=descriptor.source,
            s3_key=descriptor.s3_key,
            bucket=descriptor.bucket,
            google_drive_id=descriptor.google_drive_id,
            filename=descriptor.filename,
            position=position,
            uploaded_by_id=uploaded_by_id,
            **kwargs,
        )

    def to_descriptor(self) -> MediaDescriptor:
        return MediaDescriptor(
            type=self.type,
            url=self.url,
            thumbnail=self.thumbnail or self.url,
            source=self.source,
            filename=self.filename,
            s3_key=self.s3_key,
            google_drive_id=self.google_drive_id,
            bucket=self.bucket,
        )


# =============================================================================
# Memories
# =============================================================================


class Memory(BaseModel):
    """A family memory (post) with ordered media."""

    __tablename__ = "memories"

    family_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tags: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by = relationship("User")
    media: Mapped[list["MediaItem"]] = relationship(
        back_populates="memory",
        cascade="all, delete-orphan",
        order_by="MediaItem.position",
    )
    likes: Mapped[list["MemoryLike"]] = relationship(
        back_populates="memory",
        cascade="all, delete-orphan",
    )
    comments: Mapped[list["MemoryComment"]] = relationship(
        back_populates="memory",
        cascade="all, delete-orphan",
        order_by="MemoryComment.created_at",
    )

    def __repr__(self) -> str:
        return f"<Memory {self.title}>"


class MediaItem(Base, DescriptorMixin):
    """One stored file attached to a memory."""

    __tablename__ = "media_items"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    memory_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("memories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    memory: Mapped[Memory] = relationship(back_populates="media")


class MemoryLike(Base):
    __tablename__ = "memory_likes"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    memory_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("memories.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("memory_id", "user_id", name="uq_memory_like"),
    )

    memory: Mapped[Memory] = relationship(back_populates="likes")


class MemoryComment(Base):
    __tablename__ = "memory_comments"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    memory_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("memories.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    memory: Mapped[Memory] = relationship(back_populates="comments")
    user = relationship("User")


# =============================================================================
# Albums
# =============================================================================


class Album(BaseModel):
    """Named photo collection within a family."""

    __tablename__ = "albums"

    family_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_photo: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    # Photo of this album shown as the cover; its URL is resolved on read
    cover_photo_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by = relationship("User")
    photos: Mapped[list["AlbumPhoto"]] = relationship(
        back_populates="album",
        cascade="all, delete-orphan",
        order_by="AlbumPhoto.position",
    )

    def __repr__(self) -> str:
        return f"<Album {self.name}>"


class AlbumPhoto(Base, DescriptorMixin):
    __tablename__ = "album_photos"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    album_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("albums.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    album: Mapped[Album] = relationship(back_populates="photos")


# =============================================================================
# Events
# =============================================================================


class Event(BaseModel):
    """Family calendar event."""

    __tablename__ = "events"

    family_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[EventType] = mapped_column(
        SAEnum(EventType), default=EventType.OTHER, nullable=False
    )
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_virtual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    meeting_link: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by = relationship("User")

    def __repr__(self) -> str:
        return f"<Event {self.title}>"


# =============================================================================
# Notifications
# =============================================================================


class Notification(Base):
    """In-app notification for one user."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    family_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"),
        nullable=True,
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
