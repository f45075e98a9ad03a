"""Pydantic schemas for families, content, events, the family tree, messages and invitations."""

from datetime import date, datetime, timezone
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from apps.api.auth.models import FamilyRole
from db.models import EventType, Gender, InvitationStatus, Kinship

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """`{success, data}` wrapper used by every content route."""

    success: bool = True
    message: str | None = None
    data: T


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str


# =============================================================================
# Families
# =============================================================================


class FamilyCreate(BaseModel):
    name: str
    description: str | None = None
    cover_image: str | None = None
    is_private: bool = True
    allow_member_invites: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Family name is required")
        return v


class FamilyUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    cover_image: str | None = None
    is_private: bool | None = None
    allow_member_invites: bool | None = None


class PasscodeRequest(BaseModel):
    """Passcode is optional here so a missing one is reported as 400, not 422."""

    passcode: str | None = None
    relationship: str | None = None


class MemberResponse(BaseModel):
    user_id: UUID
    first_name: str
    last_name: str
    email: str
    role: FamilyRole
    relationship: str | None = None
    joined_at: datetime


class FamilyResponse(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    cover_image: str | None = None
    created_by_id: UUID | None = None
    is_private: bool
    allow_member_invites: bool
    created_at: datetime
    my_role: FamilyRole | None = None
    passcode: str | None = None  # Admins only
    member_count: int = 0
    members: list[MemberResponse] = []


# =============================================================================
# Media, memories and albums
# =============================================================================


class MediaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    url: str
    thumbnail: str | None = None
    source: str
    s3_key: str | None = None
    bucket: str | None = None
    google_drive_id: str | None = None
    filename: str | None = None
    caption: str | None = None
    position: int


class FlatMediaResponse(MediaResponse):
    memory_id: UUID
    memory_title: str
    uploaded_by: UserSummary | None = None
    created_at: datetime


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    text: str
    user: UserSummary | None = None
    created_at: datetime


class MemoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family_id: UUID
    title: str
    description: str | None = None
    date: datetime
    location: str | None = None
    tags: list[str] = []
    media: list[MediaResponse] = []
    comments: list[CommentResponse] = []
    like_count: int = 0
    liked_by: list[UUID] = []
    created_by: UserSummary | None = None
    created_at: datetime
    updated_at: datetime


class MemoryUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    date: datetime | None = None
    location: str | None = None
    tags: list[str] | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        if v is not None:
            v = v.strip()
            if not v:
                raise ValueError("Title must not be empty")
        return v


class CommentCreate(BaseModel):
    text: str = Field(min_length=1, max_length=2000)


class LikeResponse(BaseModel):
    liked: bool
    like_count: int


class AlbumCreate(BaseModel):
    name: str
    family_id: UUID
    description: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Album name is required")
        return v


class AlbumUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    cover_photo: str | None = None
    cover_photo_id: UUID | None = None


class AlbumResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family_id: UUID
    name: str
    description: str | None = None
    cover_photo: str | None = None
    cover_photo_id: UUID | None = None
    photos: list[MediaResponse] = []
    created_by: UserSummary | None = None
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Events
# =============================================================================


class EventCreate(BaseModel):
    title: str
    description: str | None = None
    event_type: EventType = EventType.OTHER
    start_date: datetime
    end_date: datetime | None = None
    location: str | None = None
    is_virtual: bool = False
    meeting_link: str | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Event title is required")
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def to_naive_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family_id: UUID
    title: str
    description: str | None = None
    event_type: EventType
    start_date: datetime
    end_date: datetime | None = None
    location: str | None = None
    is_virtual: bool
    meeting_link: str | None = None
    created_by: UserSummary | None = None
    created_at: datetime


# =============================================================================
# Notifications
# =============================================================================


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family_id: UUID | None = None
    type: str
    title: str
    message: str
    link: str | None = None
    is_read: bool
    created_at: datetime


class NotificationList(BaseModel):
    success: bool = True
    data: list[NotificationResponse]
    unread_count: int


# =============================================================================
# Google Drive
# =============================================================================


class GoogleAuthUrl(BaseModel):
    url: str


class GoogleAuthorizeRequest(BaseModel):
    code: str = Field(min_length=1)


class GoogleDriveStatus(BaseModel):
    configured: bool
    connected: bool
    root_folder_id: str | None = None
    token_expires_at: datetime | None = None


# =============================================================================
# Family tree
# =============================================================================


class TreeMemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family_id: UUID
    user_id: UUID | None = None
    first_name: str
    last_name: str | None = None
    email: str | None = None
    photo: dict[str, Any] | None = None
    photo_url: str | None = None
    gender: Gender | None = None
    date_of_birth: date | None = None
    kinship: Kinship
    role: FamilyRole
    father_id: UUID | None = None
    mother_id: UUID | None = None
    spouse_id: UUID | None = None
    generation: int
    is_alive: bool
    notes: str | None = None
    created_at: datetime


# =============================================================================
# Messages
# =============================================================================


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message content is required")
        return v


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family_id: UUID
    content: str
    user: UserSummary | None = None
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Invitations
# =============================================================================


class InvitationCreate(BaseModel):
    email: EmailStr
    role: FamilyRole = FamilyRole.MEMBER
    relationship: str | None = None


class InvitationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family_id: UUID
    email: str
    role: FamilyRole
    relationship_label: str | None = None
    status: InvitationStatus
    invited_by: UserSummary | None = None
    expires_at: datetime
    created_at: datetime
