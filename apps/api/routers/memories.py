"""Memory routes: family posts with uploaded media, likes and comments."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.api.auth.dependencies import (
    FamilyContext,
    get_current_user,
    load_family_context,
    require_family_access,
)
from apps.api.auth.models import User
from apps.api.config import Settings, get_settings
from apps.api.db import get_db
from apps.api.notifications import FamilyNotice, NotificationDispatcher, get_dispatcher
from apps.api.schemas import (
    CommentCreate,
    CommentResponse,
    Envelope,
    LikeResponse,
    MemoryResponse,
    MemoryUpdate,
)
from apps.api.storage import (
    apply_storage_state,
    build_uploader,
    delete_stored_media,
    get_system_s3,
    persist_upload,
    read_upload_files,
    sign_media,
    validate_files,
)
from db.models import MediaItem, Memory, MemoryComment, MemoryLike
from packages.shared.exceptions import ForbiddenError, NotFoundError, ValidationError
from packages.shared.storage import MediaDescriptor, S3FileStorage, UploadTarget

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/memories", tags=["Memories"])

MAX_MEMORY_FILES = 10


# =============================================================================
# Helpers
# =============================================================================


def parse_tags(raw: str | None) -> list[str]:
    """Tags arrive as a JSON array or a comma-separated string."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw.split(",")
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValidationError("Tags must be a list")
    return [str(tag).strip() for tag in value if str(tag).strip()]


def parse_date(raw: str | None) -> datetime:
    if not raw:
        return datetime.utcnow()
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid date: {raw}") from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def get_memory_or_404(db: Session, memory_id: UUID) -> Memory:
    memory = db.execute(select(Memory).where(Memory.id == memory_id)).scalar_one_or_none()
    if not memory:
        raise NotFoundError("Memory")
    return memory


def to_memory_response(memory: Memory) -> MemoryResponse:
    response = MemoryResponse.model_validate(memory)
    response.like_count = len(memory.likes)
    response.liked_by = [like.user_id for like in memory.likes]
    return response


async def signed(
    response: MemoryResponse,
    settings: Settings,
    system_s3: S3FileStorage | None,
) -> MemoryResponse:
    await sign_media(response.media, settings, system_s3)
    return response


def load_memory(db: Session, user: User, memory_id: UUID, creator_only: str | None = None) -> Memory:
    """Memory visible to `user`; with `creator_only`, the action it names is reserved to the creator."""
    memory = get_memory_or_404(db, memory_id)
    load_family_context(db, user, memory.family_id)
    if creator_only and memory.created_by_id != user.id:
        raise ForbiddenError(f"Only the creator can {creator_only} this memory")
    return memory


# =============================================================================
# Routes
# =============================================================================


@router.get("/{family_id}", response_model=Envelope[list[MemoryResponse]])
async def list_memories(
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[list[MemoryResponse]]:
    """Memories of a family, newest first."""

    def _load() -> list[MemoryResponse]:
        stmt = (
            select(Memory)
            .where(Memory.family_id == ctx.family_id)
            .order_by(Memory.date.desc(), Memory.created_at.desc())
        )
        return [to_memory_response(m) for m in db.execute(stmt).scalars().all()]

    responses = await asyncio.to_thread(_load)
    return Envelope(data=[await signed(r, settings, system_s3) for r in responses])


@router.get("/single/{memory_id}", response_model=Envelope[MemoryResponse])
async def get_memory(
    memory_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[MemoryResponse]:
    response = await asyncio.to_thread(
        lambda: to_memory_response(load_memory(db, user, memory_id))
    )
    return Envelope(data=await signed(response, settings, system_s3))


@router.post(
    "/{family_id}",
    response_model=Envelope[MemoryResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_memory(
    background_tasks: BackgroundTasks,
    title: str | None = Form(None),
    description: str | None = Form(None),
    date: str | None = Form(None),
    location: str | None = Form(None),
    tags: str | None = Form(None),
    event_name: str | None = Form(None),
    media: list[UploadFile] | None = File(None),
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Envelope[MemoryResponse]:
    """Create a memory and store its files in upload order."""
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")

    files = await read_upload_files(media)
    validate_files(files, settings, allow_video=True, max_files=MAX_MEMORY_FILES)
    memory_date = parse_date(date)
    memory_tags = parse_tags(tags)

    uploader = build_uploader(ctx.user, settings, system_s3)
    result = await uploader.upload(
        files, UploadTarget(family_name=ctx.family.name, folder_name=event_name or title)
    )

    def _persist() -> tuple[MemoryResponse, FamilyNotice]:
        memory = Memory(
            family_id=ctx.family_id,
            title=title,
            description=description,
            date=memory_date,
            location=location,
            tags=memory_tags,
            created_by_id=ctx.user.id,
        )
        for position, descriptor in enumerate(result.descriptors):
            memory.media.append(
                MediaItem.from_descriptor(descriptor, position, uploaded_by_id=ctx.user.id)
            )
        db.add(memory)
        apply_storage_state(ctx.user, result)
        db.commit()
        db.refresh(memory)

        notice = FamilyNotice(
            family_id=ctx.family_id,
            actor_id=ctx.user.id,
            event="new-memory",
            notification_type="memory",
            title="New memory shared",
            message=f"{ctx.user.full_name} shared \"{title}\" in {ctx.family.name}",
            link=f"/memories/{memory.id}",
            payload={"memory_id": str(memory.id), "title": title},
            email_subject=f"New memory in {ctx.family.name}: {title}",
        )
        return to_memory_response(memory), notice

    response, notice = await persist_upload(db, uploader, result, _persist)

    logger.info(
        f"Memory {response.id} created with {len(result.descriptors)} files "
        f"({result.fallbacks} stored locally after remote failure)"
    )
    background_tasks.add_task(dispatcher.dispatch, notice)
    return Envelope(data=await signed(response, settings, system_s3))


@router.put("/{memory_id}", response_model=Envelope[MemoryResponse])
async def update_memory(
    memory_id: UUID,
    data: MemoryUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[MemoryResponse]:
    """Edit a memory's text fields (creator only)."""

    def _update() -> MemoryResponse:
        memory = load_memory(db, user, memory_id, creator_only="edit")
        for field_name, value in data.model_dump(exclude_unset=True).items():
            if field_name == "title" and value is None:
                continue
            setattr(memory, field_name, value)
        db.commit()
        db.refresh(memory)
        return to_memory_response(memory)

    response = await asyncio.to_thread(_update)
    return Envelope(data=await signed(response, settings, system_s3))


@router.delete("/{memory_id}", response_model=Envelope[None])
async def delete_memory(
    memory_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Envelope[None]:
    """Delete a memory and its local files (creator only)."""

    def _delete() -> list[MediaDescriptor]:
        memory = load_memory(db, user, memory_id, creator_only="delete")
        descriptors = [item.to_descriptor() for item in memory.media]
        db.delete(memory)
        db.commit()
        return descriptors

    descriptors = await asyncio.to_thread(_delete)
    await delete_stored_media(descriptors, settings)
    return Envelope(data=None, message="Memory deleted")


@router.post("/{memory_id}/like", response_model=Envelope[LikeResponse])
def toggle_like(
    memory_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[LikeResponse]:
    memory = load_memory(db, user, memory_id)

    existing = next((like for like in memory.likes if like.user_id == user.id), None)
    if existing:
        memory.likes.remove(existing)
        liked = False
    else:
        memory.likes.append(MemoryLike(user_id=user.id))
        liked = True
    db.commit()
    db.refresh(memory)
    return Envelope(data=LikeResponse(liked=liked, like_count=len(memory.likes)))


@router.post(
    "/{memory_id}/comment",
    response_model=Envelope[CommentResponse],
    status_code=status.HTTP_201_CREATED,
)
def add_comment(
    memory_id: UUID,
    data: CommentCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[CommentResponse]:
    memory = load_memory(db, user, memory_id)

    comment = MemoryComment(memory_id=memory.id, user_id=user.id, text=data.text.strip())
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return Envelope(data=CommentResponse.model_validate(comment))
