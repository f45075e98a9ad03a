"""Media routes: a flat gallery view over memory media."""

import asyncio
import logging
from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
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
from apps.api.routers.memories import MAX_MEMORY_FILES, signed, to_memory_response
from apps.api.schemas import Envelope, FlatMediaResponse, MemoryResponse, UserSummary
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
from db.models import MediaItem, Memory
from packages.shared.exceptions import ForbiddenError, NotFoundError
from packages.shared.storage import MediaDescriptor, S3FileStorage, UploadTarget

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/media", tags=["Media"])


def to_flat_media(item: MediaItem) -> FlatMediaResponse:
    uploader = item.uploaded_by or item.memory.created_by
    return FlatMediaResponse(
        id=item.id,
        type=item.type,
        url=item.url,
        thumbnail=item.thumbnail,
        source=item.source,
        s3_key=item.s3_key,
        bucket=item.bucket,
        google_drive_id=item.google_drive_id,
        filename=item.filename,
        caption=item.caption,
        position=item.position,
        memory_id=item.memory_id,
        memory_title=item.memory.title,
        uploaded_by=UserSummary.model_validate(uploader) if uploader else None,
        created_at=item.created_at,
    )


@router.get("/{family_id}", response_model=Envelope[list[FlatMediaResponse]])
async def list_media(
    type: Literal["image", "video"] | None = Query(None),
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[list[FlatMediaResponse]]:
    """All media across the family's memories, newest first."""
    stmt = (
        select(MediaItem)
        .join(Memory, MediaItem.memory_id == Memory.id)
        .where(Memory.family_id == ctx.family_id)
        .order_by(MediaItem.created_at.desc(), MediaItem.position)
    )
    if type:
        stmt = stmt.where(MediaItem.type == type)

    items = await asyncio.to_thread(
        lambda: [to_flat_media(item) for item in db.execute(stmt).scalars().all()]
    )
    await sign_media(items, settings, system_s3)
    return Envelope(data=items)


@router.post(
    "/{family_id}",
    response_model=Envelope[MemoryResponse],
    status_code=status.HTTP_201_CREATED,
)
async def upload_media(
    background_tasks: BackgroundTasks,
    media: list[UploadFile] | None = File(None),
    event_name: str | None = Form(None),
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Envelope[MemoryResponse]:
    """Upload loose media; they are grouped into a dated memory."""
    files = await read_upload_files(media)
    validate_files(files, settings, allow_video=True, max_files=MAX_MEMORY_FILES)

    now = datetime.utcnow()
    title = event_name.strip() if event_name and event_name.strip() else None
    title = title or f"Media Upload - {now.strftime('%Y-%m-%d')}"

    uploader = build_uploader(ctx.user, settings, system_s3)
    result = await uploader.upload(
        files, UploadTarget(family_name=ctx.family.name, folder_name=title)
    )

    def _persist() -> tuple[MemoryResponse, FamilyNotice]:
        memory = Memory(
            family_id=ctx.family_id,
            title=title,
            date=now,
            tags=[],
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
            title="New photos shared",
            message=f"{ctx.user.full_name} added {len(files)} files to {ctx.family.name}",
            link=f"/memories/{memory.id}",
            payload={"memory_id": str(memory.id), "title": title},
        )
        return to_memory_response(memory), notice

    response, notice = await persist_upload(db, uploader, result, _persist)

    logger.info(f"Uploaded {len(result.descriptors)} media files to memory {response.id}")
    background_tasks.add_task(dispatcher.dispatch, notice)
    return Envelope(data=await signed(response, settings, system_s3))


@router.delete("/{media_id}", response_model=Envelope[None])
async def delete_media(
    media_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Envelope[None]:
    """Delete one media item; an emptied memory goes with it."""

    def _delete() -> tuple[MediaDescriptor, bool]:
        item = db.execute(select(MediaItem).where(MediaItem.id == media_id)).scalar_one_or_none()
        if not item:
            raise NotFoundError("Media")
        memory = item.memory
        load_family_context(db, user, memory.family_id)
        owner_id = item.uploaded_by_id or memory.created_by_id
        if owner_id != user.id:
            raise ForbiddenError("Only the uploader can delete this media")

        descriptor = item.to_descriptor()
        memory.media.remove(item)
        memory_removed = not memory.media
        if memory_removed:
            db.delete(memory)
        db.commit()
        return descriptor, memory_removed

    descriptor, memory_removed = await asyncio.to_thread(_delete)
    await delete_stored_media([descriptor], settings)
    message = "Media and empty memory deleted" if memory_removed else "Media deleted"
    return Envelope(data=None, message=message)
