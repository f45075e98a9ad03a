"""Album routes."""

import asyncio
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy import func, select
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
from apps.api.schemas import AlbumCreate, AlbumResponse, AlbumUpdate, Envelope
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
from db.models import Album, AlbumPhoto
from packages.shared.exceptions import ForbiddenError, NotFoundError, ValidationError
from packages.shared.storage import MediaDescriptor, S3FileStorage, UploadTarget

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/albums", tags=["Albums"])

MAX_ALBUM_FILES = 20


def get_album_or_404(db: Session, album_id: UUID) -> Album:
    album = db.execute(select(Album).where(Album.id == album_id)).scalar_one_or_none()
    if not album:
        raise NotFoundError("Album")
    return album


async def signed(
    response: AlbumResponse,
    settings: Settings,
    system_s3: S3FileStorage | None,
) -> AlbumResponse:
    """Sign photo URLs, then point `cover_photo` at the cover photo's current URL."""
    await sign_media(response.photos, settings, system_s3)
    if response.cover_photo_id is not None:
        cover = next((p for p in response.photos if p.id == response.cover_photo_id), None)
        response.cover_photo = cover.url if cover else None
    return response


@router.get("/family/{family_id}", response_model=Envelope[list[AlbumResponse]])
async def list_albums(
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[list[AlbumResponse]]:
    stmt = (
        select(Album)
        .where(Album.family_id == ctx.family_id)
        .order_by(Album.created_at.desc())
    )
    responses = await asyncio.to_thread(
        lambda: [AlbumResponse.model_validate(a) for a in db.execute(stmt).scalars().all()]
    )
    return Envelope(data=[await signed(r, settings, system_s3) for r in responses])


@router.get("/{album_id}", response_model=Envelope[AlbumResponse])
async def get_album(
    album_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[AlbumResponse]:
    def _load() -> AlbumResponse:
        album = get_album_or_404(db, album_id)
        load_family_context(db, user, album.family_id)
        return AlbumResponse.model_validate(album)

    return Envelope(data=await signed(await asyncio.to_thread(_load), settings, system_s3))


@router.post("", response_model=Envelope[AlbumResponse], status_code=status.HTTP_201_CREATED)
def create_album(
    data: AlbumCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[AlbumResponse]:
    load_family_context(db, user, data.family_id)
    album = Album(
        family_id=data.family_id,
        name=data.name,
        description=data.description,
        created_by_id=user.id,
    )
    db.add(album)
    db.commit()
    db.refresh(album)
    return Envelope(data=AlbumResponse.model_validate(album))


@router.put("/{album_id}", response_model=Envelope[AlbumResponse])
async def update_album(
    album_id: UUID,
    data: AlbumUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[AlbumResponse]:
    """Rename or describe an album, or choose its cover (one of its photos or a URL)."""

    def _update() -> AlbumResponse:
        album = get_album_or_404(db, album_id)
        load_family_context(db, user, album.family_id)

        for field_name, value in data.model_dump(exclude_unset=True).items():
            if field_name == "name":
                value = (value or "").strip()
                if not value:
                    raise ValidationError("Album name is required")
            if field_name == "cover_photo_id" and value is not None:
                if value not in {photo.id for photo in album.photos}:
                    raise ValidationError("Cover photo must be a photo of this album")
            setattr(album, field_name, value)
        # An explicit cover URL replaces the photo-based cover
        if data.cover_photo is not None and "cover_photo_id" not in data.model_fields_set:
            album.cover_photo_id = None
        db.commit()
        db.refresh(album)
        return AlbumResponse.model_validate(album)

    response = await asyncio.to_thread(_update)
    return Envelope(data=await signed(response, settings, system_s3))


@router.post("/{album_id}/photos", response_model=Envelope[AlbumResponse])
async def add_photos(
    album_id: UUID,
    photos: list[UploadFile] | None = File(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[AlbumResponse]:
    """Append photos to an album in upload order."""

    def _load() -> tuple[Album, str]:
        album = get_album_or_404(db, album_id)
        ctx = load_family_context(db, user, album.family_id)
        return album, ctx.family.name

    album, family_name = await asyncio.to_thread(_load)

    files = await read_upload_files(photos)
    validate_files(files, settings, allow_video=False, max_files=MAX_ALBUM_FILES)

    uploader = build_uploader(user, settings, system_s3)
    result = await uploader.upload(
        files, UploadTarget(family_name=family_name, folder_name=album.name)
    )

    def _persist() -> AlbumResponse:
        # Start after the highest stored position so concurrent appends keep their rows
        start = db.execute(
            select(func.coalesce(func.max(AlbumPhoto.position), -1)).where(
                AlbumPhoto.album_id == album.id
            )
        ).scalar_one() + 1
        added = [
            AlbumPhoto.from_descriptor(
                descriptor, start + offset, uploaded_by_id=user.id, album_id=album.id
            )
            for offset, descriptor in enumerate(result.descriptors)
        ]
        db.add_all(added)
        db.flush()
        if album.cover_photo_id is None and not album.cover_photo and added:
            album.cover_photo_id = added[0].id
        apply_storage_state(user, result)
        db.commit()
        db.refresh(album)
        return AlbumResponse.model_validate(album)

    response = await persist_upload(db, uploader, result, _persist)

    logger.info(f"Added {len(result.descriptors)} photos to album {response.id}")
    return Envelope(data=await signed(response, settings, system_s3))


@router.delete("/{album_id}", response_model=Envelope[None])
async def delete_album(
    album_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Envelope[None]:
    """Delete an album and its local files (family Admin only)."""

    def _delete() -> list[MediaDescriptor]:
        album = get_album_or_404(db, album_id)
        ctx = load_family_context(db, user, album.family_id)
        if not ctx.is_admin:
            raise ForbiddenError("Only family admins can delete albums")

        descriptors = [photo.to_descriptor() for photo in album.photos]
        db.delete(album)
        db.commit()
        return descriptors

    descriptors = await asyncio.to_thread(_delete)
    await delete_stored_media(descriptors, settings)
    return Envelope(data=None, message="Album deleted")
