"""Family tree members, with an optional photo stored like any other media."""

import asyncio
import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from apps.api.auth.dependencies import FamilyContext, get_current_user, require_family_access
from apps.api.auth.models import FamilyMembership, FamilyRole, User
from apps.api.config import Settings, get_settings
from apps.api.db import get_db
from apps.api.notifications import FamilyNotice, NotificationDispatcher, get_dispatcher
from apps.api.schemas import Envelope, TreeMemberResponse
from apps.api.storage import (
    apply_storage_state,
    build_uploader,
    delete_stored_media,
    get_system_s3,
    persist_upload,
    read_upload_files,
    sign_descriptor_url,
    validate_files,
)
from db.models import Gender, Kinship, TreeMember
from packages.shared.exceptions import ForbiddenError, NotFoundError, ValidationError
from packages.shared.storage import MediaDescriptor, S3FileStorage, UploadTarget

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/members", tags=["Members"])

PHOTO_FOLDER = "members"


# =============================================================================
# Helpers
# =============================================================================


def to_member_response(member: TreeMember) -> TreeMemberResponse:
    response = TreeMemberResponse.model_validate(member)
    response.photo_url = member.photo["url"] if member.photo else None
    return response


async def signed(
    response: TreeMemberResponse,
    settings: Settings,
    system_s3: S3FileStorage | None,
) -> TreeMemberResponse:
    if response.photo:
        response.photo = await sign_descriptor_url(response.photo, settings, system_s3)
        response.photo_url = response.photo["url"]
    return response


def parse_member_ref(raw: str | None) -> UUID | None | bool:
    """
    Parse a father/mother/spouse form field.

    Returns False when the field was not sent, None for `null` (clear the
    link) and the UUID otherwise. Empty form values arrive as not sent.
    """
    if raw is None:
        return False
    raw = raw.strip()
    if raw.lower() in ("null", "none"):
        return None
    try:
        return UUID(raw)
    except ValueError:
        raise ValidationError(f"Invalid member id: {raw}") from None


def check_relatives(db: Session, family_id: UUID, refs: dict[str, UUID | None | bool]) -> None:
    """Linked relatives must be members of the same family tree."""
    for field_name, value in refs.items():
        if not isinstance(value, UUID):
            continue
        stmt = select(TreeMember.id).where(
            TreeMember.id == value, TreeMember.family_id == family_id
        )
        if db.execute(stmt).scalar_one_or_none() is None:
            label = field_name.removesuffix("_id")
            raise ValidationError(f"The {label} must be a member of this family tree")


def get_member_or_404(db: Session, family_id: UUID, member_id: UUID) -> TreeMember:
    stmt = select(TreeMember).where(
        TreeMember.id == member_id, TreeMember.family_id == family_id
    )
    member = db.execute(stmt).scalar_one_or_none()
    if not member:
        raise NotFoundError("Member")
    return member


async def upload_photo(
    photo: UploadFile | None,
    ctx: FamilyContext,
    settings: Settings,
    system_s3: S3FileStorage | None,
):
    """Store the optional photo of a request; returns `(uploader, result)` or Nones."""
    files = await read_upload_files([photo] if photo else None)
    if not files:
        return None, None
    validate_files(files, settings, allow_video=False, max_files=1)
    uploader = build_uploader(ctx.user, settings, system_s3)
    result = await uploader.upload(
        files, UploadTarget(family_name=ctx.family.name, folder_name=PHOTO_FOLDER)
    )
    return uploader, result


def welcome_email(member_name: str, family_name: str, settings: Settings) -> str:
    return (
        f"<h2>Welcome to {family_name}!</h2>"
        f"<p>Hi {member_name}, you have been added to the {family_name} family tree.</p>"
        f"<p>If you don't have an account yet, register with this email address at "
        f"<a href=\"{settings.client_url}\">{settings.client_url}</a> to see the family portal.</p>"
    )


# =============================================================================
# Routes
# =============================================================================


@router.get("", response_model=Envelope[list[TreeMemberResponse]])
async def list_all_members(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[list[TreeMemberResponse]]:
    """Tree members of every family the caller belongs to."""

    def _load() -> list[TreeMemberResponse]:
        stmt = (
            select(TreeMember)
            .join(FamilyMembership, FamilyMembership.family_id == TreeMember.family_id)
            .where(FamilyMembership.user_id == user.id)
            .order_by(TreeMember.generation, TreeMember.first_name)
        )
        return [to_member_response(m) for m in db.execute(stmt).scalars().all()]

    responses = await asyncio.to_thread(_load)
    return Envelope(data=[await signed(r, settings, system_s3) for r in responses])


@router.get("/{family_id}", response_model=Envelope[list[TreeMemberResponse]])
async def list_members(
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[list[TreeMemberResponse]]:
    """The family tree, oldest generation first."""

    def _load() -> list[TreeMemberResponse]:
        stmt = (
            select(TreeMember)
            .where(TreeMember.family_id == ctx.family_id)
            .order_by(TreeMember.generation, TreeMember.first_name)
        )
        return [to_member_response(m) for m in db.execute(stmt).scalars().all()]

    responses = await asyncio.to_thread(_load)
    return Envelope(data=[await signed(r, settings, system_s3) for r in responses])


@router.post(
    "/{family_id}",
    response_model=Envelope[TreeMemberResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    background_tasks: BackgroundTasks,
    first_name: str | None = Form(None),
    last_name: str | None = Form(None),
    email: str | None = Form(None),
    gender: Gender | None = Form(None),
    date_of_birth: date | None = Form(None),
    kinship: Kinship = Form(Kinship.OTHER),
    role: FamilyRole = Form(FamilyRole.MEMBER),
    father_id: str | None = Form(None),
    mother_id: str | None = Form(None),
    spouse_id: str | None = Form(None),
    generation: int = Form(0),
    is_alive: bool = Form(True),
    notes: str | None = Form(None),
    photo: UploadFile | None = File(None),
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Envelope[TreeMemberResponse]:
    """Add a person to the family tree and tell the family about it."""
    first_name = (first_name or "").strip()
    if not first_name:
        raise ValidationError("First name is required")
    email = (email or "").strip() or None
    family_name = ctx.family.name
    refs = {
        "father_id": parse_member_ref(father_id),
        "mother_id": parse_member_ref(mother_id),
        "spouse_id": parse_member_ref(spouse_id),
    }
    await asyncio.to_thread(check_relatives, db, ctx.family_id, refs)

    uploader, result = await upload_photo(photo, ctx, settings, system_s3)

    def _persist() -> tuple[TreeMemberResponse, FamilyNotice]:
        member = TreeMember(
            family_id=ctx.family_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            gender=gender,
            date_of_birth=date_of_birth,
            kinship=kinship,
            role=role,
            generation=generation,
            is_alive=is_alive,
            notes=notes,
            created_by_id=ctx.user.id,
            **{k: v for k, v in refs.items() if v is not False},
        )
        if result:
            member.photo = result.descriptors[0].to_dict()
            apply_storage_state(ctx.user, result)
        db.add(member)
        db.commit()
        db.refresh(member)

        response = to_member_response(member)
        notice = FamilyNotice(
            family_id=ctx.family_id,
            actor_id=ctx.user.id,
            event="new-member",
            notification_type="member",
            title="New family member",
            message=f"{ctx.user.full_name} added {member.full_name} to {family_name}",
            link=f"/members/{ctx.family_id}",
            payload=response.model_dump(mode="json"),
            email_subject=f"New Family Member Added: {member.full_name}",
        )
        return response, notice

    if result:
        response, notice = await persist_upload(db, uploader, result, _persist)
    else:
        response, notice = await asyncio.to_thread(_persist)

    logger.info(f"Tree member {response.id} added to family {ctx.family_id}")
    background_tasks.add_task(dispatcher.dispatch, notice)
    if email and "@" in email:
        member_name = f"{first_name} {last_name or ''}".strip()
        background_tasks.add_task(
            dispatcher.send_email,
            [email],
            f"Welcome to {family_name}",
            welcome_email(member_name, family_name, settings),
        )
    return Envelope(data=await signed(response, settings, system_s3))


@router.put("/{family_id}/{member_id}", response_model=Envelope[TreeMemberResponse])
async def update_member(
    member_id: UUID,
    first_name: str | None = Form(None),
    last_name: str | None = Form(None),
    email: str | None = Form(None),
    gender: Gender | None = Form(None),
    date_of_birth: date | None = Form(None),
    kinship: Kinship | None = Form(None),
    role: FamilyRole | None = Form(None),
    father_id: str | None = Form(None),
    mother_id: str | None = Form(None),
    spouse_id: str | None = Form(None),
    generation: int | None = Form(None),
    is_alive: bool | None = Form(None),
    notes: str | None = Form(None),
    photo: UploadFile | None = File(None),
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    system_s3: S3FileStorage | None = Depends(get_system_s3),
) -> Envelope[TreeMemberResponse]:
    """Edit a tree member; only the fields sent are changed."""
    refs = {
        "father_id": parse_member_ref(father_id),
        "mother_id": parse_member_ref(mother_id),
        "spouse_id": parse_member_ref(spouse_id),
    }
    if any(value == member_id for value in refs.values()):
        raise ValidationError("A member cannot be linked to themselves")

    def _check() -> None:
        get_member_or_404(db, ctx.family_id, member_id)
        check_relatives(db, ctx.family_id, refs)

    await asyncio.to_thread(_check)

    uploader, result = await upload_photo(photo, ctx, settings, system_s3)
    changes = {
        "first_name": (first_name or "").strip() or None,
        "last_name": last_name,
        "email": email,
        "gender": gender,
        "date_of_birth": date_of_birth,
        "kinship": kinship,
        "role": role,
        "generation": generation,
        "is_alive": is_alive,
        "notes": notes,
    }

    def _persist() -> tuple[TreeMemberResponse, MediaDescriptor | None]:
        member = get_member_or_404(db, ctx.family_id, member_id)
        for field_name, value in changes.items():
            if value is not None:
                setattr(member, field_name, value)
        for field_name, value in refs.items():
            if value is not False:
                setattr(member, field_name, value)

        replaced = None
        if result:
            if member.photo:
                replaced = MediaDescriptor(**member.photo)
            member.photo = result.descriptors[0].to_dict()
            apply_storage_state(ctx.user, result)
        db.commit()
        db.refresh(member)
        return to_member_response(member), replaced

    if result:
        response, replaced = await persist_upload(db, uploader, result, _persist)
    else:
        response, replaced = await asyncio.to_thread(_persist)

    if replaced:
        await delete_stored_media([replaced], settings)
    return Envelope(data=await signed(response, settings, system_s3))


@router.delete("/{family_id}/{member_id}", response_model=Envelope[None])
async def delete_member(
    member_id: UUID,
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Envelope[None]:
    """Remove a person from the tree (whoever added them or a family Admin)."""

    def _delete() -> MediaDescriptor | None:
        member = get_member_or_404(db, ctx.family_id, member_id)
        if member.created_by_id != ctx.user.id and not ctx.is_admin:
            raise ForbiddenError("Only the member's creator or a family admin can remove them")
        photo = MediaDescriptor(**member.photo) if member.photo else None
        # Relatives keep their row, only the link goes
        for column in (TreeMember.father_id, TreeMember.mother_id, TreeMember.spouse_id):
            db.execute(
                update(TreeMember).where(column == member.id).values({column.key: None})
            )
        db.delete(member)
        db.commit()
        return photo

    photo = await asyncio.to_thread(_delete)
    if photo:
        await delete_stored_media([photo], settings)
    return Envelope(data=None, message="Member removed successfully")
