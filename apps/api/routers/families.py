"""Family routes: CRUD plus joining by passcode."""

import logging
import secrets
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from apps.api.auth.dependencies import (
    FamilyContext,
    get_current_user,
    get_family,
    get_membership,
    require_family_access,
    require_family_admin,
)
from apps.api.auth.models import Family, FamilyMembership, FamilyRole, User
from apps.api.db import get_db
from apps.api.notifications import FamilyNotice, NotificationDispatcher, get_dispatcher
from apps.api.schemas import (
    Envelope,
    FamilyCreate,
    FamilyResponse,
    FamilyUpdate,
    MemberResponse,
    PasscodeRequest,
)
from packages.shared.exceptions import (
    AuthError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/families", tags=["Families"])


def generate_passcode() -> str:
    """Random six-digit passcode in 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


def to_family_response(
    family: Family,
    membership: FamilyMembership | None,
    include_members: bool = True,
) -> FamilyResponse:
    members = [
        MemberResponse(
            user_id=m.user_id,
            first_name=m.user.first_name,
            last_name=m.user.last_name,
            email=m.user.email,
            role=m.role,
            relationship=m.relationship_label,
            joined_at=m.joined_at,
        )
        for m in family.memberships
    ]
    is_admin = membership is not None and membership.role == FamilyRole.ADMIN
    return FamilyResponse(
        id=family.id,
        name=family.name,
        description=family.description,
        cover_image=family.cover_image,
        created_by_id=family.created_by_id,
        is_private=family.is_private,
        allow_member_invites=family.allow_member_invites,
        created_at=family.created_at,
        my_role=membership.role if membership else None,
        passcode=family.passcode if is_admin else None,
        member_count=len(members),
        members=members if include_members else [],
    )


@router.get("", response_model=Envelope[list[FamilyResponse]])
def list_families(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[list[FamilyResponse]]:
    """Families the caller belongs to."""
    stmt = (
        select(FamilyMembership)
        .where(FamilyMembership.user_id == user.id)
        .order_by(FamilyMembership.joined_at)
    )
    memberships = db.execute(stmt).scalars().all()
    return Envelope(
        data=[to_family_response(m.family, m, include_members=False) for m in memberships]
    )


@router.post(
    "",
    response_model=Envelope[FamilyResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_family(
    data: FamilyCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[FamilyResponse]:
    """Create a family; the creator becomes its Admin."""
    family = Family(
        name=data.name,
        description=data.description,
        cover_image=data.cover_image,
        is_private=data.is_private,
        allow_member_invites=data.allow_member_invites,
        passcode=generate_passcode(),
        created_by_id=user.id,
    )
    membership = FamilyMembership(
        user=user,
        role=FamilyRole.ADMIN,
        relationship_label="Self",
    )
    family.memberships.append(membership)
    db.add(family)
    db.commit()
    db.refresh(family)

    logger.info(f"User {user.id} created family {family.id}")
    return Envelope(data=to_family_response(family, membership))


@router.get("/{family_id}", response_model=Envelope[FamilyResponse])
def get_family_detail(
    ctx: FamilyContext = Depends(require_family_access),
) -> Envelope[FamilyResponse]:
    return Envelope(data=to_family_response(ctx.family, ctx.membership))


@router.put("/{family_id}", response_model=Envelope[FamilyResponse])
def update_family(
    data: FamilyUpdate,
    ctx: FamilyContext = Depends(require_family_admin),
    db: Session = Depends(get_db),
) -> Envelope[FamilyResponse]:
    """Update family details (Admin only)."""
    family = ctx.family
    for field_name, value in data.model_dump(exclude_unset=True).items():
        if field_name == "name":
            value = (value or "").strip()
            if not value:
                raise ValidationError("Family name is required")
        setattr(family, field_name, value)
    db.commit()
    db.refresh(family)
    return Envelope(data=to_family_response(family, ctx.membership))


@router.delete("/{family_id}", response_model=Envelope[None])
def delete_family(
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
) -> Envelope[None]:
    """Delete a family (creator only)."""
    if ctx.family.created_by_id != ctx.user.id:
        raise ForbiddenError("Only the family creator can delete the family")
    db.delete(ctx.family)
    db.commit()
    return Envelope(data=None, message="Family deleted")


# =============================================================================
# Passcode
# =============================================================================


def _check_passcode(db: Session, family_id: UUID, passcode: str | None) -> Family:
    if not passcode:
        raise ValidationError("Passcode is required")
    family = get_family(db, family_id)
    if not family:
        raise NotFoundError("Family")
    if not secrets.compare_digest(family.passcode, passcode.strip()):
        raise AuthError("Invalid passcode")
    return family


@router.post("/{family_id}/verify-passcode", response_model=Envelope[dict])
def verify_passcode(
    family_id: UUID,
    data: PasscodeRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[dict]:
    family = _check_passcode(db, family_id, data.passcode)
    return Envelope(
        data={"family_id": str(family.id), "name": family.name},
        message="Passcode verified",
    )


@router.post("/{family_id}/join", response_model=Envelope[FamilyResponse])
def join_family(
    family_id: UUID,
    data: PasscodeRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Envelope[FamilyResponse]:
    """Join a family with its six-digit passcode."""
    family = _check_passcode(db, family_id, data.passcode)

    if get_membership(db, user.id, family.id):
        raise ValidationError("You are already a member of this family")

    membership = FamilyMembership(
        family_id=family.id,
        user_id=user.id,
        role=FamilyRole.MEMBER,
        relationship_label=data.relationship,
    )
    db.add(membership)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent join by the same user
        db.rollback()
        raise ValidationError("You are already a member of this family") from None
    db.refresh(family)

    logger.info(f"User {user.id} joined family {family.id}")
    background_tasks.add_task(
        dispatcher.dispatch,
        FamilyNotice(
            family_id=family.id,
            actor_id=user.id,
            event="new-member",
            notification_type="member_added",
            title="New family member",
            message=f"{user.full_name} joined {family.name}",
            link=f"/families/{family.id}",
            payload={"user_id": str(user.id), "name": user.full_name},
            email_subject=f"{user.full_name} joined {family.name}",
        ),
    )
    return Envelope(data=to_family_response(family, membership), message="Joined family")
