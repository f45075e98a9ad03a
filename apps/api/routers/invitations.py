"""
Email invitations to join a family.

An invitation carries a one-time token. The invitee opens the emailed
link, signs in with the invited address and accepts it, which creates
their family membership.
"""

import logging
import uuid
from datetime import datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from apps.api.auth.dependencies import (
    FamilyContext,
    get_current_user,
    get_membership,
    load_family_context,
    require_family_access,
)
from apps.api.auth.models import FamilyMembership, User
from apps.api.config import Settings, get_settings
from apps.api.db import get_db
from apps.api.notifications import NotificationDispatcher, get_dispatcher
from apps.api.schemas import Envelope, InvitationCreate, InvitationResponse
from db.models import Invitation, InvitationStatus
from packages.shared.exceptions import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invitations", tags=["Invitations"])

INVITATION_TTL = timedelta(days=7)


def invitation_link(settings: Settings, token: str) -> str:
    return f"{settings.client_url.rstrip('/')}/invite/{token}"


def invitation_email(inviter: str, family_name: str, link: str) -> str:
    return (
        f"<h2>You're invited to join {family_name}</h2>"
        f"<p>{inviter} invited you to the {family_name} family portal.</p>"
        f"<p><a href=\"{link}\">Accept the invitation</a></p>"
        f"<p>This invitation expires in {INVITATION_TTL.days} days.</p>"
    )


@router.get("/{family_id}", response_model=Envelope[list[InvitationResponse]])
def list_invitations(
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
) -> Envelope[list[InvitationResponse]]:
    stmt = (
        select(Invitation)
        .where(Invitation.family_id == ctx.family_id)
        .order_by(Invitation.created_at.desc())
    )
    invitations = db.execute(stmt).scalars().all()
    return Envelope(data=[InvitationResponse.model_validate(i) for i in invitations])


@router.post(
    "/accept/{token}",
    response_model=Envelope[InvitationResponse],
)
def accept_invitation(
    token: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[InvitationResponse]:
    """
    Accept an invitation as the signed-in user.

    Raises:
        NotFoundError: unknown token
        ValidationError: already processed, expired, or already a member
        ForbiddenError: invitation was sent to another address
    """
    invitation = db.execute(
        select(Invitation).where(Invitation.token == token)
    ).scalar_one_or_none()
    if not invitation:
        raise NotFoundError("Invitation")
    if invitation.status != InvitationStatus.PENDING:
        raise ValidationError("Invitation has already been processed")
    if invitation.expires_at < datetime.utcnow():
        invitation.status = InvitationStatus.EXPIRED
        db.commit()
        raise ValidationError("Invitation has expired")
    if invitation.email.lower() != user.email.lower():
        raise ForbiddenError("This invitation was sent to a different email address")
    if get_membership(db, user.id, invitation.family_id):
        raise ValidationError("You are already a member of this family")

    db.add(
        FamilyMembership(
            family_id=invitation.family_id,
            user_id=user.id,
            role=invitation.role,
            relationship_label=invitation.relationship_label,
        )
    )
    invitation.status = InvitationStatus.ACCEPTED
    db.commit()
    db.refresh(invitation)

    logger.info(f"User {user.id} joined family {invitation.family_id} by invitation")
    return Envelope(
        data=InvitationResponse.model_validate(invitation),
        message="Invitation accepted",
    )


@router.post(
    "/{family_id}",
    response_model=Envelope[InvitationResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_invitation(
    data: InvitationCreate,
    background_tasks: BackgroundTasks,
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Envelope[InvitationResponse]:
    """Invite an email address (Admins, or any member when the family allows it)."""
    if not ctx.is_admin and not ctx.family.allow_member_invites:
        raise ForbiddenError("Only family admins can send invitations")

    email = str(data.email).lower()
    pending = db.execute(
        select(Invitation).where(
            Invitation.family_id == ctx.family_id,
            func.lower(Invitation.email) == email,
            Invitation.status == InvitationStatus.PENDING,
        )
    ).scalar_one_or_none()
    if pending:
        raise ValidationError("A pending invitation already exists for this email")

    member = db.execute(
        select(FamilyMembership)
        .join(User, User.id == FamilyMembership.user_id)
        .where(FamilyMembership.family_id == ctx.family_id, func.lower(User.email) == email)
    ).scalar_one_or_none()
    if member:
        raise ValidationError("This person is already a member of the family")

    invitation = Invitation(
        family_id=ctx.family_id,
        email=email,
        invited_by_id=ctx.user.id,
        role=data.role,
        relationship_label=data.relationship,
        token=uuid.uuid4().hex,
        status=InvitationStatus.PENDING,
        expires_at=datetime.utcnow() + INVITATION_TTL,
    )
    family_name = ctx.family.name
    inviter = ctx.user.full_name
    db.add(invitation)
    db.commit()
    db.refresh(invitation)

    logger.info(f"Invitation {invitation.id} sent to {email} for family {ctx.family_id}")
    background_tasks.add_task(
        dispatcher.send_email,
        [email],
        f"Invitation to join {family_name}",
        invitation_email(inviter, family_name, invitation_link(settings, invitation.token)),
    )
    return Envelope(data=InvitationResponse.model_validate(invitation))


@router.delete("/{invitation_id}", response_model=Envelope[None])
def cancel_invitation(
    invitation_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[None]:
    """Cancel an invitation (its sender or a family Admin)."""
    invitation = db.execute(
        select(Invitation).where(Invitation.id == invitation_id)
    ).scalar_one_or_none()
    if not invitation:
        raise NotFoundError("Invitation")
    ctx = load_family_context(db, user, invitation.family_id)
    if invitation.invited_by_id != user.id and not ctx.is_admin:
        raise ForbiddenError("Only the sender or a family admin can cancel this invitation")

    db.delete(invitation)
    db.commit()
    return Envelope(data=None, message="Invitation cancelled")
