"""Family chat messages."""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.api.auth.dependencies import (
    FamilyContext,
    get_current_user,
    load_family_context,
    require_family_access,
)
from apps.api.auth.models import User
from apps.api.db import get_db
from apps.api.notifications import NotificationDispatcher, get_dispatcher
from apps.api.schemas import Envelope, MessageCreate, MessageResponse
from db.models import Message
from packages.shared.exceptions import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["Messages"])


def get_message_or_404(db: Session, message_id: UUID) -> Message:
    stmt = select(Message).where(Message.id == message_id, Message.deleted_at.is_(None))
    message = db.execute(stmt).scalar_one_or_none()
    if not message:
        raise NotFoundError("Message")
    return message


@router.get("/{family_id}", response_model=Envelope[list[MessageResponse]])
def list_messages(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
) -> Envelope[list[MessageResponse]]:
    """The newest `limit` messages after skipping `offset`, oldest first."""
    stmt = (
        select(Message)
        .where(Message.family_id == ctx.family_id, Message.deleted_at.is_(None))
        .order_by(Message.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    messages = list(db.execute(stmt).scalars().all())
    messages.reverse()
    return Envelope(data=[MessageResponse.model_validate(m) for m in messages])


@router.post(
    "/{family_id}",
    response_model=Envelope[MessageResponse],
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    data: MessageCreate,
    background_tasks: BackgroundTasks,
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Envelope[MessageResponse]:
    message = Message(family_id=ctx.family_id, user_id=ctx.user.id, content=data.content)
    db.add(message)
    db.commit()
    db.refresh(message)

    response = MessageResponse.model_validate(message)
    background_tasks.add_task(
        dispatcher.broadcast,
        ctx.family_id,
        "message-received",
        response.model_dump(mode="json"),
    )
    return Envelope(data=response)


@router.put("/{message_id}", response_model=Envelope[MessageResponse])
def edit_message(
    message_id: UUID,
    data: MessageCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[MessageResponse]:
    """Edit a message (sender only)."""
    message = get_message_or_404(db, message_id)
    load_family_context(db, user, message.family_id)
    if message.user_id != user.id:
        raise ForbiddenError("Only the sender can edit this message")

    message.content = data.content
    db.commit()
    db.refresh(message)
    return Envelope(data=MessageResponse.model_validate(message))


@router.delete("/{message_id}", response_model=Envelope[None])
def delete_message(
    message_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[None]:
    """Hide a message (sender or family Admin); the row is kept."""
    message = get_message_or_404(db, message_id)
    ctx = load_family_context(db, user, message.family_id)
    if message.user_id != user.id and not ctx.is_admin:
        raise ForbiddenError("Only the sender or a family admin can delete this message")

    message.deleted_at = datetime.utcnow()
    db.commit()
    logger.info(f"Message {message_id} deleted by {user.id}")
    return Envelope(data=None, message="Message deleted")
