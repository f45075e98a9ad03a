"""In-app notification routes."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from apps.api.auth.dependencies import get_current_user
from apps.api.auth.models import User
from apps.api.db import get_db
from apps.api.schemas import Envelope, NotificationList, NotificationResponse
from db.models import Notification
from packages.shared.exceptions import NotFoundError

router = APIRouter(prefix="/notifications", tags=["Notifications"])

MAX_NOTIFICATIONS = 50


@router.get("", response_model=NotificationList)
def list_notifications(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationList:
    """The caller's latest notifications, newest first."""
    stmt = (
        select(Notification)
        .where(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc())
        .limit(MAX_NOTIFICATIONS)
    )
    notifications = db.execute(stmt).scalars().all()
    unread = db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user.id, Notification.is_read.is_(False))
    ).scalar_one()
    return NotificationList(
        data=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread,
    )


@router.put("/read-all", response_model=Envelope[dict])
def mark_all_read(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[dict]:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    db.commit()
    return Envelope(data={"updated": result.rowcount}, message="All notifications read")


@router.put("/{notification_id}/read", response_model=Envelope[NotificationResponse])
def mark_read(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[NotificationResponse]:
    notification = db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user.id,
        )
    ).scalar_one_or_none()
    if not notification:
        raise NotFoundError("Notification")

    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return Envelope(data=NotificationResponse.model_validate(notification))
