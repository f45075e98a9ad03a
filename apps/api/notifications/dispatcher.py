"""
Post-commit notification dispatch.

Route handlers build a FamilyNotice after their transaction commits and
hand it to FastAPI BackgroundTasks; the dispatcher then runs after the
response is sent. Each channel (in-app rows, email, realtime) fails
independently and failures are only logged.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
import logging
from typing import Any
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.api.auth.models import FamilyMembership, User
from apps.api.config import get_settings
from apps.api.db import get_session_factory
from apps.api.notifications.email import EmailSender, get_email_sender
from apps.api.notifications.realtime import FamilyRoomManager, get_room_manager
from db.models import Notification

logger = logging.getLogger(__name__)


@dataclass
class FamilyNotice:
    """Something happened in a family that other members should hear about."""

    family_id: UUID
    actor_id: UUID
    event: str  # realtime event name, e.g. "new-memory"
    notification_type: str  # in-app type, e.g. "memory"
    title: str
    message: str
    link: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    email_subject: str | None = None
    email_html: str | None = None


class NotificationDispatcher:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        rooms: FamilyRoomManager,
        email_sender: EmailSender | None = None,
    ):
        self.session_factory = session_factory
        self.rooms = rooms
        self.email_sender = email_sender

    def _store(self, notice: FamilyNotice) -> list[str]:
        """Create in-app notifications; return the recipients' email addresses."""
        db = self.session_factory()
        try:
            stmt = (
                select(User)
                .join(FamilyMembership, FamilyMembership.user_id == User.id)
                .where(
                    FamilyMembership.family_id == notice.family_id,
                    User.id != notice.actor_id,
                    User.is_active.is_(True),
                )
            )
            recipients = list(db.execute(stmt).scalars().all())
            for user in recipients:
                db.add(
                    Notification(
                        user_id=user.id,
                        family_id=notice.family_id,
                        type=notice.notification_type,
                        title=notice.title,
                        message=notice.message,
                        link=notice.link,
                    )
                )
            db.commit()
            logger.info(
                f"Created {len(recipients)} notifications for family {notice.family_id}"
            )
            return [user.email for user in recipients]
        finally:
            db.close()

    async def _email(self, notice: FamilyNotice, recipients: list[str]) -> None:
        if self.email_sender is None:
            logger.warning("Email not configured, skipping family email")
            return
        if not recipients:
            return
        await self.email_sender.send_bulk(
            recipients,
            notice.email_subject or notice.title,
            notice.email_html or f"<p>{notice.message}</p>",
        )

    async def dispatch(self, notice: FamilyNotice) -> None:
        recipients: list[str] = []
        try:
            recipients = await asyncio.to_thread(self._store, notice)
        except Exception:
            logger.exception(f"In-app notifications failed for family {notice.family_id}")

        try:
            await self._email(notice, recipients)
        except Exception:
            logger.exception(f"Notification email failed for family {notice.family_id}")

        try:
            await self.rooms.broadcast(str(notice.family_id), notice.event, notice.payload)
        except Exception:
            logger.exception(f"Realtime {notice.event} failed for family {notice.family_id}")

    async def broadcast(self, family_id: UUID, event: str, payload: dict[str, Any]) -> None:
        """Realtime-only fan-out, for chatter that is not worth a notification."""
        try:
            await self.rooms.broadcast(str(family_id), event, payload)
        except Exception:
            logger.exception(f"Realtime {event} failed for family {family_id}")

    async def send_email(self, recipients: list[str], subject: str, html: str) -> None:
        """Email addresses outside the family, such as invitees."""
        if self.email_sender is None:
            logger.warning(f"Email not configured, skipping '{subject}'")
            return
        try:
            await self.email_sender.send_bulk(recipients, subject, html)
        except Exception:
            logger.exception(f"Email '{subject}' failed")


def get_dispatcher(
    request: Request,
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> NotificationDispatcher:
    """Dependency: dispatcher wired to the app's rooms and email settings."""
    return NotificationDispatcher(
        session_factory=session_factory,
        rooms=get_room_manager(request),
        email_sender=get_email_sender(get_settings()),
    )
