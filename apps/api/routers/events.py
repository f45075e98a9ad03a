"""Family calendar events."""

import logging
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, status
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
from apps.api.notifications import FamilyNotice, NotificationDispatcher, get_dispatcher
from apps.api.schemas import Envelope, EventCreate, EventResponse
from db.models import Event
from packages.shared.exceptions import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["Events"])


@router.get("/{family_id}", response_model=Envelope[list[EventResponse]])
def list_events(
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
) -> Envelope[list[EventResponse]]:
    """Family events ordered by start date."""
    stmt = select(Event).where(Event.family_id == ctx.family_id).order_by(Event.start_date)
    events = db.execute(stmt).scalars().all()
    return Envelope(data=[EventResponse.model_validate(e) for e in events])


@router.post(
    "/{family_id}",
    response_model=Envelope[EventResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_event(
    data: EventCreate,
    background_tasks: BackgroundTasks,
    ctx: FamilyContext = Depends(require_family_access),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Envelope[EventResponse]:
    if data.end_date and data.end_date < data.start_date:
        raise ValidationError("End date must not be before start date")

    event = Event(
        family_id=ctx.family_id,
        created_by_id=ctx.user.id,
        **data.model_dump(),
    )
    db.add(event)
    db.commit()
    db.refresh(event)

    logger.info(f"Event {event.id} created in family {ctx.family_id}")
    background_tasks.add_task(
        dispatcher.dispatch,
        FamilyNotice(
            family_id=ctx.family_id,
            actor_id=ctx.user.id,
            event="new-event",
            notification_type="event",
            title="New family event",
            message=f"{ctx.user.full_name} scheduled {event.title}",
            link=f"/events/{event.id}",
            payload={
                "event_id": str(event.id),
                "title": event.title,
                "start_date": event.start_date.isoformat(),
            },
            email_subject=f"{event.title} in {ctx.family.name}",
        ),
    )
    return Envelope(data=EventResponse.model_validate(event))


@router.delete("/{event_id}", response_model=Envelope[None])
def delete_event(
    event_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[None]:
    """Delete an event (creator or family Admin)."""
    event = db.execute(select(Event).where(Event.id == event_id)).scalar_one_or_none()
    if not event:
        raise NotFoundError("Event")
    ctx = load_family_context(db, user, event.family_id)
    if event.created_by_id != user.id and not ctx.is_admin:
        raise ForbiddenError("Only the creator or a family admin can delete this event")

    db.delete(event)
    db.commit()
    return Envelope(data=None, message="Event deleted")
