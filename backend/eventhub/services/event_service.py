"""
Event service handling CRUD operations.

Events are managed by platform admins or by admins of the owning
organisation. Publishing an event (on create or through an update) fans out
a `new_event` notification after the transaction commits.
"""

from datetime import datetime, timezone
from typing import Mapping

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.exceptions import BadRequestError, ForbiddenError, InvalidStateError, NotFoundError
from eventhub.core.logging import get_logger
from eventhub.core.security import Principal
from eventhub.db.base import as_utc
from eventhub.models.application import Application
from eventhub.models.event import Event, EventStatus, STATUS_TRANSITIONS
from eventhub.models.notification import Notification
from eventhub.models.organisation import Organisation
from eventhub.models.user import UserRole
from eventhub.schemas.event import EventCreate, EventUpdate
from eventhub.services.application_service import is_organisation_admin
from eventhub.services.notification_dispatcher import NotificationDispatcher, NotificationJob
from eventhub.utils.query_features import QueryFeatures

logger = get_logger(__name__)

_REQUIRED_COLUMNS = frozenset(column.key for column in Event.__table__.columns if not column.nullable)


async def can_manage_event(db: AsyncSession, principal: Principal, organisation_id: int) -> bool:
    if principal.is_admin:
        return True
    if principal.role is not UserRole.ORGANISATION:
        return False
    return await is_organisation_admin(db, principal.id, organisation_id)


async def create_event(
    db: AsyncSession,
    principal: Principal,
    event_data: EventCreate,
    dispatcher: NotificationDispatcher,
) -> Event:
    """Create an event for an organisation the principal manages."""
    organisation = await db.get(Organisation, event_data.organisation_id)
    if organisation is None:
        raise NotFoundError("Organisation not found")

    if not await can_manage_event(db, principal, organisation.id):
        raise ForbiddenError("You are not authorized to create events for this organisation")

    if as_utc(event_data.registration_end_date) <= datetime.now(timezone.utc):
        raise BadRequestError("Registration end date must be in the future")

    values = event_data.model_dump(exclude_none=True)
    event = Event(**values, registered_count=0)
    db.add(event)
    await db.commit()
    await db.refresh(event)

    logger.info(
        "event_created",
        event_id=event.id,
        organisation_id=organisation.id,
        status=event.status,
        capacity=event.capacity,
    )

    if event.status == EventStatus.PUBLISHED.value:
        dispatcher.enqueue(NotificationJob.new_event(event.id))
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise NotFoundError(f"Event {event_id} not found")
    return event


async def list_events(db: AsyncSession, params: Mapping[str, str]) -> tuple[QueryFeatures, list[Event], int]:
    """
    List events with filtering, search, sorting, projection and pagination.
    Filters on organisation_id/status use the ix_events_organisation_status index.
    """
    features = (
        QueryFeatures(Event, params)
        .filter()
        .search(("title", "description"))
        .sort()
        .limit_fields()
        .paginate()
    )
    events, total = await features.fetch_page(db)
    return features, events, total


def _check_transition(current: str, requested: str) -> None:
    if requested == current:
        return
    if EventStatus(requested) not in STATUS_TRANSITIONS[EventStatus(current)]:
        raise InvalidStateError(f"Cannot change event status from {current} to {requested}")


async def update_event(
    db: AsyncSession,
    principal: Principal,
    event_id: int,
    event_data: EventUpdate,
    dispatcher: NotificationDispatcher,
) -> Event:
    event = await get_event(db, event_id)
    if not await can_manage_event(db, principal, event.organisation_id):
        raise ForbiddenError("You are not authorized to update this event")

    changes = event_data.model_dump(exclude_unset=True)

    start = as_utc(changes.get("start_date") or event.start_date)
    end = as_utc(changes.get("end_date") or event.end_date)
    registration_end = as_utc(changes.get("registration_end_date") or event.registration_end_date)
    if end <= start:
        raise BadRequestError("End date must be after start date")
    if registration_end >= start:
        raise BadRequestError("Registration must close before the event starts")

    if changes.get("capacity") is not None and changes["capacity"] < event.registered_count:
        raise BadRequestError(
            f"Capacity cannot be lower than the {event.registered_count} accepted applications"
        )

    previous_status = event.status
    if changes.get("status"):
        _check_transition(previous_status, changes["status"])

    price = changes.get("price")
    if (price if price is not None else event.price or 0) > 0:
        changes["is_free"] = False

    for field, value in changes.items():
        if value is None and field in _REQUIRED_COLUMNS:
            continue
        setattr(event, field, value)
    event.version += 1

    await db.commit()
    await db.refresh(event)

    logger.info("event_updated", event_id=event.id, fields=sorted(changes))

    if previous_status != EventStatus.PUBLISHED.value and event.status == EventStatus.PUBLISHED.value:
        dispatcher.enqueue(NotificationJob.new_event(event.id))
    return event


async def delete_event(db: AsyncSession, principal: Principal, event_id: int) -> None:
    """Delete an event with its applications; notifications keep their text but lose the links."""
    event = await get_event(db, event_id)
    if not await can_manage_event(db, principal, event.organisation_id):
        raise ForbiddenError("You are not authorized to delete this event")

    application_ids = select(Application.id).where(Application.event_id == event.id)
    await db.execute(
        update(Notification)
        .where(Notification.related_application_id.in_(application_ids))
        .values(related_application_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Notification)
        .where(Notification.related_event_id == event.id)
        .values(related_event_id=None)
        .execution_options(synchronize_session=False)
    )
    removed = await db.execute(
        delete(Application).where(Application.event_id == event.id).execution_options(synchronize_session=False)
    )
    await db.delete(event)
    await db.commit()

    logger.info("event_deleted", event_id=event_id, applications_removed=removed.rowcount)
