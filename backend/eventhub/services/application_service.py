"""
Application workflow: who may apply, how often, under what capacity and
timing constraints, and who may resolve or cancel an application.

CONCURRENCY STRATEGY
====================

Every precondition is a plain read, checked in a fixed order so the first
failing rule always wins. The reads are not the source of truth, though:

  - Capacity. An accepted application holds a slot in
    `events.registered_count`. Slots are taken with a conditional update

        UPDATE events SET registered_count = registered_count + 1,
                          version = version + 1
        WHERE id = :event_id AND registered_count < capacity

    so two resolvers racing for the last slot cannot both win; the loser
    gets rowcount == 0 and a CapacityExceededError.

  - Resolution. The status change is itself conditional
    (`WHERE status = 'pending'`). A cancel or a second resolver that got
    there first leaves rowcount == 0 and the transaction is rolled back.

  - Cancellation. The archive/delete is conditional on the status that was
    read, and the slot is released in the same transaction only when that
    write lands. An acceptance that slipped in between makes the cancel
    fail instead of dropping an accepted row along with its slot.

  - Duplicates. The partial unique index on (user_id, event_id) for
    non-cancelled rows is the backstop; an IntegrityError on insert is
    reported as DuplicateApplicationError.

  - Daily rate limit. Count-then-insert, best-effort. Slight over-admission
    under heavy concurrency is acceptable for abuse mitigation.

Free-event applications are created `pending` without taking a slot, so any
number of them may queue beyond capacity; capacity is enforced when they are
accepted.

State-changing operations commit before enqueueing notifications so the
dispatcher never observes uncommitted rows.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.config import get_settings
from eventhub.core.exceptions import (
    AlreadyProcessedError,
    BadRequestError,
    CapacityExceededError,
    DuplicateApplicationError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    RateLimitedError,
    RegistrationClosedError,
)
from eventhub.core.logging import get_logger
from eventhub.core.metrics import record_application_attempt, record_application_transition, record_db_conflict
from eventhub.core.security import Principal
from eventhub.db.base import as_utc, utcnow
from eventhub.models.application import (
    Application,
    ApplicationStatus,
    CANCELLABLE_STATUSES,
    RESOLUTION_STATUSES,
)
from eventhub.models.event import Event, EventStatus
from eventhub.models.organisation import organisation_admins
from eventhub.models.user import UserRole
from eventhub.services.notification_dispatcher import NotificationDispatcher, NotificationJob
from eventhub.utils.query_features import QueryFeatures

logger = get_logger(__name__)


class CancelOutcome(str, enum.Enum):
    ARCHIVED = "archived"
    DELETED = "deleted"


@dataclass(frozen=True)
class CancellationResult:
    outcome: CancelOutcome
    application: Application
    event_title: str


def start_of_day(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> datetime:
    """Midnight of `now`'s calendar day in `tz_name`, returned in UTC."""
    tz_name = tz_name or get_settings().APPLICATION_DAY_TIMEZONE
    tz = timezone.utc if tz_name == "UTC" else ZoneInfo(tz_name)
    local = (now or datetime.now(timezone.utc)).astimezone(tz)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


async def organisation_admin_ids(db: AsyncSession, organisation_id: int) -> list[int]:
    result = await db.execute(
        select(organisation_admins.c.user_id).where(organisation_admins.c.organisation_id == organisation_id)
    )
    return list(result.scalars().all())


async def is_organisation_admin(db: AsyncSession, user_id: int, organisation_id: int) -> bool:
    result = await db.execute(
        select(organisation_admins.c.user_id).where(
            organisation_admins.c.organisation_id == organisation_id,
            organisation_admins.c.user_id == user_id,
        )
    )
    return result.first() is not None


async def count_accepted(db: AsyncSession, event_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Application).where(
            Application.event_id == event_id,
            Application.status == ApplicationStatus.ACCEPTED.value,
        )
    )
    return result.scalar_one()


async def count_applications_since(db: AsyncSession, user_id: int, since: datetime) -> int:
    result = await db.execute(
        select(func.count()).select_from(Application).where(
            Application.user_id == user_id,
            Application.created_at >= since,
        )
    )
    return result.scalar_one()


async def _reserve_slot(db: AsyncSession, event: Event) -> bool:
    result = await db.execute(
        update(Event)
        .where(Event.id == event.id, Event.registered_count < Event.capacity)
        .values(registered_count=Event.registered_count + 1, version=Event.version + 1)
    )
    if result.rowcount == 0:
        record_db_conflict("reserve_slot")
        return False
    return True


async def _release_slot(db: AsyncSession, event_id: int) -> None:
    await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.registered_count > 0)
        .values(registered_count=Event.registered_count - 1, version=Event.version + 1)
    )


async def _load_application(db: AsyncSession, application_id: int) -> Application:
    result = await db.execute(select(Application).where(Application.id == application_id))
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFoundError("Application not found")
    return application


def _reject(code: str, error: Exception) -> Exception:
    record_application_attempt(code)
    return error


async def create_application(
    db: AsyncSession,
    principal: Principal,
    event_id: int,
    message: Optional[str],
    dispatcher: NotificationDispatcher,
) -> Application:
    """
    Apply `principal` to an event. Checks run in a fixed order:
    existence, published, registration window, daily limit, capacity, duplicate.
    """
    settings = get_settings()

    event = await db.get(Event, event_id)
    if event is None:
        raise _reject("not_found", NotFoundError("Event not found"))

    if event.status != EventStatus.PUBLISHED.value:
        raise _reject("invalid_state", InvalidStateError("Cannot apply to this event"))

    deadline = as_utc(event.registration_end_date)
    if deadline is not None and deadline < datetime.now(timezone.utc):
        raise _reject("registration_closed", RegistrationClosedError("Registration deadline has passed"))

    applied_today = await count_applications_since(db, principal.id, start_of_day())
    if applied_today >= settings.MAX_APPLICATIONS_PER_DAY:
        logger.warning("application_rate_limited", user_id=principal.id, applied_today=applied_today)
        raise _reject("rate_limited", RateLimitedError(
            f"You have reached the maximum of {settings.MAX_APPLICATIONS_PER_DAY} applications per day. "
            "Please try again tomorrow."
        ))

    if event.capacity:
        accepted = await count_accepted(db, event.id)
        if accepted >= event.capacity:
            raise _reject("capacity_exceeded", CapacityExceededError("Event is at full capacity"))

    existing = await db.execute(
        select(Application.id).where(
            Application.user_id == principal.id,
            Application.event_id == event.id,
            Application.status != ApplicationStatus.CANCELLED.value,
        )
    )
    if existing.first() is not None:
        raise _reject("duplicate_application", DuplicateApplicationError("You have already applied to this event"))

    # Paid events bypass manual review
    status = ApplicationStatus.ACCEPTED if event.is_paid else ApplicationStatus.PENDING

    if status is ApplicationStatus.ACCEPTED and not await _reserve_slot(db, event):
        await db.rollback()
        raise _reject("capacity_exceeded", CapacityExceededError("Event is at full capacity"))

    application = Application(
        user_id=principal.id,
        event_id=event.id,
        message=message,
        status=status.value,
    )
    db.add(application)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise _reject("duplicate_application", DuplicateApplicationError("You have already applied to this event"))

    await db.commit()
    await db.refresh(application)
    record_application_attempt(status.value)

    logger.info(
        "application_created",
        application_id=application.id,
        user_id=principal.id,
        event_id=event.id,
        status=application.status,
    )

    if status is ApplicationStatus.PENDING:
        admin_ids = await organisation_admin_ids(db, event.organisation_id)
        if admin_ids:
            dispatcher.enqueue(NotificationJob.new_application(application.id, admin_ids))

    return application


async def _authorize_resolver(db: AsyncSession, principal: Principal, event: Event) -> None:
    if principal.role is UserRole.ADMIN:
        return
    if principal.role is not UserRole.ORGANISATION:
        raise ForbiddenError("You are not authorized to process this application")
    if not await is_organisation_admin(db, principal.id, event.organisation_id):
        raise ForbiddenError("You are not authorized to process this application")
    if event.is_paid:
        raise ForbiddenError("Only admins can process paid event applications")


async def update_application_status(
    db: AsyncSession,
    principal: Principal,
    application_id: int,
    new_status: str,
    rejection_reason: Optional[str],
    dispatcher: NotificationDispatcher,
) -> Application:
    """Resolve a pending application to accepted or rejected."""
    if new_status not in RESOLUTION_STATUSES:
        raise BadRequestError("Status must be accepted or rejected")

    application = await _load_application(db, application_id)

    if application.status != ApplicationStatus.PENDING.value:
        raise AlreadyProcessedError("Application has already been processed")

    event = application.event
    await _authorize_resolver(db, principal, event)

    accepting = new_status == ApplicationStatus.ACCEPTED.value
    if accepting:
        if event.capacity and await count_accepted(db, event.id) >= event.capacity:
            raise CapacityExceededError("Event is at full capacity")
        if not await _reserve_slot(db, event):
            await db.rollback()
            raise CapacityExceededError("Event is at full capacity")

    values = {
        "status": new_status,
        "processed_by": principal.id,
        "processed_at": utcnow(),
    }
    if not accepting and rejection_reason:
        values["rejection_reason"] = rejection_reason

    result = await db.execute(
        update(Application)
        .where(Application.id == application.id, Application.status == ApplicationStatus.PENDING.value)
        .values(**values)
    )
    if result.rowcount == 0:
        record_db_conflict("resolve_application")
        await db.rollback()
        raise AlreadyProcessedError("Application has already been processed")

    await db.commit()
    await db.refresh(application)
    await db.refresh(event)
    record_application_transition(new_status)

    logger.info(
        "application_status_updated",
        application_id=application.id,
        event_id=event.id,
        status=new_status,
        processed_by=principal.id,
        registered=event.registered_count,
        capacity=event.capacity,
    )

    dispatcher.enqueue(NotificationJob.application_status(application.id, new_status))
    return application


async def cancel_application(
    db: AsyncSession,
    principal: Principal,
    application_id: int,
) -> CancellationResult:
    """
    Cancel the principal's own application.
    Paid events keep the row as `cancelled` for the audit trail; free
    events delete it outright.
    """
    application = await _load_application(db, application_id)

    if application.user_id != principal.id:
        raise ForbiddenError("You can only cancel your own applications")

    if application.status not in CANCELLABLE_STATUSES:
        raise InvalidStateError("This application cannot be cancelled")

    event = application.event
    read_status = application.status
    held_slot = read_status == ApplicationStatus.ACCEPTED.value
    guard = (Application.id == application.id, Application.status == read_status)

    # The write only lands if nobody resolved the application since it was read
    if event.is_paid:
        result = await db.execute(
            update(Application).where(*guard).values(status=ApplicationStatus.CANCELLED.value)
        )
        outcome = CancelOutcome.ARCHIVED
    else:
        result = await db.execute(
            delete(Application).where(*guard).execution_options(synchronize_session=False)
        )
        outcome = CancelOutcome.DELETED

    if result.rowcount == 0:
        record_db_conflict("cancel_application")
        await db.rollback()
        raise InvalidStateError("Application changed while it was being cancelled, please retry")

    if outcome is CancelOutcome.DELETED:
        db.expunge(application)
    if held_slot:
        await _release_slot(db, event.id)

    await db.commit()
    record_application_transition("cancelled" if outcome is CancelOutcome.ARCHIVED else "deleted")

    logger.info(
        "application_cancelled",
        application_id=application.id,
        user_id=principal.id,
        event_id=event.id,
        outcome=outcome.value,
        released_slot=held_slot,
    )
    return CancellationResult(outcome=outcome, application=application, event_title=event.title)


async def _visible_to(db: AsyncSession, principal: Principal, application: Application) -> bool:
    if principal.is_admin or application.user_id == principal.id:
        return True
    if principal.role is UserRole.ORGANISATION:
        return await is_organisation_admin(db, principal.id, application.event.organisation_id)
    return False


async def get_application(db: AsyncSession, principal: Principal, application_id: int) -> Application:
    application = await _load_application(db, application_id)
    if not await _visible_to(db, principal, application):
        raise ForbiddenError("You are not authorized to view this application")
    return application


def _listing_features(params: Mapping[str, str]) -> QueryFeatures:
    # "all" is the dashboards' explicit no-filter value
    params = {key: value for key, value in params.items() if not (key == "status" and value == "all")}
    return QueryFeatures(Application, params)


async def list_my_applications(
    db: AsyncSession,
    principal: Principal,
    params: Mapping[str, str],
) -> tuple[QueryFeatures, list[Application], int]:
    features = (
        _listing_features(params)
        .where(Application.user_id == principal.id)
        .filter()
        .sort()
        .paginate()
    )
    applications, total = await features.fetch_page(db)
    return features, applications, total


def _administered_event_ids(user_id: int):
    administered = select(organisation_admins.c.organisation_id).where(organisation_admins.c.user_id == user_id)
    return select(Event.id).where(Event.organisation_id.in_(administered))


async def list_organisation_applications(
    db: AsyncSession,
    principal: Principal,
    params: Mapping[str, str],
) -> tuple[QueryFeatures, list[Application], int]:
    allowed = {key: value for key, value in params.items() if key in ("status", "event_id", "page", "limit", "sort")}
    features = (
        _listing_features(allowed)
        .where(Application.event_id.in_(_administered_event_ids(principal.id)))
        .filter()
        .sort()
        .paginate()
    )
    applications, total = await features.fetch_page(db)
    return features, applications, total


async def list_admin_applications(
    db: AsyncSession,
    params: Mapping[str, str],
) -> tuple[QueryFeatures, list[Application], int]:
    features = _listing_features(params).filter().sort().paginate()
    applications, total = await features.fetch_page(db)
    return features, applications, total


async def get_event_application_stats(db: AsyncSession, principal: Principal, event_id: int) -> dict[str, int]:
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    if not principal.is_admin and not await is_organisation_admin(db, principal.id, event.organisation_id):
        raise ForbiddenError("You are not authorized to view these statistics")

    result = await db.execute(
        select(Application.status, func.count())
        .where(Application.event_id == event_id)
        .group_by(Application.status)
    )
    return {status: count for status, count in result.all()}
