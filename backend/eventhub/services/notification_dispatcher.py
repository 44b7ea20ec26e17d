"""
Notification dispatch.

DELIVERY MODEL
==============

Workflow code never writes notifications inline. After its own transaction
commits it hands a NotificationJob to the dispatcher, which only guarantees
the job was *enqueued*. A background worker (started in the app lifespan)
drains the queue, persists and commits the rows in its own session, and
only then pushes the live copy over the socket channel.

  - Persisted rows are the source of truth. An offline recipient sees them
    on the next fetch of their notification list.
  - The live push is best-effort and carries no delivery guarantee.
  - Dispatch failures are logged and counted, never raised to the caller.

Jobs carry ids rather than ORM objects; the worker reloads what it needs.
A job whose subject disappeared in the meantime (e.g. a free application
that was cancelled and deleted) is skipped.
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.config import get_settings
from eventhub.core.logging import get_logger
from eventhub.core.metrics import notification_queue_depth, record_notification
from eventhub.db.session import AsyncSessionLocal
from eventhub.infrastructure.connection_manager import NotificationChannel, connection_manager
from eventhub.models.application import Application, ApplicationStatus
from eventhub.models.event import Event
from eventhub.models.notification import Notification, NotificationType
from eventhub.models.organisation import Organisation
from eventhub.models.user import User

logger = get_logger(__name__)

SHUTDOWN_FLUSH_TIMEOUT = 5.0  # seconds


class JobKind(str, enum.Enum):
    NEW_EVENT = "new_event"
    NEW_APPLICATION = "new_application"
    APPLICATION_STATUS = "application_status"


@dataclass(frozen=True)
class NotificationJob:
    kind: JobKind
    event_id: Optional[int] = None
    application_id: Optional[int] = None
    recipient_ids: tuple[int, ...] = ()
    status: Optional[str] = None

    @classmethod
    def new_event(cls, event_id: int) -> "NotificationJob":
        return cls(kind=JobKind.NEW_EVENT, event_id=event_id)

    @classmethod
    def new_application(cls, application_id: int, admin_ids: Sequence[int]) -> "NotificationJob":
        return cls(
            kind=JobKind.NEW_APPLICATION,
            application_id=application_id,
            recipient_ids=tuple(admin_ids),
        )

    @classmethod
    def application_status(cls, application_id: int, status: str) -> "NotificationJob":
        return cls(kind=JobKind.APPLICATION_STATUS, application_id=application_id, status=status)


@dataclass(frozen=True)
class Emission:
    """A live push to send once the rows behind it are committed. No user id means broadcast."""

    event: str
    payload: dict[str, Any]
    user_id: Optional[int] = None


def _live_payload(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "related_event_id": notification.related_event_id,
        "related_application_id": notification.related_application_id,
        "is_read": notification.is_read,
        "created_at": notification.created_at,
    }


def _to_recipient(notification: Notification) -> Emission:
    return Emission("notification", _live_payload(notification), user_id=notification.recipient_id)


async def notify_new_event(db: AsyncSession, event: Event, organisation: Organisation) -> list[Emission]:
    """Persist one row per active user; the live side is a single lightweight broadcast."""
    title = "New Event"
    message = f'{organisation.name} just published "{event.title}"'

    result = await db.execute(select(User.id).where(User.is_active.is_(True)))
    recipients = list(result.scalars().all())
    db.add_all([
        Notification(
            recipient_id=user_id,
            type=NotificationType.NEW_EVENT.value,
            title=title,
            message=message,
            related_event_id=event.id,
        )
        for user_id in recipients
    ])
    await db.flush()

    return [Emission("new_event", {
        "type": NotificationType.NEW_EVENT.value,
        "title": title,
        "message": message,
        "event": {
            "id": event.id,
            "title": event.title,
            "cover_image": event.cover_image,
            "start_date": event.start_date,
            "organisation_name": organisation.name,
        },
    })]


async def notify_new_application(
    db: AsyncSession,
    application: Application,
    admin_ids: Sequence[int],
) -> list[Emission]:
    title = "New Application"
    message = f'{application.user.name} applied to "{application.event.title}"'

    notifications = [
        Notification(
            recipient_id=admin_id,
            type=NotificationType.APPLICATION_RECEIVED.value,
            title=title,
            message=message,
            related_event_id=application.event_id,
            related_application_id=application.id,
        )
        for admin_id in admin_ids
    ]
    db.add_all(notifications)
    await db.flush()
    return [_to_recipient(n) for n in notifications]


async def notify_application_status(db: AsyncSession, application: Application, status: str) -> list[Emission]:
    accepted = status == ApplicationStatus.ACCEPTED.value
    event_title = application.event.title
    notification = Notification(
        recipient_id=application.user_id,
        type=(
            NotificationType.APPLICATION_ACCEPTED.value
            if accepted
            else NotificationType.APPLICATION_REJECTED.value
        ),
        title="Application Accepted" if accepted else "Application Rejected",
        message=(
            f'Congratulations! You\'ve been accepted to "{event_title}"'
            if accepted
            else f'Your application to "{event_title}" was not accepted'
        ),
        related_event_id=application.event_id,
        related_application_id=application.id,
    )
    db.add(notification)
    await db.flush()
    return [_to_recipient(notification)]


class NotificationDispatcher:
    """In-process queue between the workflow engine and notification delivery."""

    def __init__(
        self,
        channel: NotificationChannel = connection_manager,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        maxsize: Optional[int] = None,
    ):
        self.channel = channel
        self._session_factory = session_factory
        self._queue: asyncio.Queue[NotificationJob] = asyncio.Queue(
            maxsize=maxsize if maxsize is not None else get_settings().NOTIFICATION_QUEUE_SIZE
        )
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, job: NotificationJob) -> bool:
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.error("notification_queue_full", kind=job.kind.value, queue_size=self._queue.maxsize)
            record_notification(job.kind.value, "dropped")
            return False
        notification_queue_depth.set(self._queue.qsize())
        logger.debug("notification_enqueued", kind=job.kind.value)
        return True

    def drain_pending(self) -> list[NotificationJob]:
        """Remove and return every queued job without processing it."""
        jobs = []
        while not self._queue.empty():
            jobs.append(self._queue.get_nowait())
            self._queue.task_done()
        notification_queue_depth.set(0)
        return jobs

    async def _persist(self, job: NotificationJob, db: AsyncSession) -> list[Emission]:
        if job.kind is JobKind.NEW_EVENT:
            event = await db.get(Event, job.event_id)
            organisation = await db.get(Organisation, event.organisation_id) if event else None
            if organisation is None:
                logger.info("notification_skipped", kind=job.kind.value, event_id=job.event_id)
                return []
            return await notify_new_event(db, event, organisation)

        result = await db.execute(select(Application).where(Application.id == job.application_id))
        application = result.scalar_one_or_none()
        if application is None:
            logger.info("notification_skipped", kind=job.kind.value, application_id=job.application_id)
            return []

        if job.kind is JobKind.NEW_APPLICATION:
            return await notify_new_application(db, application, job.recipient_ids)
        return await notify_application_status(db, application, job.status)

    async def _deliver(self, emissions: Sequence[Emission]) -> None:
        for emission in emissions:
            if emission.user_id is None:
                await self.channel.emit_to_all(emission.event, emission.payload)
            else:
                await self.channel.emit_to_user(emission.user_id, emission.event, emission.payload)

    async def process(self, job: NotificationJob, db: AsyncSession) -> None:
        """Persist the job's rows and commit; only then push the live copies."""
        emissions = await self._persist(job, db)
        await db.commit()
        await self._deliver(emissions)

    async def _handle(self, job: NotificationJob) -> None:
        try:
            async with self._session_factory() as db:
                await self.process(job, db)
            record_notification(job.kind.value, "ok")
        except Exception as e:
            logger.exception(
                "notification_dispatch_failed",
                kind=job.kind.value,
                event_id=job.event_id,
                application_id=job.application_id,
                error=str(e),
            )
            record_notification(job.kind.value, "error")

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._handle(job)
            finally:
                self._queue.task_done()
                notification_queue_depth.set(self._queue.qsize())

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")
            logger.info("notification_dispatcher_started")

    async def stop(self) -> None:
        """Flush queued jobs, then stop the worker."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=SHUTDOWN_FLUSH_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("notification_flush_timeout", pending=self._queue.qsize())
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("notification_dispatcher_stopped")


_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency returning the process-wide dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
