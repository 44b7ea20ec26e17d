"""
Tests for notification dispatch, the socket channel and the inbox endpoints.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from eventhub.core.security import Principal
from eventhub.db.base import utcnow
from eventhub.infrastructure.connection_manager import ConnectionManager
from eventhub.models.notification import Notification
from eventhub.models.user import UserRole
from eventhub.services import application_service
from eventhub.services.notification_dispatcher import NotificationDispatcher, NotificationJob


async def notifications_for(db, user_id: int) -> list[Notification]:
    result = await db.execute(
        select(Notification).where(Notification.recipient_id == user_id).order_by(Notification.id)
    )
    return list(result.scalars().all())


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.accepted = False
        self.sent: list[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, message: dict):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


class ExplodingChannel:
    async def emit_to_user(self, user_id, event, payload):
        raise RuntimeError("transport down")

    async def emit_to_all(self, event, payload):
        raise RuntimeError("transport down")


@pytest.mark.asyncio
async def test_new_application_notifies_each_admin(
    db_session, test_user, org_user, make_user, organisation, free_event, dispatcher, channel,
):
    second_admin = await make_user(UserRole.ORGANISATION)
    organisation.admins.append(second_admin)
    await db_session.commit()

    await application_service.create_application(
        db_session, Principal.from_user(test_user), free_event.id, None, dispatcher
    )
    [job] = dispatcher.drain_pending()
    assert set(job.recipient_ids) == {org_user.id, second_admin.id}

    await dispatcher.process(job, db_session)
    await db_session.commit()

    for admin in (org_user, second_admin):
        [notification] = await notifications_for(db_session, admin.id)
        assert notification.type == "application_received"
        assert notification.title == "New Application"
        assert notification.message == f'{test_user.name} applied to "Free Workshop"'
        assert notification.related_event_id == free_event.id
        assert notification.related_application_id == job.application_id
    assert sorted(user_id for user_id, _, _ in channel.user_events) == sorted([org_user.id, second_admin.id])
    assert {event for _, event, _ in channel.user_events} == {"notification"}


@pytest.mark.asyncio
async def test_status_change_notifies_applicant(
    db_session, test_user, org_user, free_event, dispatcher, channel,
):
    application = await application_service.create_application(
        db_session, Principal.from_user(test_user), free_event.id, None, dispatcher
    )
    await application_service.update_application_status(
        db_session, Principal.from_user(org_user), application.id, "accepted", None, dispatcher
    )
    jobs = dispatcher.drain_pending()
    assert len(jobs) == 2

    await dispatcher.process(jobs[-1], db_session)
    await db_session.commit()

    [notification] = await notifications_for(db_session, test_user.id)
    assert notification.type == "application_accepted"
    assert notification.title == "Application Accepted"
    assert notification.message == 'Congratulations! You\'ve been accepted to "Free Workshop"'
    assert channel.user_events[-1][0] == test_user.id


@pytest.mark.asyncio
async def test_rejection_notification(db_session, test_user, org_user, free_event, dispatcher):
    application = await application_service.create_application(
        db_session, Principal.from_user(test_user), free_event.id, None, dispatcher
    )
    await application_service.update_application_status(
        db_session, Principal.from_user(org_user), application.id, "rejected", None, dispatcher
    )
    await dispatcher.process(dispatcher.drain_pending()[-1], db_session)
    await db_session.commit()

    [notification] = await notifications_for(db_session, test_user.id)
    assert notification.type == "application_rejected"
    assert notification.message == 'Your application to "Free Workshop" was not accepted'


@pytest.mark.asyncio
async def test_new_event_reaches_active_users_with_one_broadcast(
    db_session, test_user, make_user, free_event, organisation, dispatcher, channel,
):
    inactive = await make_user(is_active=False)

    await dispatcher.process(NotificationJob.new_event(free_event.id), db_session)
    await db_session.commit()

    assert len(await notifications_for(db_session, test_user.id)) == 1
    assert await notifications_for(db_session, inactive.id) == []

    [(event, payload)] = channel.broadcasts
    assert event == "new_event"
    assert payload["message"] == f'{organisation.name} just published "Free Workshop"'
    assert payload["event"]["id"] == free_event.id
    assert payload["event"]["organisation_name"] == organisation.name
    assert channel.user_events == []


@pytest.mark.asyncio
async def test_job_for_deleted_application_is_skipped(db_session, test_user, dispatcher, channel):
    await dispatcher.process(NotificationJob.application_status(4242, "accepted"), db_session)
    assert await notifications_for(db_session, test_user.id) == []
    assert channel.user_events == []


@pytest.mark.asyncio
async def test_enqueue_on_full_queue_drops_job(channel, session_factory):
    dispatcher = NotificationDispatcher(channel=channel, session_factory=session_factory, maxsize=1)
    assert dispatcher.enqueue(NotificationJob.new_event(1)) is True
    assert dispatcher.enqueue(NotificationJob.new_event(2)) is False
    assert dispatcher.pending == 1


@pytest.mark.asyncio
async def test_worker_persists_queued_jobs(db_session, test_user, free_event, dispatcher):
    dispatcher.enqueue(NotificationJob.new_event(free_event.id))
    dispatcher.start()
    await dispatcher.stop()

    assert dispatcher.pending == 0
    assert len(await notifications_for(db_session, test_user.id)) == 1


@pytest.mark.asyncio
async def test_worker_swallows_channel_failures(db_session, test_user, free_event, session_factory):
    dispatcher = NotificationDispatcher(channel=ExplodingChannel(), session_factory=session_factory)
    dispatcher.enqueue(NotificationJob.new_event(free_event.id))
    dispatcher.enqueue(NotificationJob.application_status(999, "accepted"))
    dispatcher.start()
    await dispatcher.stop()

    assert dispatcher.pending == 0
    # rows were committed before the push failed
    assert len(await notifications_for(db_session, test_user.id)) == 1


class FailingCommitSession:
    """Wraps a session whose commit never succeeds."""

    def __init__(self, session):
        self._session = session

    def __getattr__(self, name):
        return getattr(self._session, name)

    async def commit(self):
        raise RuntimeError("database went away")


@pytest.mark.asyncio
async def test_failed_commit_pushes_nothing(
    db_session, test_user, org_user, free_event, dispatcher, channel,
):
    admin_id = org_user.id
    await application_service.create_application(
        db_session, Principal.from_user(test_user), free_event.id, None, dispatcher
    )
    [job] = dispatcher.drain_pending()

    with pytest.raises(RuntimeError):
        await dispatcher.process(job, FailingCommitSession(db_session))
    await db_session.rollback()

    assert channel.user_events == []
    assert await notifications_for(db_session, admin_id) == []


@pytest.mark.asyncio
async def test_connection_manager_delivery():
    manager = ConnectionManager()
    healthy, broken = FakeWebSocket(), FakeWebSocket(fail=True)
    await manager.connect(healthy, 1)
    await manager.connect(broken, 1)
    assert healthy.accepted
    assert manager.is_user_online(1)

    assert await manager.emit_to_user(1, "notification", {"title": "Hi"}) is True
    assert healthy.sent == [{"event": "notification", "data": {"title": "Hi"}}]
    # the failing socket was dropped, the user stays online through the other one
    assert manager.user_connections[1] == {healthy}

    assert await manager.emit_to_user(2, "notification", {"title": "Hi"}) is False

    await manager.disconnect(healthy, 1)
    assert not manager.is_user_online(1)
    assert manager.connected_count() == 0


@pytest.mark.asyncio
async def test_inbox_endpoints(client: AsyncClient, db_session, test_user, other_user, auth_headers, headers_for):
    for index in range(3):
        db_session.add(Notification(
            recipient_id=test_user.id,
            type="new_event",
            title="New Event",
            message=f"Event {index}",
            created_at=utcnow() - timedelta(minutes=3 - index),
        ))
    foreign = Notification(recipient_id=other_user.id, type="new_event", title="New Event", message="Not yours")
    db_session.add(foreign)
    await db_session.commit()

    listing = (await client.get("/api/v1/notifications/", headers=auth_headers)).json()
    assert listing["total"] == 3
    assert listing["unread_count"] == 3
    assert [n["message"] for n in listing["notifications"]] == ["Event 2", "Event 1", "Event 0"]

    first_id = listing["notifications"][0]["id"]
    read = await client.patch(f"/api/v1/notifications/{first_id}/read", headers=auth_headers)
    assert read.status_code == 200
    assert read.json()["is_read"] is True

    count = (await client.get("/api/v1/notifications/unread-count", headers=auth_headers)).json()
    assert count == {"count": 2}

    unread_only = (await client.get("/api/v1/notifications/?is_read=false", headers=auth_headers)).json()
    assert unread_only["total"] == 2

    marked = (await client.patch("/api/v1/notifications/read-all", headers=auth_headers)).json()
    assert marked == {"updated": 2}

    assert (await client.delete(f"/api/v1/notifications/{first_id}", headers=auth_headers)).status_code == 204
    assert (await client.get("/api/v1/notifications/", headers=auth_headers)).json()["total"] == 2

    # other people's notifications are invisible
    assert (await client.patch(f"/api/v1/notifications/{foreign.id}/read", headers=auth_headers)).status_code == 404
    assert (await client.delete(f"/api/v1/notifications/{foreign.id}", headers=auth_headers)).status_code == 404
    assert (await client.get("/api/v1/notifications/", headers=headers_for(other_user))).json()["total"] == 1
