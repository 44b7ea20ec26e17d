"""
Tests for application endpoints: applying, reviewing and cancelling.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from eventhub.models.application import Application
from eventhub.models.user import UserRole
from eventhub.services.notification_dispatcher import JobKind


async def apply(client: AsyncClient, headers: dict, event_id: int, message: str | None = None):
    return await client.post(
        "/api/v1/applications/",
        json={"event_id": event_id, "message": message},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_apply_to_free_event_is_pending(client: AsyncClient, auth_headers, free_event, org_user, dispatcher):
    """Free events queue the application for review and notify the organisation admins."""
    response = await apply(client, auth_headers, free_event.id, "Count me in")
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["message"] == "Count me in"
    assert data["event"]["id"] == free_event.id

    jobs = dispatcher.drain_pending()
    assert len(jobs) == 1
    assert jobs[0].kind is JobKind.NEW_APPLICATION
    assert jobs[0].application_id == data["id"]
    assert jobs[0].recipient_ids == (org_user.id,)


@pytest.mark.asyncio
async def test_apply_to_paid_event_is_accepted(client: AsyncClient, auth_headers, paid_event, dispatcher):
    """Paid events accept immediately and take a slot."""
    response = await apply(client, auth_headers, paid_event.id)
    assert response.status_code == 201
    assert response.json()["status"] == "accepted"
    assert dispatcher.pending == 0

    event = (await client.get(f"/api/v1/events/{paid_event.id}")).json()
    assert event["registered_count"] == 1


@pytest.mark.asyncio
async def test_apply_unauthenticated(client: AsyncClient, free_event):
    """Unauthenticated application returns 401."""
    response = await client.post("/api/v1/applications/", json={"event_id": free_event.id})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_apply_requires_user_role(client: AsyncClient, org_headers, free_event):
    response = await apply(client, org_headers, free_event.id)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_duplicate_application(client: AsyncClient, auth_headers, free_event):
    """Same user applying to the same event twice returns 409."""
    assert (await apply(client, auth_headers, free_event.id)).status_code == 201

    response = await apply(client, auth_headers, free_event.id)
    assert response.status_code == 409
    assert response.json()["code"] == "duplicate_application"


@pytest.mark.asyncio
async def test_apply_to_draft_event(client: AsyncClient, auth_headers, make_event):
    draft = await make_event(status="draft")
    response = await apply(client, auth_headers, draft.id)
    assert response.status_code == 400
    assert response.json() == {"detail": "Cannot apply to this event", "code": "invalid_state"}


@pytest.mark.asyncio
async def test_apply_to_missing_event(client: AsyncClient, auth_headers):
    response = await apply(client, auth_headers, 424242)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_accept_pending_application(
    client: AsyncClient, auth_headers, org_headers, org_user, free_event, dispatcher,
):
    application_id = (await apply(client, auth_headers, free_event.id)).json()["id"]
    dispatcher.drain_pending()

    response = await client.patch(
        f"/api/v1/applications/{application_id}/status",
        json={"status": "accepted"},
        headers=org_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "accepted"
    assert data["processed_by"] == org_user.id
    assert data["processed_at"] is not None

    event = (await client.get(f"/api/v1/events/{free_event.id}")).json()
    assert event["registered_count"] == 1

    jobs = dispatcher.drain_pending()
    assert [(job.kind, job.status) for job in jobs] == [(JobKind.APPLICATION_STATUS, "accepted")]


@pytest.mark.asyncio
async def test_reject_stores_reason(client: AsyncClient, auth_headers, org_headers, free_event):
    application_id = (await apply(client, auth_headers, free_event.id)).json()["id"]

    response = await client.patch(
        f"/api/v1/applications/{application_id}/status",
        json={"status": "rejected", "rejection_reason": "Workshop is for students only"},
        headers=org_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert response.json()["rejection_reason"] == "Workshop is for students only"

    event = (await client.get(f"/api/v1/events/{free_event.id}")).json()
    assert event["registered_count"] == 0


@pytest.mark.asyncio
async def test_resolve_twice_is_already_processed(client: AsyncClient, auth_headers, org_headers, free_event):
    application_id = (await apply(client, auth_headers, free_event.id)).json()["id"]
    url = f"/api/v1/applications/{application_id}/status"
    assert (await client.patch(url, json={"status": "accepted"}, headers=org_headers)).status_code == 200

    response = await client.patch(url, json={"status": "rejected"}, headers=org_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "already_processed"


@pytest.mark.asyncio
async def test_resolve_with_unknown_status(client: AsyncClient, auth_headers, org_headers, free_event):
    application_id = (await apply(client, auth_headers, free_event.id)).json()["id"]
    response = await client.patch(
        f"/api/v1/applications/{application_id}/status",
        json={"status": "cancelled"},
        headers=org_headers,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "bad_request"


@pytest.mark.asyncio
async def test_organisation_cannot_resolve_paid_application(
    client: AsyncClient, db_session, test_user, org_headers, paid_event,
):
    application = Application(user_id=test_user.id, event_id=paid_event.id, status="pending")
    db_session.add(application)
    await db_session.commit()

    response = await client.patch(
        f"/api/v1/applications/{application.id}/status",
        json={"status": "accepted"},
        headers=org_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_foreign_organisation_cannot_resolve(
    client: AsyncClient, auth_headers, make_user, headers_for, free_event,
):
    outsider = await make_user(UserRole.ORGANISATION)
    application_id = (await apply(client, auth_headers, free_event.id)).json()["id"]

    response = await client.patch(
        f"/api/v1/applications/{application_id}/status",
        json={"status": "accepted"},
        headers=headers_for(outsider),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_plain_user_cannot_resolve(client: AsyncClient, auth_headers, free_event):
    application_id = (await apply(client, auth_headers, free_event.id)).json()["id"]
    response = await client.patch(
        f"/api/v1/applications/{application_id}/status",
        json={"status": "accepted"},
        headers=auth_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cancel_free_application_deletes_it(client: AsyncClient, auth_headers, free_event, db_session):
    application_id = (await apply(client, auth_headers, free_event.id)).json()["id"]

    response = await client.patch(f"/api/v1/applications/{application_id}/cancel", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["outcome"] == "deleted"
    assert await db_session.get(Application, application_id) is None

    # Withdrawn free applications free the user to apply again
    assert (await apply(client, auth_headers, free_event.id)).status_code == 201


@pytest.mark.asyncio
async def test_cancel_paid_application_archives_and_releases_slot(
    client: AsyncClient, auth_headers, paid_event, db_session,
):
    application_id = (await apply(client, auth_headers, paid_event.id)).json()["id"]

    response = await client.patch(f"/api/v1/applications/{application_id}/cancel", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["outcome"] == "archived"

    result = await db_session.execute(select(Application.status).where(Application.id == application_id))
    assert result.scalar_one() == "cancelled"

    event = (await client.get(f"/api/v1/events/{paid_event.id}")).json()
    assert event["registered_count"] == 0

    # The archived row does not block a new application
    again = await apply(client, auth_headers, paid_event.id)
    assert again.status_code == 201
    assert again.json()["status"] == "accepted"


@pytest.mark.asyncio
async def test_cancel_twice(client: AsyncClient, auth_headers, paid_event):
    application_id = (await apply(client, auth_headers, paid_event.id)).json()["id"]
    url = f"/api/v1/applications/{application_id}/cancel"
    assert (await client.patch(url, headers=auth_headers)).status_code == 200

    response = await client.patch(url, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_state"


@pytest.mark.asyncio
async def test_cancel_someone_elses_application(
    client: AsyncClient, auth_headers, other_user, headers_for, free_event,
):
    application_id = (await apply(client, auth_headers, free_event.id)).json()["id"]
    response = await client.patch(
        f"/api/v1/applications/{application_id}/cancel",
        headers=headers_for(other_user),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_listings_are_scoped(
    client: AsyncClient, auth_headers, other_user, headers_for, org_headers, admin_headers,
    free_event, paid_event, make_organisation, make_user, make_event,
):
    outsider_admin = await make_user(UserRole.ORGANISATION)
    foreign_org = await make_organisation([outsider_admin])
    foreign_event = await make_event(organisation_id=foreign_org.id)

    await apply(client, auth_headers, free_event.id)
    await apply(client, auth_headers, paid_event.id)
    await apply(client, headers_for(other_user), free_event.id)
    await apply(client, headers_for(other_user), foreign_event.id)

    mine = (await client.get("/api/v1/applications/my", headers=auth_headers)).json()
    assert mine["total"] == 2
    assert {a["event_id"] for a in mine["applications"]} == {free_event.id, paid_event.id}

    pending_mine = (await client.get("/api/v1/applications/my?status=pending", headers=auth_headers)).json()
    assert pending_mine["total"] == 1

    organisation = (await client.get("/api/v1/applications/organisation", headers=org_headers)).json()
    assert organisation["total"] == 3
    assert foreign_event.id not in {a["event_id"] for a in organisation["applications"]}

    by_event = (
        await client.get(f"/api/v1/applications/organisation?event_id={free_event.id}", headers=org_headers)
    ).json()
    assert by_event["total"] == 2

    everything = (await client.get("/api/v1/applications/admin?status=all", headers=admin_headers)).json()
    assert everything["total"] == 4
    assert everything["limit"] == 10

    assert (await client.get("/api/v1/applications/admin", headers=org_headers)).status_code == 403
    assert (await client.get("/api/v1/applications/organisation", headers=auth_headers)).status_code == 403


@pytest.mark.asyncio
async def test_get_application_visibility(
    client: AsyncClient, auth_headers, other_user, headers_for, org_headers, admin_headers, free_event,
):
    application_id = (await apply(client, auth_headers, free_event.id)).json()["id"]
    url = f"/api/v1/applications/{application_id}"

    assert (await client.get(url, headers=auth_headers)).status_code == 200
    assert (await client.get(url, headers=org_headers)).status_code == 200
    assert (await client.get(url, headers=admin_headers)).status_code == 200
    assert (await client.get(url, headers=headers_for(other_user))).status_code == 403


@pytest.mark.asyncio
async def test_application_stats(
    client: AsyncClient, auth_headers, other_user, headers_for, org_headers, free_event,
):
    first = (await apply(client, auth_headers, free_event.id)).json()["id"]
    await apply(client, headers_for(other_user), free_event.id)
    await client.patch(f"/api/v1/applications/{first}/status", json={"status": "accepted"}, headers=org_headers)

    response = await client.get(f"/api/v1/applications/stats/{free_event.id}", headers=org_headers)
    assert response.status_code == 200
    assert response.json() == {
        "event_id": free_event.id,
        "total": 2,
        "by_status": {"accepted": 1, "pending": 1},
    }
