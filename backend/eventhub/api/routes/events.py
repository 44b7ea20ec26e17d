"""
Event endpoints with Redis caching on list operations.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.logging import get_logger
from eventhub.core.security import Principal, require_roles
from eventhub.db.session import get_db
from eventhub.models.user import UserRole
from eventhub.schemas.event import EventCreate, EventResponse, EventUpdate
from eventhub.services.cache_service import get_cached_events, invalidate_event_cache, set_cached_events
from eventhub.services.event_service import create_event, delete_event, get_event, list_events, update_event
from eventhub.services.notification_dispatcher import NotificationDispatcher, get_dispatcher
from eventhub.utils.query_features import with_page

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])

event_managers = require_roles(UserRole.ADMIN, UserRole.ORGANISATION)


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    principal: Principal = Depends(event_managers),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Create an event. Platform admins or admins of the owning organisation."""
    event = await create_event(db, principal, event_data, dispatcher)
    await invalidate_event_cache()
    return event


@router.get("/")
async def list_events_endpoint(request: Request, db: AsyncSession = Depends(get_db)):
    """
    List events. Any column can be used as a filter (`status=published`,
    `start_date[gte]=...`); `search`, `sort`, `fields`, `page` and `limit`
    shape the result. Responses are cached in Redis until the next event write.
    """
    params = dict(request.query_params)

    cached = await get_cached_events(params)
    if cached:
        logger.info("events_list_cache_hit", page=cached.get("page"))
        cached["cached"] = True
        return cached

    features, events, total = await list_events(db, params)
    items = [features.project(EventResponse.model_validate(e).model_dump(mode="json")) for e in events]
    response_data = {**with_page("events", items, features.page_meta(total)), "cached": False}

    await set_cached_events(params, response_data)
    return response_data


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    """Get a single event by ID. Not cached (carries live registration counts)."""
    return await get_event(db, event_id)


@router.put("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_id: int,
    event_data: EventUpdate,
    principal: Principal = Depends(event_managers),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    event = await update_event(db, principal, event_id, event_data, dispatcher)
    await invalidate_event_cache()
    return event


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event_endpoint(
    event_id: int,
    principal: Principal = Depends(event_managers),
    db: AsyncSession = Depends(get_db),
):
    await delete_event(db, principal, event_id)
    await invalidate_event_cache()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
