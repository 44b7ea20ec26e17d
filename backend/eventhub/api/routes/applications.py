"""
Application endpoints: apply, review and cancel.

Authorization beyond the coarse role gate (organisation membership, paid vs
free events, ownership) is enforced by the workflow in application_service.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.security import Principal, get_current_principal, require_roles
from eventhub.db.session import get_db
from eventhub.models.application import ApplicationStatus
from eventhub.models.user import UserRole
from eventhub.schemas.application import (
    ApplicationCancelResponse,
    ApplicationCreate,
    ApplicationListResponse,
    ApplicationResponse,
    ApplicationStats,
    ApplicationStatusUpdate,
)
from eventhub.services import application_service
from eventhub.services.application_service import CancelOutcome
from eventhub.services.cache_service import invalidate_event_cache
from eventhub.services.notification_dispatcher import NotificationDispatcher, get_dispatcher
from eventhub.utils.query_features import with_page

router = APIRouter(prefix="/applications", tags=["Applications"])


def _page(features, applications, total) -> dict:
    return with_page(
        "applications",
        [ApplicationResponse.model_validate(a) for a in applications],
        features.page_meta(total),
    )


@router.post("/", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def apply_to_event(
    data: ApplicationCreate,
    principal: Principal = Depends(require_roles(UserRole.USER)),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Apply to a published event. Paid events accept immediately and take a
    slot; free events queue the application for organisation review.
    """
    application = await application_service.create_application(
        db, principal, data.event_id, data.message, dispatcher
    )
    if application.status == ApplicationStatus.ACCEPTED.value:
        await invalidate_event_cache()
    return application


@router.get("/my", response_model=ApplicationListResponse)
async def my_applications(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return _page(*await application_service.list_my_applications(db, principal, dict(request.query_params)))


@router.get("/organisation", response_model=ApplicationListResponse)
async def organisation_applications(
    request: Request,
    principal: Principal = Depends(require_roles(UserRole.ORGANISATION)),
    db: AsyncSession = Depends(get_db),
):
    """Applications to events of every organisation the caller administers."""
    return _page(
        *await application_service.list_organisation_applications(db, principal, dict(request.query_params))
    )


@router.get("/admin", response_model=ApplicationListResponse)
async def all_applications(
    request: Request,
    principal: Principal = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return _page(*await application_service.list_admin_applications(db, dict(request.query_params)))


@router.get("/stats/{event_id}", response_model=ApplicationStats)
async def application_stats(
    event_id: int,
    principal: Principal = Depends(require_roles(UserRole.ADMIN, UserRole.ORGANISATION)),
    db: AsyncSession = Depends(get_db),
):
    by_status = await application_service.get_event_application_stats(db, principal, event_id)
    return ApplicationStats(event_id=event_id, total=sum(by_status.values()), by_status=by_status)


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await application_service.get_application(db, principal, application_id)


@router.patch("/{application_id}/status", response_model=ApplicationResponse)
async def update_application_status(
    application_id: int,
    data: ApplicationStatusUpdate,
    principal: Principal = Depends(require_roles(UserRole.ADMIN, UserRole.ORGANISATION)),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Accept or reject a pending application."""
    application = await application_service.update_application_status(
        db, principal, application_id, data.status, data.rejection_reason, dispatcher
    )
    if application.status == ApplicationStatus.ACCEPTED.value:
        await invalidate_event_cache()
    return application


@router.patch("/{application_id}/cancel", response_model=ApplicationCancelResponse)
async def cancel_application(
    application_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw an application. Paid applications are archived, free ones removed."""
    result = await application_service.cancel_application(db, principal, application_id)
    await invalidate_event_cache()
    return ApplicationCancelResponse(
        message=(
            f'Application to "{result.event_title}" cancelled'
            if result.outcome is CancelOutcome.ARCHIVED
            else f'Application to "{result.event_title}" withdrawn'
        ),
        application_id=application_id,
        outcome=result.outcome.value,
    )
