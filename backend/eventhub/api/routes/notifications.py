"""
Notification inbox endpoints for the authenticated user.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.security import Principal, get_current_principal
from eventhub.db.session import get_db
from eventhub.schemas.notification import (
    BulkUpdateResult,
    NotificationListResponse,
    NotificationResponse,
    UnreadCount,
)
from eventhub.services import notification_service
from eventhub.utils.query_features import with_page

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/", response_model=NotificationListResponse)
async def list_notifications(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    features, notifications, total = await notification_service.list_notifications(
        db, principal, dict(request.query_params)
    )
    return {
        **with_page(
            "notifications",
            [NotificationResponse.model_validate(n) for n in notifications],
            features.page_meta(total),
        ),
        "unread_count": await notification_service.unread_count(db, principal),
    }


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCount(count=await notification_service.unread_count(db, principal))


@router.patch("/read-all", response_model=BulkUpdateResult)
async def mark_all_read(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return BulkUpdateResult(updated=await notification_service.mark_all_as_read(db, principal))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.mark_as_read(db, principal, notification_id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    await notification_service.delete_notification(db, principal, notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
