"""
Read side of notifications: a recipient's inbox.
"""

from typing import Mapping

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.exceptions import NotFoundError
from eventhub.core.logging import get_logger
from eventhub.core.security import Principal
from eventhub.models.notification import Notification
from eventhub.utils.query_features import QueryFeatures

logger = get_logger(__name__)


async def list_notifications(
    db: AsyncSession,
    principal: Principal,
    params: Mapping[str, str],
) -> tuple[QueryFeatures, list[Notification], int]:
    features = (
        QueryFeatures(Notification, params)
        .where(Notification.recipient_id == principal.id)
        .filter()
        .sort()
        .paginate()
    )
    notifications, total = await features.fetch_page(db)
    return features, notifications, total


async def unread_count(db: AsyncSession, principal: Principal) -> int:
    result = await db.execute(
        select(func.count()).select_from(Notification).where(
            Notification.recipient_id == principal.id,
            Notification.is_read.is_(False),
        )
    )
    return result.scalar_one()


async def _load_own(db: AsyncSession, principal: Principal, notification_id: int) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.recipient_id == principal.id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFoundError("Notification not found")
    return notification


async def mark_as_read(db: AsyncSession, principal: Principal, notification_id: int) -> Notification:
    notification = await _load_own(db, principal, notification_id)
    notification.is_read = True
    await db.flush()
    await db.refresh(notification)
    return notification


async def mark_all_as_read(db: AsyncSession, principal: Principal) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.recipient_id == principal.id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    logger.info("notifications_marked_read", count=result.rowcount)
    return result.rowcount


async def delete_notification(db: AsyncSession, principal: Principal, notification_id: int) -> None:
    notification = await _load_own(db, principal, notification_id)
    await db.delete(notification)
    await db.flush()
