"""
Platform user administration.
"""

from typing import Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.exceptions import BadRequestError, NotFoundError
from eventhub.core.logging import get_logger
from eventhub.core.security import Principal
from eventhub.models.user import User, UserRole
from eventhub.utils.query_features import QueryFeatures

logger = get_logger(__name__)


async def list_users(db: AsyncSession, params: Mapping[str, str]) -> tuple[QueryFeatures, list[User], int]:
    features = (
        QueryFeatures(User, params)
        .filter()
        .search(("name", "email"))
        .sort()
        .paginate()
    )
    users, total = await features.fetch_page(db)
    return features, users, total


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def update_role(db: AsyncSession, principal: Principal, user_id: int, role: UserRole) -> User:
    user = await get_user(db, user_id)
    if user.id == principal.id and role is not UserRole.ADMIN:
        raise BadRequestError("You cannot remove your own admin role")

    previous = user.role
    user.role = role.value
    await db.flush()
    await db.refresh(user)

    logger.info("user_role_updated", target_user_id=user.id, previous=previous, role=user.role)
    return user
