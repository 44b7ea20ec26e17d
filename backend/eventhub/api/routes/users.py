"""
Platform user administration (admin only).
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.security import Principal, require_roles
from eventhub.db.session import get_db
from eventhub.models.user import UserRole
from eventhub.schemas.user import RoleUpdate, UserListResponse, UserResponse
from eventhub.services import user_service
from eventhub.utils.query_features import with_page

router = APIRouter(prefix="/users", tags=["Users"])

admin_only = require_roles(UserRole.ADMIN)


@router.get("/", response_model=UserListResponse)
async def list_users(
    request: Request,
    principal: Principal = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    features, users, total = await user_service.list_users(db, dict(request.query_params))
    return with_page("users", [UserResponse.model_validate(u) for u in users], features.page_meta(total))


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    principal: Principal = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user(db, user_id)


@router.patch("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: int,
    data: RoleUpdate,
    principal: Principal = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_role(db, principal, user_id, data.role)
