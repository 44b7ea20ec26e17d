"""
Organisation endpoints. Reads are public; writes need a platform admin,
except profile updates which an organisation's own admins may make.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.security import Principal, require_roles
from eventhub.db.session import get_db
from eventhub.models.user import UserRole
from eventhub.schemas.organisation import (
    AdminAssignment,
    OrganisationCreate,
    OrganisationListResponse,
    OrganisationResponse,
    OrganisationUpdate,
)
from eventhub.services import organisation_service
from eventhub.utils.query_features import with_page

router = APIRouter(prefix="/organisations", tags=["Organisations"])

admin_only = require_roles(UserRole.ADMIN)


@router.post("/", response_model=OrganisationResponse, status_code=status.HTTP_201_CREATED)
async def create_organisation(
    data: OrganisationCreate,
    principal: Principal = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    return await organisation_service.create_organisation(db, data)


@router.get("/", response_model=OrganisationListResponse)
async def list_organisations(request: Request, db: AsyncSession = Depends(get_db)):
    features, organisations, total = await organisation_service.list_organisations(db, dict(request.query_params))
    return with_page(
        "organisations",
        [OrganisationResponse.model_validate(o) for o in organisations],
        features.page_meta(total),
    )


@router.get("/{organisation_id}", response_model=OrganisationResponse)
async def get_organisation(organisation_id: int, db: AsyncSession = Depends(get_db)):
    return await organisation_service.get_organisation(db, organisation_id)


@router.put("/{organisation_id}", response_model=OrganisationResponse)
async def update_organisation(
    organisation_id: int,
    data: OrganisationUpdate,
    principal: Principal = Depends(require_roles(UserRole.ADMIN, UserRole.ORGANISATION)),
    db: AsyncSession = Depends(get_db),
):
    return await organisation_service.update_organisation(db, principal, organisation_id, data)


@router.delete("/{organisation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organisation(
    organisation_id: int,
    principal: Principal = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    await organisation_service.delete_organisation(db, organisation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{organisation_id}/admins", response_model=OrganisationResponse)
async def add_organisation_admin(
    organisation_id: int,
    assignment: AdminAssignment,
    principal: Principal = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    return await organisation_service.add_admin(db, organisation_id, assignment.user_id)


@router.delete("/{organisation_id}/admins/{user_id}", response_model=OrganisationResponse)
async def remove_organisation_admin(
    organisation_id: int,
    user_id: int,
    principal: Principal = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    return await organisation_service.remove_admin(db, organisation_id, user_id)
