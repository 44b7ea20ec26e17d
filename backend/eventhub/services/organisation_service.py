"""
Organisation service: CRUD plus management of the admin set.
"""

from typing import Mapping

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from eventhub.core.logging import get_logger
from eventhub.core.security import Principal
from eventhub.models.event import Event
from eventhub.models.organisation import Organisation, organisation_admins
from eventhub.models.user import User
from eventhub.schemas.organisation import OrganisationCreate, OrganisationUpdate
from eventhub.services.application_service import is_organisation_admin
from eventhub.utils.query_features import QueryFeatures

logger = get_logger(__name__)


async def _ensure_email_free(db: AsyncSession, email: str, exclude_id: int | None = None) -> None:
    query = select(Organisation.id).where(Organisation.email == email)
    if exclude_id is not None:
        query = query.where(Organisation.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        logger.warning("organisation_email_taken", email=email)
        raise ConflictError("An organisation with this email already exists")


async def _load_users(db: AsyncSession, user_ids: list[int]) -> list[User]:
    if not user_ids:
        return []
    result = await db.execute(select(User).where(User.id.in_(user_ids)))
    users = list(result.scalars().all())
    missing = set(user_ids) - {user.id for user in users}
    if missing:
        raise BadRequestError(f"Unknown user ids: {sorted(missing)}")
    return users


async def create_organisation(db: AsyncSession, data: OrganisationCreate) -> Organisation:
    await _ensure_email_free(db, data.email)

    values = data.model_dump(exclude={"admin_ids"})
    organisation = Organisation(**values)
    organisation.admins = await _load_users(db, data.admin_ids)
    db.add(organisation)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("An organisation with this email already exists")
    await db.refresh(organisation)

    logger.info("organisation_created", organisation_id=organisation.id, admins=len(organisation.admins))
    return organisation


async def get_organisation(db: AsyncSession, organisation_id: int) -> Organisation:
    organisation = await db.get(Organisation, organisation_id)
    if organisation is None:
        raise NotFoundError("Organisation not found")
    return organisation


async def list_organisations(
    db: AsyncSession,
    params: Mapping[str, str],
) -> tuple[QueryFeatures, list[Organisation], int]:
    features = (
        QueryFeatures(Organisation, params)
        .filter()
        .search(("name", "description"))
        .sort()
        .paginate()
    )
    organisations, total = await features.fetch_page(db)
    return features, organisations, total


async def update_organisation(
    db: AsyncSession,
    principal: Principal,
    organisation_id: int,
    data: OrganisationUpdate,
) -> Organisation:
    organisation = await get_organisation(db, organisation_id)
    if not principal.is_admin and not await is_organisation_admin(db, principal.id, organisation.id):
        raise ForbiddenError("You are not authorized to update this organisation")

    changes = data.model_dump(exclude_unset=True)
    if changes.get("email") and changes["email"] != organisation.email:
        await _ensure_email_free(db, changes["email"], exclude_id=organisation.id)

    for field, value in changes.items():
        if value is None and field in ("name", "type", "description", "email", "social_media"):
            continue
        setattr(organisation, field, value)
    await db.flush()
    await db.refresh(organisation)

    logger.info("organisation_updated", organisation_id=organisation.id, fields=sorted(changes))
    return organisation


async def delete_organisation(db: AsyncSession, organisation_id: int) -> None:
    organisation = await get_organisation(db, organisation_id)
    has_events = await db.execute(select(Event.id).where(Event.organisation_id == organisation.id).limit(1))
    if has_events.first() is not None:
        raise ConflictError("Delete the organisation's events first")
    await db.delete(organisation)
    await db.flush()
    logger.info("organisation_deleted", organisation_id=organisation_id)


async def add_admin(db: AsyncSession, organisation_id: int, user_id: int) -> Organisation:
    organisation = await get_organisation(db, organisation_id)
    if await db.get(User, user_id) is None:
        raise NotFoundError("User not found")
    if await is_organisation_admin(db, user_id, organisation.id):
        raise ConflictError("User is already an admin of this organisation")

    await db.execute(insert(organisation_admins).values(organisation_id=organisation.id, user_id=user_id))
    await db.flush()
    await db.refresh(organisation, attribute_names=["admins"])

    logger.info("organisation_admin_added", organisation_id=organisation.id, admin_id=user_id)
    return organisation


async def remove_admin(db: AsyncSession, organisation_id: int, user_id: int) -> Organisation:
    organisation = await get_organisation(db, organisation_id)
    result = await db.execute(
        delete(organisation_admins).where(
            organisation_admins.c.organisation_id == organisation.id,
            organisation_admins.c.user_id == user_id,
        )
    )
    if result.rowcount == 0:
        raise NotFoundError("User is not an admin of this organisation")
    await db.flush()
    await db.refresh(organisation, attribute_names=["admins"])

    logger.info("organisation_admin_removed", organisation_id=organisation.id, admin_id=user_id)
    return organisation
