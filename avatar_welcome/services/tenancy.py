from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from avatar_welcome.clients import WhopClient
from avatar_welcome.db.models import Creator
from avatar_welcome.db.repositories import CreatorsRepository
from avatar_welcome.errors import AccessDeniedError, ExternalServiceError, TenantResolutionError

logger = logging.getLogger(__name__)


async def resolve_company_id(whop: WhopClient, experience_id: str) -> str:
    try:
        experience = await whop.get_experience(experience_id)
    except ExternalServiceError as exc:
        logger.warning("Experience lookup failed", extra={"experience_id": experience_id, "error": str(exc)})
        raise TenantResolutionError("Could not resolve the company for this experience") from exc
    if not experience.company_id:
        raise TenantResolutionError("Could not resolve the company for this experience")
    return experience.company_id


async def resolve_creator_for_experience(session: Session, whop: WhopClient, experience_id: str) -> Creator:
    company_id = await resolve_company_id(whop, experience_id)
    creator = CreatorsRepository(session).get_by_company_id(company_id)
    if creator is None:
        raise TenantResolutionError("This community has not set up welcome videos yet")
    return creator


def initialize_creator(session: Session, *, user_id: str, company_id: str) -> tuple[Creator, bool]:
    """Get or create the tenant for an admin; the company binding never changes."""
    repo = CreatorsRepository(session)
    creator = repo.get_by_platform_user_id(user_id)
    if creator is not None:
        if creator.platform_company_id != company_id:
            logger.error(
                "Creator attempted to switch company",
                extra={"creator_id": creator.id, "company_id": company_id},
            )
            raise AccessDeniedError("You cannot access this company's settings")
        return creator, False

    owner = repo.get_by_company_id(company_id)
    if owner is not None:
        logger.warning(
            "Company already registered to another creator",
            extra={"company_id": company_id, "creator_id": owner.id},
        )
        raise AccessDeniedError("This company has already been set up by another admin")

    creator = repo.create(platform_user_id=user_id, platform_company_id=company_id)
    logger.info("Created creator", extra={"creator_id": creator.id, "company_id": company_id})
    return creator, True
