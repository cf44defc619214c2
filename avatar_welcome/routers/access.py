from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from avatar_welcome.auth import AuthContext, get_current_user
from avatar_welcome.clients import WhopClient
from avatar_welcome.db.deps import get_session
from avatar_welcome.db.repositories import CreatorsRepository
from avatar_welcome.deps import get_whop_client
from avatar_welcome.errors import ExternalServiceError
from avatar_welcome.schemas.api import AccessResponse, ExperienceRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["access"])


@router.post("/validate-access", response_model=AccessResponse)
async def validate_access(
    payload: ExperienceRequest,
    user: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    whop: WhopClient = Depends(get_whop_client),
) -> AccessResponse:
    access = await whop.check_access(user_id=user.user_id, experience_id=payload.experienceId)

    user_name = None
    username = None
    try:
        profile = await whop.get_user(user.user_id)
        user_name = profile.display_name
        username = profile.username
    except ExternalServiceError as exc:
        logger.warning("User lookup failed during access check", extra={"sub": user.user_id, "error": str(exc)})

    company_id = None
    try:
        experience = await whop.get_experience(payload.experienceId)
        company_id = experience.company_id
    except ExternalServiceError as exc:
        logger.warning(
            "Experience lookup failed during access check",
            extra={"experience_id": payload.experienceId, "error": str(exc)},
        )
        if access.access_level == "admin":
            creator = CreatorsRepository(session).get_by_platform_user_id(user.user_id)
            company_id = creator.platform_company_id if creator else None

    return AccessResponse(
        hasAccess=access.has_access,
        accessLevel=access.access_level,
        userId=user.user_id,
        userName=user_name,
        username=username,
        companyId=company_id,
    )


@router.get("/user")
async def get_user(
    user: AuthContext = Depends(get_current_user),
    whop: WhopClient = Depends(get_whop_client),
) -> dict:
    profile = await whop.get_user(user.user_id)
    return {"user": profile.model_dump()}
