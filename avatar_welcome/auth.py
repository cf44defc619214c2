from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, Header
from jose import jwt
from jose.exceptions import JWTError
from sqlalchemy.orm import Session

from avatar_welcome.clients import WhopClient
from avatar_welcome.config import settings
from avatar_welcome.db.deps import get_session
from avatar_welcome.db.models import Creator
from avatar_welcome.db.repositories import CreatorsRepository
from avatar_welcome.errors import AccessDeniedError, AuthError, ExternalServiceError, NotFoundError

logger = logging.getLogger("auth.whop")

USER_TOKEN_HEADER = "x-whop-user-token"
_TOKEN_ALGORITHMS = ["ES256"]


@dataclass
class AuthContext:
    user_id: str


def verify_user_token(token: str) -> str:
    """Verify a platform-issued user token and return the user id it carries."""
    if not settings.WHOP_TOKEN_PUBLIC_KEY:
        logger.error("WHOP_TOKEN_PUBLIC_KEY is not configured; cannot verify user tokens")
        raise AuthError("User token verification is not configured")
    try:
        claims = jwt.decode(
            token,
            settings.WHOP_TOKEN_PUBLIC_KEY,
            algorithms=_TOKEN_ALGORITHMS,
            audience=settings.WHOP_APP_ID,
            issuer=settings.WHOP_TOKEN_ISSUER,
        )
    except (JWTError, ValueError) as exc:
        logger.warning("User token verification failed", exc_info=exc)
        raise AuthError("Invalid user token") from exc

    user_id = claims.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise AuthError("Invalid user token claims")
    logger.debug("Verified user token", extra={"sub": user_id})
    return user_id


def get_current_user(
    user_token: str | None = Header(default=None, alias=USER_TOKEN_HEADER),
) -> AuthContext:
    if not user_token:
        raise AuthError(f"Missing {USER_TOKEN_HEADER} header")
    return AuthContext(user_id=verify_user_token(user_token))


def get_current_creator(
    user: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> Creator:
    creator = CreatorsRepository(session).get_by_platform_user_id(user.user_id)
    if not creator:
        raise NotFoundError("Creator not found")
    return creator


async def require_experience_admin(*, whop: WhopClient, user_id: str, experience_id: str) -> None:
    try:
        access = await whop.check_access(user_id=user_id, experience_id=experience_id)
    except ExternalServiceError as exc:
        logger.warning(
            "Experience access check failed",
            extra={"sub": user_id, "experience_id": experience_id, "error": str(exc)},
        )
        raise AccessDeniedError("Failed to verify your access to this experience") from exc

    if access.access_level != "admin":
        logger.warning(
            "Non-admin attempted tenant initialization",
            extra={"sub": user_id, "experience_id": experience_id, "access_level": access.access_level},
        )
        raise AccessDeniedError("You must have admin access to this experience to set up the app")
