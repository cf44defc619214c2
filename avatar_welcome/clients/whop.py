from __future__ import annotations

import logging

from avatar_welcome.clients.base import ProviderClient
from avatar_welcome.config import settings
from avatar_welcome.schemas.providers import (
    AccessCheck,
    Experience,
    Membership,
    MembersPage,
    PlatformUser,
    SentMessage,
)

logger = logging.getLogger(__name__)

_MEMBERS_PAGE_SIZE = 50


class WhopClient(ProviderClient):
    provider = "whop"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(base_url=base_url or str(settings.WHOP_API_BASE_URL), timeout_seconds=timeout_seconds)
        self.api_key = api_key or settings.WHOP_API_KEY

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def check_access(self, *, user_id: str, experience_id: str) -> AccessCheck:
        body = await self._request_json(
            "GET",
            f"/api/v5/app/experiences/{experience_id}/access",
            params={"user_id": user_id},
        )
        return self._parse_model(AccessCheck, body, context="check_access")

    async def get_user(self, user_id: str) -> PlatformUser:
        body = await self._request_json("GET", f"/api/v5/app/users/{user_id}")
        return self._parse_model(PlatformUser, body, context="get_user")

    async def get_experience(self, experience_id: str) -> Experience:
        body = await self._request_json("GET", f"/api/v5/app/experiences/{experience_id}")
        return self._parse_model(Experience, body, context="get_experience")

    async def get_membership(self, membership_id: str) -> Membership:
        body = await self._request_json("GET", f"/api/v5/app/memberships/{membership_id}")
        return self._parse_model(Membership, body, context="get_membership")

    async def send_direct_message(self, *, channel_id: str, content: str) -> SentMessage:
        body = await self._request_json(
            "POST",
            "/api/v5/messages",
            json_payload={"channel_id": channel_id, "content": content},
        )
        message = self._parse_model(SentMessage, body, context="send_direct_message")
        logger.info("Sent direct message", extra={"channel_id": channel_id, "message_id": message.id})
        return message

    async def count_company_members(self, company_id: str) -> int:
        total_count: int | None = None
        seen = 0
        page = 1
        total_pages = 1
        while page <= total_pages:
            body = await self._request_json(
                "GET",
                "/api/v5/app/members",
                params={"company_id": company_id, "page": page, "per": _MEMBERS_PAGE_SIZE},
            )
            parsed = self._parse_model(MembersPage, body, context="count_company_members")
            seen += len(parsed.data)
            if parsed.pagination:
                total_pages = parsed.pagination.total_pages or 1
                if parsed.pagination.total_count is not None:
                    total_count = parsed.pagination.total_count
            page += 1
        return total_count if total_count else seen
