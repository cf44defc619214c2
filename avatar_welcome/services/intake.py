"""Turn platform membership events into welcome-video work.

The webhook handler acknowledges every signed event; what happens to it is
reported as an :class:`IntakeOutcome` for logging and tests. An event only
reaches the orchestrator when its company resolves to a creator with a
complete setup and the customer's welcome claim is won.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from avatar_welcome.clients import WhopClient
from avatar_welcome.db.models import Customer
from avatar_welcome.db.repositories import CreatorsRepository, CustomersRepository, VideosRepository
from avatar_welcome.errors import ExternalServiceError
from avatar_welcome.services.orchestrator import WelcomeVideoOrchestrator

logger = logging.getLogger(__name__)

MEMBER_JOINED_ACTIONS = frozenset(
    {
        "membership.went_valid",
        "membership.created",
        "membership_went_valid",
        "app_membership_went_valid",
    }
)
DEFAULT_MEMBER_NAME = "New Member"


def _nested(data: dict[str, Any], *keys: str) -> Any:
    value: Any = data
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _first_str(*values: Any) -> str | None:
    for value in values:
        if isinstance(value, str) and value:
            return value
    return None


@dataclass(frozen=True)
class MemberJoinedEvent:
    member_id: str | None
    user_id: str | None
    email: str | None
    username: str | None
    plan_name: str | None
    company_id: str | None

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> "MemberJoinedEvent":
        return cls(
            member_id=_first_str(data.get("id")),
            user_id=_first_str(data.get("user_id"), _nested(data, "user", "id")),
            email=_first_str(_nested(data, "user", "email")),
            username=_first_str(_nested(data, "user", "username")),
            plan_name=_first_str(
                _nested(data, "access_pass", "name"),
                _nested(data, "plan", "id"),
                data.get("plan_id"),
            ),
            company_id=_first_str(
                _nested(data, "company", "id"),
                data.get("company_id"),
                data.get("biz_id"),
                data.get("business_id"),
            ),
        )


@dataclass(frozen=True)
class IntakeOutcome:
    status: str
    customer_id: str | None = None
    video_id: str | None = None


class MemberIntakeService:
    def __init__(
        self,
        session: Session,
        *,
        whop: WhopClient,
        orchestrator: WelcomeVideoOrchestrator,
    ) -> None:
        self.session = session
        self.whop = whop
        self.orchestrator = orchestrator
        self.creators = CreatorsRepository(session)
        self.customers = CustomersRepository(session)
        self.videos = VideosRepository(session)

    async def handle_event(self, payload: dict[str, Any]) -> IntakeOutcome:
        action = payload.get("action")
        if action not in MEMBER_JOINED_ACTIONS:
            logger.info("Ignoring platform event", extra={"action": action})
            return IntakeOutcome(status="ignored")

        data = payload.get("data")
        if not isinstance(data, dict):
            logger.warning("Membership event without data", extra={"action": action})
            return IntakeOutcome(status="invalid_payload")

        event = MemberJoinedEvent.from_data(data)
        if not event.member_id or not event.user_id:
            logger.warning("Membership event missing member or user id", extra={"action": action})
            return IntakeOutcome(status="invalid_payload")

        company_id = event.company_id or await self._lookup_company_id(event.member_id)
        if not company_id:
            logger.error(
                "Could not resolve company for membership; dropping event",
                extra={"member_id": event.member_id},
            )
            return IntakeOutcome(status="tenant_unresolved")

        creator = self.creators.get_by_company_id(company_id)
        if creator is None:
            logger.warning("No creator registered for company", extra={"company_id": company_id})
            return IntakeOutcome(status="tenant_unknown")
        if not creator.is_setup_complete:
            logger.info("Creator setup incomplete; skipping welcome video", extra={"creator_id": creator.id})
            return IntakeOutcome(status="setup_incomplete")

        customer = await self._get_or_create_customer(event, creator_id=creator.id, company_id=company_id)

        if self.videos.has_any_for_customer(customer.id):
            logger.info("Customer already has a welcome video", extra={"customer_id": customer.id})
            return IntakeOutcome(status="already_welcomed", customer_id=customer.id)
        if not self.customers.claim_welcome(customer.id):
            logger.info("Welcome already claimed by another event", extra={"customer_id": customer.id})
            return IntakeOutcome(status="already_welcomed", customer_id=customer.id)

        customer_id = customer.id
        try:
            result = await self.orchestrator.generate_welcome_video(customer, creator)
        except Exception:
            self.session.rollback()
            # Without a Video the claim would block every later join event for this member.
            if not self.videos.has_any_for_customer(customer_id):
                self.customers.release_welcome(customer_id)
                logger.warning("Released welcome claim after generation error", extra={"customer_id": customer_id})
            raise
        return IntakeOutcome(
            status="generation_started" if result.provider_job_id else "generation_failed",
            customer_id=customer.id,
            video_id=result.video_id,
        )

    async def _lookup_company_id(self, member_id: str) -> str | None:
        try:
            membership = await self.whop.get_membership(member_id)
        except ExternalServiceError as exc:
            logger.warning("Membership lookup failed", extra={"member_id": member_id, "error": str(exc)})
            return None
        return membership.company_id

    async def _get_or_create_customer(
        self,
        event: MemberJoinedEvent,
        *,
        creator_id: str,
        company_id: str,
    ) -> Customer:
        user_id = event.user_id or ""
        existing = self.customers.get_by_platform_user_id(creator_id, user_id)
        if existing is not None:
            return self.customers.backfill_company_id(existing, company_id)

        name, username = await self._resolve_profile(event)
        customer, created = self.customers.get_or_create(
            creator_id=creator_id,
            platform_user_id=user_id,
            platform_member_id=event.member_id or "",
            platform_company_id=company_id,
            name=name,
            email=event.email,
            username=username,
            plan_name=event.plan_name,
        )
        if created:
            logger.info("Created customer", extra={"customer_id": customer.id, "creator_id": creator_id})
        else:
            customer = self.customers.backfill_company_id(customer, company_id)
        return customer

    async def _resolve_profile(self, event: MemberJoinedEvent) -> tuple[str, str | None]:
        try:
            user = await self.whop.get_user(event.user_id or "")
        except ExternalServiceError as exc:
            logger.warning("User lookup failed", extra={"user_id": event.user_id, "error": str(exc)})
            return event.username or DEFAULT_MEMBER_NAME, event.username
        return user.display_name or event.username or DEFAULT_MEMBER_NAME, user.username or event.username
