from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from avatar_welcome.auth import AuthContext, get_current_user
from avatar_welcome.clients import WhopClient
from avatar_welcome.db.deps import get_session
from avatar_welcome.db.enums import AWAITING_DELIVERY_STATUSES, IN_FLIGHT_STATUSES, VideoStatusEnum
from avatar_welcome.db.models import Video
from avatar_welcome.db.repositories import CustomersRepository, VideosRepository
from avatar_welcome.deps import get_orchestrator, get_whop_client
from avatar_welcome.errors import ExternalServiceError
from avatar_welcome.schemas.api import ExperienceRequest, GenerationResponse, SuccessResponse, WelcomeStatusResponse
from avatar_welcome.services.orchestrator import WelcomeVideoOrchestrator
from avatar_welcome.services.tenancy import resolve_creator_for_experience

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/customer", tags=["customer"])

STATUS_PREPARING = "Your personal video message is being prepared 🎥"
STATUS_GENERATING = "Your personal welcome video is being created... Check back in a moment! 🎬"
STATUS_SENT = "We just sent you a personal video message. Check your DMs 🎥"
STATUS_FAILED = "Welcome to our community! 👋"
STATUS_DEFAULT = "Check your DMs for a personal message 🎥"

RESET_ERROR_MESSAGE = "Manually reset by user"


def welcome_message_for(video: Video | None) -> str:
    if video is None:
        return STATUS_DEFAULT
    status = VideoStatusEnum(video.status)
    if status in IN_FLIGHT_STATUSES:
        return STATUS_GENERATING
    if status in AWAITING_DELIVERY_STATUSES:
        return STATUS_PREPARING
    if status in (VideoStatusEnum.sent, VideoStatusEnum.delivered):
        return STATUS_SENT
    if status == VideoStatusEnum.failed:
        return STATUS_FAILED
    return STATUS_DEFAULT


@router.get("/welcome-status", response_model=WelcomeStatusResponse)
async def welcome_status(
    experienceId: str,
    user: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    whop: WhopClient = Depends(get_whop_client),
) -> WelcomeStatusResponse:
    creator = await resolve_creator_for_experience(session, whop, experienceId)
    customer = CustomersRepository(session).get_by_platform_user_id(creator.id, user.user_id)
    if customer is None:
        return WelcomeStatusResponse(
            hasWelcomeVideo=False,
            message=STATUS_PREPARING,
            userName="there",
            userId=user.user_id,
        )

    latest = VideosRepository(session).latest_for_customer(customer.id)
    return WelcomeStatusResponse(
        hasWelcomeVideo=customer.first_video_sent,
        videoStatus=latest.status if latest else None,
        videoUrl=latest.video_url if latest else None,
        message=welcome_message_for(latest),
        userName=customer.name or customer.username or "there",
        userId=user.user_id,
    )


@router.post("/trigger-test-video", response_model=GenerationResponse)
async def trigger_test_video(
    payload: ExperienceRequest,
    user: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    whop: WhopClient = Depends(get_whop_client),
    orchestrator: WelcomeVideoOrchestrator = Depends(get_orchestrator),
) -> GenerationResponse:
    creator = await resolve_creator_for_experience(session, whop, payload.experienceId)

    name = "Member"
    username = None
    email = None
    try:
        profile = await whop.get_user(user.user_id)
        name = profile.display_name or name
        username = profile.username
        email = profile.email
    except ExternalServiceError as exc:
        logger.warning("User lookup failed for test video", extra={"sub": user.user_id, "error": str(exc)})

    customers = CustomersRepository(session)
    customer, created = customers.get_or_create(
        creator_id=creator.id,
        platform_user_id=user.user_id,
        platform_member_id=f"member_test_{int(time.time() * 1000)}",
        platform_company_id=creator.platform_company_id,
        name=name,
        email=email,
        username=username,
        plan_name="Test Plan",
    )
    if not created:
        customer = customers.backfill_company_id(customer, creator.platform_company_id)

    result = await orchestrator.generate_welcome_video(customer, creator, title=f"Test video for {customer.name}")
    if not result.provider_job_id:
        raise ExternalServiceError(result.error_message or "Video generation failed", provider="heygen")
    return GenerationResponse(
        message="Your test video is being generated! You'll receive it via DM shortly.",
        videoId=result.video_id,
        providerJobId=result.provider_job_id,
        audioStrategy=result.audio_strategy.value if result.audio_strategy else None,
        script=result.script,
    )


@router.post("/reset-test-status", response_model=SuccessResponse)
async def reset_test_status(
    payload: ExperienceRequest,
    user: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    whop: WhopClient = Depends(get_whop_client),
) -> SuccessResponse:
    creator = await resolve_creator_for_experience(session, whop, payload.experienceId)
    customers = CustomersRepository(session)
    customer = customers.get_by_platform_user_id(creator.id, user.user_id)
    if customer is not None:
        customers.set_first_video_sent(customer.id, False)
        videos = VideosRepository(session)
        for video in videos.list_by_customer(customer.id):
            if VideoStatusEnum(video.status) in IN_FLIGHT_STATUSES:
                videos.transition(
                    video.id,
                    VideoStatusEnum.failed,
                    allowed_from=IN_FLIGHT_STATUSES,
                    error_message=RESET_ERROR_MESSAGE,
                )
        logger.info("Customer test status reset", extra={"customer_id": customer.id})
    return SuccessResponse(message="Test status reset successfully")
