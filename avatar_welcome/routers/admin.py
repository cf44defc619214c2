from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from avatar_welcome.auth import AuthContext, get_current_creator, get_current_user, require_experience_admin
from avatar_welcome.clients import FishAudioClient, HeyGenClient, WhopClient
from avatar_welcome.config import settings
from avatar_welcome.db.deps import get_session
from avatar_welcome.db.enums import (
    AWAITING_DELIVERY_STATUSES,
    DELIVERED_STATUSES,
    IN_FLIGHT_STATUSES,
    VideoStatusEnum,
)
from avatar_welcome.db.models import Creator
from avatar_welcome.db.repositories import CreatorsRepository, CustomersRepository, VideosRepository
from avatar_welcome.deps import get_fish_audio_client, get_heygen_client, get_orchestrator, get_whop_client
from avatar_welcome.errors import ExternalServiceError, NotFoundError, SetupIncompleteError, ValidationError
from avatar_welcome.schemas.api import (
    AnalyticsResponse,
    CreatorEnvelope,
    CreatorResponse,
    CustomersResponse,
    ExperienceRequest,
    GenerationResponse,
    ResetOnboardingResponse,
    SaveSettingsRequest,
    SendVideoDmRequest,
    SuccessResponse,
    TriggerVideoRequest,
    UploadAudioResponse,
    UploadAvatarResponse,
    serialize_creator,
    serialize_customer,
    serialize_video,
)
from avatar_welcome.services.delivery import DeliveryService
from avatar_welcome.services.orchestrator import GenerationResult, WelcomeVideoOrchestrator
from avatar_welcome.services.tenancy import initialize_creator, resolve_company_id
from avatar_welcome.services.uploads import save_avatar, validate_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

_RECENT_VIDEOS_LIMIT = 10


def _generation_response(result: GenerationResult, *, message: str) -> GenerationResponse:
    if not result.provider_job_id:
        raise ExternalServiceError(result.error_message or "Video generation failed", provider="heygen")
    return GenerationResponse(
        message=message,
        videoId=result.video_id,
        providerJobId=result.provider_job_id,
        audioStrategy=result.audio_strategy.value if result.audio_strategy else None,
        script=result.script,
    )


@router.post("/initialize", response_model=CreatorEnvelope)
async def initialize(
    payload: ExperienceRequest,
    user: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    whop: WhopClient = Depends(get_whop_client),
) -> CreatorEnvelope:
    await require_experience_admin(whop=whop, user_id=user.user_id, experience_id=payload.experienceId)
    company_id = await resolve_company_id(whop, payload.experienceId)
    creator, _ = initialize_creator(session, user_id=user.user_id, company_id=company_id)
    return CreatorEnvelope(creator=serialize_creator(creator))


@router.get("/creator", response_model=CreatorResponse)
def get_creator(creator: Creator = Depends(get_current_creator)) -> CreatorResponse:
    return serialize_creator(creator)


@router.post("/save-settings", response_model=CreatorEnvelope)
def save_settings(
    payload: SaveSettingsRequest,
    creator: Creator = Depends(get_current_creator),
    session: Session = Depends(get_session),
) -> CreatorEnvelope:
    updated = CreatorsRepository(session).update_settings(creator, message_template=payload.messageTemplate)
    logger.info(
        "Creator settings saved",
        extra={"creator_id": creator.id, "is_setup_complete": updated.is_setup_complete},
    )
    return CreatorEnvelope(creator=serialize_creator(updated))


@router.post("/upload-avatar", response_model=UploadAvatarResponse)
async def upload_avatar(
    avatar: UploadFile | None = File(default=None),
    creator: Creator = Depends(get_current_creator),
    session: Session = Depends(get_session),
) -> UploadAvatarResponse:
    if avatar is None:
        raise ValidationError("No file uploaded")
    content = await avatar.read()
    public_url = save_avatar(
        creator_id=creator.id,
        content=content,
        original_name=avatar.filename,
        content_type=avatar.content_type,
    )
    updated = CreatorsRepository(session).set_avatar(creator, avatar_photo_url=public_url)
    return UploadAvatarResponse(
        url=public_url,
        message="Avatar uploaded successfully!",
        creator=serialize_creator(updated),
    )


@router.post("/upload-audio", response_model=UploadAudioResponse)
async def upload_audio(
    audio: UploadFile | None = File(default=None),
    creator: Creator = Depends(get_current_creator),
    session: Session = Depends(get_session),
    heygen: HeyGenClient = Depends(get_heygen_client),
    fish_audio: FishAudioClient = Depends(get_fish_audio_client),
) -> UploadAudioResponse:
    if audio is None:
        raise ValidationError("No audio file uploaded")
    content = await audio.read()
    content_type = audio.content_type or ""
    validate_upload(
        content=content,
        content_type=content_type,
        expected_prefix="audio/",
        max_bytes=settings.MAX_AUDIO_BYTES,
        label="audio",
    )

    model = await fish_audio.create_voice_model(
        title=f"Voice Model - {creator.platform_user_id}",
        description=f"AI voice model for creator {creator.platform_user_id}",
        file_name=audio.filename or "voice-sample",
        content=content,
        content_type=content_type,
    )
    asset = await heygen.upload_asset(content=content, content_type=content_type)

    updated = CreatorsRepository(session).set_voice_sample(
        creator,
        audio_sample_url=asset.url,
        voice_clone_model_id=model.id,
    )
    logger.info(
        "Voice sample stored",
        extra={"creator_id": creator.id, "model_id": model.id, "model_state": model.state},
    )
    return UploadAudioResponse(
        audioUrl=asset.url,
        voiceCloneModelId=model.id,
        modelState=model.state,
        message="Voice model training started!",
        creator=serialize_creator(updated),
    )


@router.post("/reset-onboarding", response_model=ResetOnboardingResponse)
def reset_onboarding(
    creator: Creator = Depends(get_current_creator),
    session: Session = Depends(get_session),
) -> ResetOnboardingResponse:
    updated = CreatorsRepository(session).reset_onboarding(creator)
    logger.info("Onboarding reset", extra={"creator_id": creator.id})
    return ResetOnboardingResponse(
        message="Onboarding has been reset. You can now go through the setup wizard again.",
        creator=serialize_creator(updated),
    )


@router.get("/customers", response_model=CustomersResponse)
def list_customers(
    creator: Creator = Depends(get_current_creator),
    session: Session = Depends(get_session),
) -> CustomersResponse:
    videos_repo = VideosRepository(session)
    customers = CustomersRepository(session).list_by_creator(creator.id)
    return CustomersResponse(
        customers=[serialize_customer(customer, videos_repo.list_by_customer(customer.id)) for customer in customers]
    )


@router.get("/analytics", response_model=AnalyticsResponse)
async def analytics(
    creator: Creator = Depends(get_current_creator),
    session: Session = Depends(get_session),
    whop: WhopClient = Depends(get_whop_client),
) -> AnalyticsResponse:
    source = "platform"
    try:
        total_customers = await whop.count_company_members(creator.platform_company_id)
    except ExternalServiceError as exc:
        logger.warning(
            "Member count from platform failed; using local count",
            extra={"creator_id": creator.id, "company_id": creator.platform_company_id, "error": str(exc)},
        )
        total_customers = CustomersRepository(session).count_by_creator(creator.id)
        source = "local"

    videos = VideosRepository(session).list_by_creator(creator.id)
    statuses = [VideoStatusEnum(video.status) for video in videos]
    total_views = sum(video.view_count for video in videos)
    return AnalyticsResponse(
        totalCustomers=total_customers,
        memberCountSource=source,
        totalVideos=len(videos),
        videosSent=sum(1 for status in statuses if status in DELIVERED_STATUSES),
        videosViewed=sum(1 for status in statuses if status == VideoStatusEnum.viewed),
        videosPending=sum(1 for status in statuses if status in IN_FLIGHT_STATUSES),
        videosAwaitingDelivery=sum(1 for status in statuses if status in AWAITING_DELIVERY_STATUSES),
        videosFailed=sum(1 for status in statuses if status == VideoStatusEnum.failed),
        totalViews=total_views,
        averageViewsPerVideo=total_views / len(videos) if videos else 0.0,
        recentVideos=[serialize_video(video) for video in reversed(videos[-_RECENT_VIDEOS_LIMIT:])],
    )


@router.post("/test-video-generation", response_model=GenerationResponse)
async def test_video_generation(
    creator: Creator = Depends(get_current_creator),
    session: Session = Depends(get_session),
    orchestrator: WelcomeVideoOrchestrator = Depends(get_orchestrator),
) -> GenerationResponse:
    if not creator.is_setup_complete:
        raise SetupIncompleteError("Setup not complete. Please upload avatar and set message template.")

    stamp = int(time.time() * 1000)
    customer, _ = CustomersRepository(session).get_or_create(
        creator_id=creator.id,
        platform_user_id=f"test_{stamp}",
        platform_member_id=f"test_member_{stamp}",
        platform_company_id=creator.platform_company_id,
        name="Test Customer",
        email="test@example.com",
        username="testuser",
        plan_name="Test Plan",
    )
    logger.info("Running test generation", extra={"creator_id": creator.id, "customer_id": customer.id})
    result = await orchestrator.generate_welcome_video(customer, creator, title=f"Test video for {customer.name}")
    return _generation_response(result, message="Test video generation started! Check logs for progress.")


@router.post("/trigger-video-for-customer", response_model=GenerationResponse)
async def trigger_video_for_customer(
    payload: TriggerVideoRequest,
    creator: Creator = Depends(get_current_creator),
    session: Session = Depends(get_session),
    orchestrator: WelcomeVideoOrchestrator = Depends(get_orchestrator),
) -> GenerationResponse:
    customer = CustomersRepository(session).get_for_creator(creator.id, payload.customerId)
    if customer is None:
        raise NotFoundError("Customer not found")
    result = await orchestrator.generate_welcome_video(customer, creator)
    return _generation_response(
        result,
        message="Video generation started! It will automatically be sent via DM when ready.",
    )


@router.post("/send-video-dm", response_model=SuccessResponse)
async def send_video_dm(
    payload: SendVideoDmRequest,
    creator: Creator = Depends(get_current_creator),
    session: Session = Depends(get_session),
    whop: WhopClient = Depends(get_whop_client),
) -> SuccessResponse:
    video = VideosRepository(session).get_for_creator(creator.id, payload.videoId)
    if video is None:
        raise NotFoundError("Video not found")
    if not video.video_url:
        raise ValidationError("Video URL not available")
    customer = CustomersRepository(session).get_for_creator(creator.id, video.customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")

    await DeliveryService(session, whop=whop).resend(customer, video)
    return SuccessResponse(message="DM sent successfully")


@router.get("/heygen/avatar-groups")
async def list_avatar_groups(
    user: AuthContext = Depends(get_current_user),
    heygen: HeyGenClient = Depends(get_heygen_client),
) -> dict:
    groups = await heygen.list_avatar_groups()
    return {"avatarGroups": [group.model_dump() for group in groups]}


@router.get("/heygen/avatar-groups/{group_id}/avatars")
async def list_group_avatars(
    group_id: str,
    user: AuthContext = Depends(get_current_user),
    heygen: HeyGenClient = Depends(get_heygen_client),
) -> dict:
    avatars = await heygen.list_group_avatars(group_id)
    return {"avatars": [avatar.model_dump() for avatar in avatars]}


@router.get("/heygen/voices")
async def list_voices(
    user: AuthContext = Depends(get_current_user),
    heygen: HeyGenClient = Depends(get_heygen_client),
) -> dict:
    voices = await heygen.list_voices()
    return {"voices": [voice.model_dump() for voice in voices]}
