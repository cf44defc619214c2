from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from avatar_welcome.db.models import Creator, Customer, Video


class ExperienceRequest(BaseModel):
    experienceId: str = Field(min_length=1)


class SaveSettingsRequest(BaseModel):
    messageTemplate: str = Field(min_length=1)


class TriggerVideoRequest(BaseModel):
    customerId: str = Field(min_length=1)


class SendVideoDmRequest(BaseModel):
    videoId: str = Field(min_length=1)


class AccessResponse(BaseModel):
    hasAccess: bool
    accessLevel: str
    userId: str
    userName: str | None = None
    username: str | None = None
    companyId: str | None = None


class CreatorResponse(BaseModel):
    id: str
    platformUserId: str
    platformCompanyId: str
    avatarPhotoUrl: str | None = None
    voiceCloneModelId: str | None = None
    audioSampleUrl: str | None = None
    useAudioForGeneration: bool
    ttsVoiceId: str
    messageTemplate: str
    isSetupComplete: bool
    createdAt: datetime
    updatedAt: datetime


class CreatorEnvelope(BaseModel):
    creator: CreatorResponse


class UploadAvatarResponse(BaseModel):
    success: bool = True
    url: str
    message: str
    creator: CreatorResponse


class UploadAudioResponse(BaseModel):
    success: bool = True
    audioUrl: str
    voiceCloneModelId: str
    modelState: str
    message: str
    creator: CreatorResponse


class ResetOnboardingResponse(BaseModel):
    success: bool = True
    message: str
    creator: CreatorResponse


class VideoSummary(BaseModel):
    id: str
    status: str
    videoUrl: str | None = None
    thumbnailUrl: str | None = None
    createdAt: datetime
    completedAt: datetime | None = None
    sentAt: datetime | None = None
    viewedAt: datetime | None = None
    chatChannelId: str | None = None
    messageId: str | None = None
    errorMessage: str | None = None
    viewCount: int = 0


class CustomerWithVideos(BaseModel):
    id: str
    platformUserId: str
    platformMemberId: str
    platformCompanyId: str | None = None
    name: str
    email: str | None = None
    username: str | None = None
    planName: str | None = None
    joinedAt: datetime
    firstVideoSent: bool
    videos: list[VideoSummary] = Field(default_factory=list)
    latestVideo: VideoSummary | None = None


class CustomersResponse(BaseModel):
    customers: list[CustomerWithVideos]


class AnalyticsResponse(BaseModel):
    totalCustomers: int
    memberCountSource: str
    totalVideos: int
    videosSent: int
    videosViewed: int
    videosPending: int
    videosAwaitingDelivery: int = 0
    videosFailed: int
    totalViews: int
    averageViewsPerVideo: float
    recentVideos: list[VideoSummary] = Field(default_factory=list)


class GenerationResponse(BaseModel):
    success: bool = True
    message: str
    videoId: str
    providerJobId: str | None = None
    audioStrategy: str | None = None
    script: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: str


class WelcomeStatusResponse(BaseModel):
    hasWelcomeVideo: bool
    videoStatus: str | None = None
    videoUrl: str | None = None
    message: str
    userName: str
    userId: str


def serialize_creator(creator: Creator) -> CreatorResponse:
    return CreatorResponse(
        id=creator.id,
        platformUserId=creator.platform_user_id,
        platformCompanyId=creator.platform_company_id,
        avatarPhotoUrl=creator.avatar_photo_url,
        voiceCloneModelId=creator.voice_clone_model_id,
        audioSampleUrl=creator.audio_sample_url,
        useAudioForGeneration=creator.use_audio_for_generation,
        ttsVoiceId=creator.tts_voice_id,
        messageTemplate=creator.message_template,
        isSetupComplete=creator.is_setup_complete,
        createdAt=creator.created_at,
        updatedAt=creator.updated_at,
    )


def serialize_video(video: Video) -> VideoSummary:
    return VideoSummary(
        id=video.id,
        status=video.status,
        videoUrl=video.video_url,
        thumbnailUrl=video.thumbnail_url,
        createdAt=video.created_at,
        completedAt=video.completed_at,
        sentAt=video.sent_at,
        viewedAt=video.viewed_at,
        chatChannelId=video.chat_channel_id,
        messageId=video.message_id,
        errorMessage=video.error_message,
        viewCount=video.view_count,
    )


def serialize_customer(customer: Customer, videos: list[Video]) -> CustomerWithVideos:
    summaries = [serialize_video(video) for video in videos]
    return CustomerWithVideos(
        id=customer.id,
        platformUserId=customer.platform_user_id,
        platformMemberId=customer.platform_member_id,
        platformCompanyId=customer.platform_company_id,
        name=customer.name,
        email=customer.email,
        username=customer.username,
        planName=customer.plan_name,
        joinedAt=customer.joined_at,
        firstVideoSent=customer.first_video_sent,
        videos=summaries,
        latestVideo=summaries[-1] if summaries else None,
    )
