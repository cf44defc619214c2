"""Drive one customer from "needs a welcome video" to a provider job.

The orchestrator renders the creator's template, records a ``generating``
video, then asks the video provider for a talking-avatar job using the first
audio strategy that works:

1. the creator's trained voice-clone model speaking the personalized script,
2. the creator's uploaded audio sample, reused verbatim,
3. the provider's own text-to-speech with the creator's voice id.

Completion is asynchronous and handled by reconciliation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from avatar_welcome.clients import FishAudioClient, HeyGenClient
from avatar_welcome.config import settings
from avatar_welcome.db.models import Creator, Customer
from avatar_welcome.db.repositories import VideosRepository
from avatar_welcome.errors import ExternalServiceError, MissingAvatarError, SetupIncompleteError
from avatar_welcome.templating import TemplateAttributes, render

logger = logging.getLogger(__name__)


class AudioStrategy(str, Enum):
    voice_clone = "voice_clone"
    audio_sample = "audio_sample"
    provider_tts = "provider_tts"


@dataclass(frozen=True)
class GenerationResult:
    video_id: str
    provider_job_id: str | None
    script: str
    audio_strategy: AudioStrategy | None = None
    error_message: str | None = None


def build_script(creator: Creator, customer: Customer) -> str:
    return render(
        creator.message_template,
        TemplateAttributes(
            name=customer.name,
            email=customer.email,
            username=customer.username,
            plan_name=customer.plan_name,
        ),
    )


class WelcomeVideoOrchestrator:
    def __init__(self, session: Session, *, heygen: HeyGenClient, fish_audio: FishAudioClient) -> None:
        self.session = session
        self.heygen = heygen
        self.fish_audio = fish_audio
        self.videos = VideosRepository(session)

    async def generate_welcome_video(
        self,
        customer: Customer,
        creator: Creator,
        *,
        title: str | None = None,
    ) -> GenerationResult:
        if not creator.is_setup_complete:
            raise SetupIncompleteError("Setup not complete. Please upload avatar and set message template.")
        if not creator.avatar_photo_url:
            raise MissingAvatarError("Avatar photo URL not found")

        script = build_script(creator, customer)
        video = self.videos.create(
            customer_id=customer.id,
            creator_id=creator.id,
            personalized_script=script,
        )
        logger.info(
            "Created welcome video record",
            extra={"video_id": video.id, "customer_id": customer.id, "creator_id": creator.id},
        )

        job_title = title or f"Welcome video for {customer.name}"
        job_id, strategy, error_message = await self._request_provider_job(
            creator=creator,
            script=script,
            title=job_title,
        )

        if job_id:
            self.videos.set_provider_job_id(video.id, job_id)
            logger.info(
                "Video generation started",
                extra={"video_id": video.id, "provider_job_id": job_id, "audio_strategy": strategy.value},
            )
        else:
            error_message = f"Video generation failed: {error_message or 'no provider job id was created'}"
            self.videos.mark_failed(video.id, error_message)
            logger.error(
                "Video generation could not be started",
                extra={"video_id": video.id, "customer_id": customer.id, "error": error_message},
            )

        return GenerationResult(
            video_id=video.id,
            provider_job_id=job_id,
            script=script,
            audio_strategy=strategy if job_id else None,
            error_message=None if job_id else error_message,
        )

    async def _request_provider_job(
        self,
        *,
        creator: Creator,
        script: str,
        title: str,
    ) -> tuple[str | None, AudioStrategy, str | None]:
        if creator.voice_clone_model_id:
            try:
                job_id = await self._generate_with_voice_clone(creator=creator, script=script, title=title)
            except ExternalServiceError as exc:
                logger.warning(
                    "Voice clone generation failed; falling back",
                    extra={"creator_id": creator.id, "model_id": creator.voice_clone_model_id, "error": str(exc)},
                )
            except Exception:
                logger.exception(
                    "Voice clone generation crashed; falling back",
                    extra={"creator_id": creator.id, "model_id": creator.voice_clone_model_id},
                )
            else:
                if job_id:
                    return job_id, AudioStrategy.voice_clone, None

        avatar_url = creator.avatar_photo_url or ""
        if creator.use_audio_for_generation and creator.audio_sample_url:
            strategy = AudioStrategy.audio_sample
            try:
                job_id = await self.heygen.generate_video_from_audio(
                    avatar_image_url=avatar_url,
                    input_audio_url=creator.audio_sample_url,
                    title=title,
                )
            except ExternalServiceError as exc:
                return None, strategy, str(exc)
            return job_id, strategy, None

        strategy = AudioStrategy.provider_tts
        try:
            job_id = await self.heygen.generate_video_from_text(
                avatar_image_url=avatar_url,
                input_text=script,
                voice_id=creator.tts_voice_id or settings.DEFAULT_TTS_VOICE_ID,
                title=title,
            )
        except ExternalServiceError as exc:
            return None, strategy, str(exc)
        return job_id, strategy, None

    async def _generate_with_voice_clone(self, *, creator: Creator, script: str, title: str) -> str | None:
        model_id = creator.voice_clone_model_id or ""
        model = await self.fish_audio.get_voice_model(model_id)
        if not model.is_trained:
            logger.info(
                "Voice clone model not trained yet; falling back",
                extra={"creator_id": creator.id, "model_id": model_id, "state": model.state},
            )
            return None

        audio = await self.fish_audio.synthesize_speech(text=script, reference_id=model_id)
        asset = await self.heygen.upload_asset(content=audio, content_type="audio/mpeg")
        return await self.heygen.generate_video_from_audio(
            avatar_image_url=creator.avatar_photo_url or "",
            input_audio_url=asset.url,
            title=title,
        )
