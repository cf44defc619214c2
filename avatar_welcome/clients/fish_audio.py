from __future__ import annotations

import logging

from fastapi import status

from avatar_welcome.clients.base import ProviderClient
from avatar_welcome.config import settings
from avatar_welcome.errors import ExternalServiceError, ProviderResponseError
from avatar_welcome.schemas.providers import VoiceModel

logger = logging.getLogger(__name__)


class FishAudioClient(ProviderClient):
    provider = "fish_audio"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url or str(settings.FISH_AUDIO_API_BASE_URL),
            timeout_seconds=timeout_seconds,
        )
        self.api_key = api_key if api_key is not None else settings.FISH_AUDIO_API_KEY

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ExternalServiceError(
                "FISH_AUDIO_API_KEY is not configured",
                provider=self.provider,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        return {"Accept": "application/json", "Authorization": f"Bearer {self.api_key}"}

    async def create_voice_model(
        self,
        *,
        title: str,
        description: str,
        file_name: str,
        content: bytes,
        content_type: str,
    ) -> VoiceModel:
        form_data = {
            "title": title,
            "description": description,
            "type": "tts",
            "train_mode": "fast",
            "visibility": "private",
        }
        files = {"voices": (file_name, content, content_type)}
        body = await self._request_json("POST", "/model", data=form_data, files=files)
        model = self._parse_model(VoiceModel, body, context="create_voice_model")
        logger.info("Created voice clone model", extra={"model_id": model.id, "state": model.state})
        return model

    async def get_voice_model(self, model_id: str) -> VoiceModel:
        body = await self._request_json("GET", f"/model/{model_id}")
        return self._parse_model(VoiceModel, body, context="get_voice_model")

    async def synthesize_speech(self, *, text: str, reference_id: str, audio_format: str = "mp3") -> bytes:
        response = await self._send(
            "POST",
            f"{self.base_url}/v1/tts",
            json_payload={"text": text, "reference_id": reference_id, "format": audio_format},
            headers={"model": settings.FISH_AUDIO_TTS_MODEL},
        )
        if not response.content:
            raise ProviderResponseError("Speech synthesis returned no audio", provider=self.provider)
        return response.content
