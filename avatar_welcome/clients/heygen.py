from __future__ import annotations

import logging

from avatar_welcome.clients.base import ProviderClient
from avatar_welcome.config import settings
from avatar_welcome.schemas.providers import (
    AvatarGroup,
    GroupAvatar,
    UploadedAsset,
    VideoJob,
    VideoJobStatus,
    Voice,
)

logger = logging.getLogger(__name__)


def normalize_upload_mimetype(content_type: str) -> str:
    # The asset endpoint only accepts WebM recordings under the video/webm type.
    if content_type == "audio/webm" or content_type.startswith("audio/webm;"):
        return "video/webm"
    return content_type


class HeyGenClient(ProviderClient):
    provider = "heygen"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        upload_base_url: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url or str(settings.HEYGEN_API_BASE_URL),
            timeout_seconds=timeout_seconds,
        )
        self.api_key = api_key or settings.HEYGEN_API_KEY
        self.upload_base_url = (upload_base_url or str(settings.HEYGEN_UPLOAD_BASE_URL)).rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "X-Api-Key": self.api_key}

    async def upload_asset(self, *, content: bytes, content_type: str) -> UploadedAsset:
        # Raw binary body, not multipart.
        body = await self._request_json(
            "POST",
            f"{self.upload_base_url}/v1/asset",
            content=content,
            headers={"Content-Type": normalize_upload_mimetype(content_type)},
        )
        asset = self._parse_model(UploadedAsset, self._unwrap_data(body, context="upload_asset"), context="upload_asset")
        logger.info("Uploaded asset to HeyGen", extra={"asset_id": asset.id, "bytes": len(content)})
        return asset

    async def generate_video_from_text(
        self,
        *,
        avatar_image_url: str,
        input_text: str,
        voice_id: str,
        title: str | None = None,
    ) -> str:
        payload = {
            "avatar_image_url": avatar_image_url,
            "input_text": input_text,
            "voice_id": voice_id,
            "test": settings.HEYGEN_TEST_MODE,
        }
        if title:
            payload["title"] = title
        return await self._generate(payload, context="generate_video_from_text")

    async def generate_video_from_audio(
        self,
        *,
        avatar_image_url: str,
        input_audio_url: str,
        title: str | None = None,
    ) -> str:
        payload = {
            "avatar_image_url": avatar_image_url,
            "input_audio_url": input_audio_url,
            "test": settings.HEYGEN_TEST_MODE,
        }
        if title:
            payload["title"] = title
        return await self._generate(payload, context="generate_video_from_audio")

    async def _generate(self, payload: dict, *, context: str) -> str:
        body = await self._request_json("POST", "/v2/video/av4/generate", json_payload=payload)
        job = self._parse_model(VideoJob, self._unwrap_data(body, context=context), context=context)
        return job.video_id

    async def get_video_status(self, video_id: str) -> VideoJobStatus:
        body = await self._request_json("GET", "/v1/video_status.get", params={"video_id": video_id})
        return self._parse_model(
            VideoJobStatus,
            self._unwrap_data(body, context="get_video_status"),
            context="get_video_status",
        )

    async def list_avatar_groups(self) -> list[AvatarGroup]:
        body = await self._request_json("GET", "/v2/avatar_group.list")
        data = self._unwrap_data(body, context="list_avatar_groups")
        groups = data.get("avatar_group_list") if isinstance(data, dict) else None
        return [self._parse_model(AvatarGroup, group, context="list_avatar_groups") for group in groups or []]

    async def list_group_avatars(self, group_id: str) -> list[GroupAvatar]:
        body = await self._request_json("GET", f"/v2/avatar_group/{group_id}/avatars")
        data = self._unwrap_data(body, context="list_group_avatars")
        avatars = data.get("avatar_list") if isinstance(data, dict) else None
        return [self._parse_model(GroupAvatar, avatar, context="list_group_avatars") for avatar in avatars or []]

    async def list_voices(self) -> list[Voice]:
        body = await self._request_json("GET", "/v2/voices")
        data = self._unwrap_data(body, context="list_voices")
        voices = data.get("voices") if isinstance(data, dict) else None
        return [self._parse_model(Voice, voice, context="list_voices") for voice in voices or []]
