"""Typed views of the provider responses this service relies on.

Only the fields the pipeline reads are declared; anything else the providers
send is ignored, so schema additions upstream never break parsing while a
missing required field fails fast with a ``ProviderResponseError``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class UploadedAsset(_ProviderModel):
    id: str | None = None
    url: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def accept_alternate_keys(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("id"):
            data = {**data, "id": data.get("audio_id") or data.get("image_key")}
        return data


class VideoJob(_ProviderModel):
    video_id: str = Field(min_length=1)


class VideoJobError(_ProviderModel):
    code: int | str | None = None
    message: str | None = None
    detail: str | None = None


class VideoJobStatus(_ProviderModel):
    status: str
    video_url: str | None = None
    thumbnail_url: str | None = None
    error: VideoJobError | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed" and bool(self.video_url)

    @property
    def is_failed(self) -> bool:
        return self.status == "failed" or self.error is not None

    @property
    def error_text(self) -> str:
        if self.error and (self.error.message or self.error.detail):
            return self.error.message or self.error.detail or ""
        return "Video provider reported generation failure"


class AvatarGroup(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str | None = None
    train_status: str | None = None


class GroupAvatar(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    avatar_id: str | None = None
    name: str | None = None
    avatar_name: str | None = None
    status: str | None = None


class Voice(BaseModel):
    model_config = ConfigDict(extra="allow")

    voice_id: str
    name: str | None = None
    language: str | None = None
    gender: str | None = None


class VoiceModel(_ProviderModel):
    id: str = Field(alias="_id", min_length=1)
    state: str
    title: str | None = None

    @property
    def is_trained(self) -> bool:
        return self.state == "trained"


class AccessCheck(_ProviderModel):
    has_access: bool
    access_level: str = "no_access"


class PlatformUser(_ProviderModel):
    id: str
    name: str | None = None
    username: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str | None:
        return self.name or self.username


class Experience(_ProviderModel):
    id: str
    company_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def flatten_company(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("company_id"):
            company = data.get("company") or {}
            if isinstance(company, dict):
                data = {**data, "company_id": company.get("id")}
        return data


class Membership(Experience):
    pass


class SentMessage(_ProviderModel):
    id: str = Field(min_length=1)


class MembersPagination(_ProviderModel):
    total_pages: int = 1
    total_count: int | None = None


class MembersPage(_ProviderModel):
    data: list[dict[str, Any]] = Field(default_factory=list)
    pagination: MembersPagination | None = None
