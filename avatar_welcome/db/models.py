from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from avatar_welcome.config import settings
from avatar_welcome.db.base import Base
from avatar_welcome.db.enums import VideoStatusEnum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class Creator(Base):
    __tablename__ = "creators"

    id: Mapped[str] = mapped_column(String(length=32), primary_key=True, default=new_id)
    platform_user_id: Mapped[str] = mapped_column(String(length=128), nullable=False, index=True)
    platform_company_id: Mapped[str] = mapped_column(String(length=128), unique=True, nullable=False, index=True)
    avatar_photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    voice_clone_model_id: Mapped[str | None] = mapped_column(String(length=128), nullable=True)
    audio_sample_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    use_audio_for_generation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tts_voice_id: Mapped[str] = mapped_column(
        String(length=128), nullable=False, default=lambda: settings.DEFAULT_TTS_VOICE_ID
    )
    message_template: Mapped[str] = mapped_column(
        Text, nullable=False, default=lambda: settings.DEFAULT_MESSAGE_TEMPLATE
    )
    is_setup_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def compute_setup_complete(self) -> bool:
        return bool(self.avatar_photo_url and self.voice_clone_model_id and (self.message_template or "").strip())


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("creator_id", "platform_user_id", name="uq_customer_creator_platform_user"),
    )

    id: Mapped[str] = mapped_column(String(length=32), primary_key=True, default=new_id)
    creator_id: Mapped[str] = mapped_column(
        String(length=32), ForeignKey("creators.id"), nullable=False, index=True
    )
    platform_user_id: Mapped[str] = mapped_column(String(length=128), nullable=False, index=True)
    platform_member_id: Mapped[str] = mapped_column(String(length=128), nullable=False)
    platform_company_id: Mapped[str | None] = mapped_column(String(length=128), nullable=True)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(length=320), nullable=True)
    username: Mapped[str | None] = mapped_column(String(length=255), nullable=True)
    plan_name: Mapped[str | None] = mapped_column(String(length=255), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    first_video_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    welcome_claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class Video(Base):
    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String(length=32), primary_key=True, default=new_id)
    customer_id: Mapped[str] = mapped_column(
        String(length=32), ForeignKey("customers.id"), nullable=False, index=True
    )
    creator_id: Mapped[str] = mapped_column(
        String(length=32), ForeignKey("creators.id"), nullable=False, index=True
    )
    personalized_script: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(length=32), nullable=False, default=VideoStatusEnum.pending.value, index=True
    )
    provider_job_id: Mapped[str | None] = mapped_column(String(length=128), nullable=True, index=True)
    video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    chat_channel_id: Mapped[str | None] = mapped_column(String(length=128), nullable=True)
    message_id: Mapped[str | None] = mapped_column(String(length=128), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
