from __future__ import annotations

import asyncio
import logging

from sqlalchemy.orm import Session

from avatar_welcome.clients import WhopClient
from avatar_welcome.db.enums import VideoStatusEnum
from avatar_welcome.db.models import Customer, Video, utcnow
from avatar_welcome.db.repositories import CustomersRepository, VideosRepository
from avatar_welcome.errors import ExternalServiceError, PermissionDeniedUpstream, ValidationError
from avatar_welcome.schemas.providers import SentMessage

logger = logging.getLogger(__name__)

WELCOME_DM_TEMPLATE = "Hi {name}! 🎥 I recorded a personal welcome message just for you. Check it out: {url}"
MISSING_MESSAGE_PERMISSION = (
    "Missing permission: message:write. Re-approve the app's permissions in the Whop dashboard."
)
INTERRUPTED_DELIVERY_REASON = "delivery interrupted before the platform confirmed the message"

# Operator resends may move a video that never reached the member to ``sent``.
_RESEND_STATUS_SOURCES = frozenset(
    {VideoStatusEnum.completed, VideoStatusEnum.sending, VideoStatusEnum.failed}
)


def compose_welcome_message(customer_name: str | None, video_url: str) -> str:
    return WELCOME_DM_TEMPLATE.format(name=customer_name or "there", url=video_url)


class DeliveryService:
    def __init__(self, session: Session, *, whop: WhopClient) -> None:
        self.session = session
        self.whop = whop
        self.videos = VideosRepository(session)
        self.customers = CustomersRepository(session)

    async def deliver(self, customer: Customer, video: Video) -> Video | None:
        """Send a completed video to its customer exactly once.

        The ``completed -> sending`` claim decides which actor delivers; losers
        return the current row untouched. A failed or cancelled send lands the
        video in ``failed`` with the reason and re-raises so callers can log it.
        Claims left behind by a crash are expired by the reconciliation sweep.
        """
        if not video.video_url:
            raise ValidationError("Video URL not available")

        claimed = self.videos.transition(
            video.id,
            VideoStatusEnum.sending,
            allowed_from={VideoStatusEnum.completed},
        )
        if claimed is None:
            logger.info("Delivery already claimed", extra={"video_id": video.id})
            return self.videos.get(video.id)

        try:
            message = await self.send_message(customer, video.video_url)
        except ExternalServiceError as exc:
            self._fail_claimed(video.id, exc.message)
            raise
        except Exception as exc:
            self._fail_claimed(video.id, str(exc) or type(exc).__name__)
            raise
        except asyncio.CancelledError:
            self._fail_claimed(video.id, INTERRUPTED_DELIVERY_REASON)
            raise

        sent = self.videos.transition(
            video.id,
            VideoStatusEnum.sent,
            allowed_from={VideoStatusEnum.sending},
            chat_channel_id=customer.platform_user_id,
            message_id=message.id,
            sent_at=utcnow(),
        )
        self.customers.set_first_video_sent(customer.id, True)
        logger.info(
            "Welcome video delivered",
            extra={"video_id": video.id, "customer_id": customer.id, "message_id": message.id},
        )
        return sent

    def expire_claim(self, video: Video) -> Video | None:
        """Fail a ``sending`` claim whose owner never recorded an outcome."""
        failed = self._fail_claimed(video.id, INTERRUPTED_DELIVERY_REASON)
        if failed is None:
            return self.videos.get(video.id)
        logger.warning("Expired stale delivery claim", extra={"video_id": video.id})
        return failed

    def _fail_claimed(self, video_id: str, reason: str) -> Video | None:
        # The DM may or may not have gone out, so the video is never re-sent automatically.
        return self.videos.transition(
            video_id,
            VideoStatusEnum.failed,
            allowed_from={VideoStatusEnum.sending},
            error_message=f"DM delivery failed: {reason}",
        )

    async def resend(self, customer: Customer, video: Video) -> Video | None:
        if not video.video_url:
            raise ValidationError("Video URL not available")

        message = await self.send_message(customer, video.video_url)
        fields = {
            "chat_channel_id": customer.platform_user_id,
            "message_id": message.id,
            "sent_at": utcnow(),
        }
        updated = None
        if VideoStatusEnum(video.status) in _RESEND_STATUS_SOURCES:
            updated = self.videos.transition(
                video.id,
                VideoStatusEnum.sent,
                allowed_from=_RESEND_STATUS_SOURCES,
                **fields,
            )
        if updated is None:
            updated = self.videos.update_delivery(video.id, **fields)
        self.customers.set_first_video_sent(customer.id, True)
        logger.info("Video DM resent", extra={"video_id": video.id, "customer_id": customer.id})
        return updated

    async def send_message(self, customer: Customer, video_url: str) -> SentMessage:
        content = compose_welcome_message(customer.name, video_url)
        try:
            return await self.whop.send_direct_message(channel_id=customer.platform_user_id, content=content)
        except PermissionDeniedUpstream as exc:
            logger.error(
                "Direct message rejected for missing permission",
                extra={"customer_id": customer.id, "error": exc.message},
            )
            raise PermissionDeniedUpstream(
                MISSING_MESSAGE_PERMISSION,
                provider=exc.provider,
                upstream_status=exc.upstream_status,
            ) from exc
