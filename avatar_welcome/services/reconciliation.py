"""Bring local video state in line with the video provider.

Two actors report completions: the provider's webhook and the periodic
poller. Both go through :meth:`ReconciliationService.complete_video`, which
owns the ``generating -> completed`` write and then hands the video to
delivery. The poller also picks up ``completed`` videos whose delivery never
happened (for example after a restart between the two steps) and fails
``sending`` claims older than the delivery lease, since whether that DM went
out is unknown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.orm import Session

from avatar_welcome.clients import HeyGenClient, WhopClient
from avatar_welcome.config import settings
from avatar_welcome.db.base import SessionLocal
from avatar_welcome.db.enums import IN_FLIGHT_STATUSES, VideoStatusEnum
from avatar_welcome.db.models import Video, utcnow
from avatar_welcome.db.repositories import CreatorsRepository, CustomersRepository, VideosRepository
from avatar_welcome.deps import get_heygen_client, get_whop_client
from avatar_welcome.errors import ExternalServiceError
from avatar_welcome.services.delivery import DeliveryService

logger = logging.getLogger(__name__)

NO_JOB_ID_MESSAGE = "Video generation failed: no provider job id was created"
MISSING_RECORDS_MESSAGE = "Customer or creator not found"


@dataclass
class SweepSummary:
    checked: int = 0
    completed: int = 0
    failed: int = 0
    delivered: int = 0
    errors: int = 0


class ReconciliationService:
    def __init__(self, session: Session, *, heygen: HeyGenClient, whop: WhopClient) -> None:
        self.session = session
        self.heygen = heygen
        self.videos = VideosRepository(session)
        self.customers = CustomersRepository(session)
        self.creators = CreatorsRepository(session)
        self.delivery = DeliveryService(session, whop=whop)

    async def complete_video(
        self,
        video: Video,
        *,
        video_url: str,
        thumbnail_url: str | None = None,
    ) -> Video | None:
        completed = self.videos.transition(
            video.id,
            VideoStatusEnum.completed,
            allowed_from={VideoStatusEnum.generating},
            video_url=video_url,
            thumbnail_url=thumbnail_url,
            completed_at=utcnow(),
        )
        if completed is None:
            logger.info("Video completion already recorded", extra={"video_id": video.id, "status": video.status})
            return self.videos.get(video.id)
        logger.info("Video generation completed", extra={"video_id": video.id})
        return await self.deliver_completed(completed)

    def fail_video(self, video: Video, error_message: str) -> Video | None:
        failed = self.videos.mark_failed(video.id, error_message)
        if failed is None:
            logger.info("Video already past failure point", extra={"video_id": video.id, "status": video.status})
            return self.videos.get(video.id)
        logger.warning("Video marked failed", extra={"video_id": video.id, "error": error_message})
        return failed

    def fail_generation(self, video: Video, error_message: str) -> Video | None:
        """Record a provider-side failure; a video that already completed is left alone."""
        failed = self.videos.transition(
            video.id,
            VideoStatusEnum.failed,
            allowed_from=IN_FLIGHT_STATUSES,
            error_message=error_message,
        )
        if failed is None:
            logger.info("Ignoring late generation failure", extra={"video_id": video.id})
            return self.videos.get(video.id)
        logger.warning("Video generation failed", extra={"video_id": video.id, "error": error_message})
        return failed

    async def deliver_completed(self, video: Video) -> Video | None:
        customer = self.customers.get(video.customer_id)
        creator = self.creators.get(video.creator_id)
        if customer is None or creator is None:
            return self.fail_video(video, MISSING_RECORDS_MESSAGE)
        try:
            return await self.delivery.deliver(customer, video)
        except ExternalServiceError as exc:
            logger.error(
                "Welcome video delivery failed",
                extra={"video_id": video.id, "customer_id": customer.id, "error": str(exc)},
            )
            return self.videos.get(video.id)

    async def reconcile_video(self, video: Video) -> Video | None:
        if not video.provider_job_id:
            return self.fail_generation(video, NO_JOB_ID_MESSAGE)

        job = await self.heygen.get_video_status(video.provider_job_id)
        if job.is_completed:
            return await self.complete_video(
                video,
                video_url=job.video_url or "",
                thumbnail_url=job.thumbnail_url,
            )
        if job.is_failed:
            return self.fail_generation(video, job.error_text)
        logger.debug("Video still processing", extra={"video_id": video.id, "provider_status": job.status})
        return video

    async def sweep(self) -> SweepSummary:
        summary = SweepSummary()

        for video in self.videos.list_by_status([VideoStatusEnum.generating]):
            video_id = video.id
            summary.checked += 1
            try:
                updated = await self.reconcile_video(video)
            except Exception:
                self.session.rollback()
                summary.errors += 1
                logger.exception("Failed to reconcile video", extra={"video_id": video_id})
                continue
            self._tally(summary, updated)

        for video in self.videos.list_by_status([VideoStatusEnum.completed]):
            video_id = video.id
            summary.checked += 1
            try:
                updated = await self.deliver_completed(video)
            except Exception:
                self.session.rollback()
                summary.errors += 1
                logger.exception("Failed to deliver completed video", extra={"video_id": video_id})
                continue
            self._tally(summary, updated)

        lease_cutoff = utcnow() - timedelta(seconds=settings.DELIVERY_LEASE_SECONDS)
        for video in self.videos.list_stale(VideoStatusEnum.sending, updated_before=lease_cutoff):
            video_id = video.id
            summary.checked += 1
            try:
                updated = self.delivery.expire_claim(video)
            except Exception:
                self.session.rollback()
                summary.errors += 1
                logger.exception("Failed to expire delivery claim", extra={"video_id": video_id})
                continue
            self._tally(summary, updated)

        if summary.checked:
            logger.info(
                "Reconciliation sweep finished",
                extra={
                    "checked": summary.checked,
                    "completed": summary.completed,
                    "delivered": summary.delivered,
                    "failed": summary.failed,
                    "errors": summary.errors,
                },
            )
        return summary

    @staticmethod
    def _tally(summary: SweepSummary, video: Video | None) -> None:
        if video is None:
            return
        status = VideoStatusEnum(video.status)
        if status == VideoStatusEnum.failed:
            summary.failed += 1
        elif status == VideoStatusEnum.completed:
            summary.completed += 1
        elif status == VideoStatusEnum.sent:
            summary.delivered += 1


class ReconciliationPoller:
    """Runs a sweep immediately, then every ``interval_seconds`` until stopped."""

    def __init__(
        self,
        *,
        interval_seconds: float,
        session_factory: Callable[[], Session] = SessionLocal,
        heygen_provider: Callable[[], HeyGenClient] = get_heygen_client,
        whop_provider: Callable[[], WhopClient] = get_whop_client,
    ) -> None:
        self.interval_seconds = interval_seconds
        self._session_factory = session_factory
        self._heygen_provider = heygen_provider
        self._whop_provider = whop_provider
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="reconciliation-poller")
        logger.info("Reconciliation poller started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Reconciliation poller stopped")

    async def run_once(self) -> SweepSummary:
        with self._session_factory() as session:
            service = ReconciliationService(
                session,
                heygen=self._heygen_provider(),
                whop=self._whop_provider(),
            )
            return await service.sweep()

    async def _run(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Reconciliation sweep failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
