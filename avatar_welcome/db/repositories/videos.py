from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from avatar_welcome.db.enums import VideoStatusEnum, sources_for
from avatar_welcome.db.models import Video


class VideosRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, video_id: str) -> Optional[Video]:
        return self.session.get(Video, video_id, populate_existing=True)

    def get_for_creator(self, creator_id: str, video_id: str) -> Optional[Video]:
        stmt = select(Video).where(Video.creator_id == creator_id, Video.id == video_id)
        return self.session.scalars(stmt).first()

    def get_by_provider_job_id(self, provider_job_id: str) -> Optional[Video]:
        stmt = select(Video).where(Video.provider_job_id == provider_job_id)
        return self.session.scalars(stmt).first()

    def list_by_customer(self, customer_id: str) -> List[Video]:
        stmt = select(Video).where(Video.customer_id == customer_id).order_by(Video.created_at, Video.id)
        return list(self.session.scalars(stmt).all())

    def latest_for_customer(self, customer_id: str) -> Optional[Video]:
        videos = self.list_by_customer(customer_id)
        return videos[-1] if videos else None

    def has_any_for_customer(self, customer_id: str) -> bool:
        stmt = select(Video.id).where(Video.customer_id == customer_id).limit(1)
        return self.session.scalars(stmt).first() is not None

    def list_by_creator(self, creator_id: str) -> List[Video]:
        stmt = select(Video).where(Video.creator_id == creator_id).order_by(Video.created_at, Video.id)
        return list(self.session.scalars(stmt).all())

    def list_by_status(self, statuses: Iterable[VideoStatusEnum]) -> List[Video]:
        values = [VideoStatusEnum(status).value for status in statuses]
        stmt = select(Video).where(Video.status.in_(values)).order_by(Video.created_at, Video.id)
        return list(self.session.scalars(stmt).all())

    def list_stale(self, status: VideoStatusEnum, *, updated_before: datetime) -> List[Video]:
        stmt = (
            select(Video)
            .where(Video.status == status.value, Video.updated_at < updated_before)
            .order_by(Video.updated_at, Video.id)
        )
        return list(self.session.scalars(stmt).all())

    def create(
        self,
        *,
        customer_id: str,
        creator_id: str,
        personalized_script: str,
        status: VideoStatusEnum = VideoStatusEnum.generating,
    ) -> Video:
        video = Video(
            customer_id=customer_id,
            creator_id=creator_id,
            personalized_script=personalized_script,
            status=status.value,
            view_count=0,
        )
        self.session.add(video)
        self.session.commit()
        self.session.refresh(video)
        return video

    def set_provider_job_id(self, video_id: str, provider_job_id: str) -> Optional[Video]:
        self.session.execute(
            update(Video)
            .where(Video.id == video_id)
            .values(provider_job_id=provider_job_id, error_message=None)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return self.get(video_id)

    def transition(
        self,
        video_id: str,
        target: VideoStatusEnum,
        *,
        allowed_from: Iterable[VideoStatusEnum] | None = None,
        **fields: Any,
    ) -> Optional[Video]:
        """Move a video to ``target`` only if its current status allows it.

        The status check and the write are a single conditional UPDATE, so when
        two actors race on the same video exactly one of them gets the row back.
        Returns the refreshed video on success and ``None`` when the current
        status did not permit the transition.
        """
        sources = frozenset(allowed_from) if allowed_from is not None else sources_for(target)
        values: dict[str, Any] = {"status": target.value, **fields}
        if target != VideoStatusEnum.failed:
            values.setdefault("error_message", None)
        result = self.session.execute(
            update(Video)
            .where(Video.id == video_id, Video.status.in_([source.value for source in sources]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        if result.rowcount != 1:
            return None
        return self.get(video_id)

    def mark_failed(self, video_id: str, error_message: str) -> Optional[Video]:
        return self.transition(video_id, VideoStatusEnum.failed, error_message=error_message)

    def update_delivery(self, video_id: str, **fields: Any) -> Optional[Video]:
        """Record delivery metadata without touching the status (operator resends)."""
        self.session.execute(
            update(Video)
            .where(Video.id == video_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return self.get(video_id)
