import asyncio
from datetime import timedelta

import pytest

from avatar_welcome.config import settings
from avatar_welcome.db.base import SessionLocal
from avatar_welcome.db.models import Customer, utcnow
from avatar_welcome.db.repositories import VideosRepository
from avatar_welcome.schemas.providers import VideoJobError, VideoJobStatus
from avatar_welcome.services.delivery import INTERRUPTED_DELIVERY_REASON
from avatar_welcome.services.reconciliation import (
    MISSING_RECORDS_MESSAGE,
    NO_JOB_ID_MESSAGE,
    ReconciliationPoller,
    ReconciliationService,
)


@pytest.fixture()
def service(db_session, fake_heygen, fake_whop):
    return ReconciliationService(db_session, heygen=fake_heygen, whop=fake_whop)


def test_sweep_completes_and_delivers(db_session, service, fake_heygen, fake_whop, make_creator, make_customer, make_video):
    customer = make_customer(make_creator())
    video = make_video(customer, provider_job_id="hg_1")
    fake_heygen.statuses["hg_1"] = VideoJobStatus(
        status="completed", video_url="https://v.example.com/1.mp4", thumbnail_url="https://v.example.com/1.jpg"
    )

    summary = asyncio.run(service.sweep())

    stored = VideosRepository(db_session).get(video.id)
    assert stored.status == "sent"
    assert stored.video_url == "https://v.example.com/1.mp4"
    assert stored.thumbnail_url == "https://v.example.com/1.jpg"
    assert stored.completed_at is not None
    assert summary.delivered == 1
    assert len(fake_whop.sent) == 1


def test_sweep_records_provider_failure(db_session, service, fake_heygen, make_creator, make_customer, make_video):
    customer = make_customer(make_creator())
    video = make_video(customer, provider_job_id="hg_1")
    fake_heygen.statuses["hg_1"] = VideoJobStatus(status="failed", error=VideoJobError(message="bad photo"))

    asyncio.run(service.sweep())

    stored = VideosRepository(db_session).get(video.id)
    assert stored.status == "failed"
    assert stored.error_message == "bad photo"


def test_sweep_fails_video_without_job_id(db_session, service, make_creator, make_customer, make_video):
    customer = make_customer(make_creator())
    video = make_video(customer, provider_job_id=None)

    asyncio.run(service.sweep())

    stored = VideosRepository(db_session).get(video.id)
    assert stored.status == "failed"
    assert stored.error_message == NO_JOB_ID_MESSAGE


def test_sweep_leaves_processing_videos_alone(db_session, service, make_creator, make_customer, make_video):
    customer = make_customer(make_creator())
    video = make_video(customer, provider_job_id="hg_1")

    asyncio.run(service.sweep())

    assert VideosRepository(db_session).get(video.id).status == "generating"


def test_one_failing_item_does_not_stop_the_sweep(db_session, service, fake_heygen, make_creator, make_customer, make_video):
    creator = make_creator()
    first = make_video(make_customer(creator, platform_user_id="u1"), provider_job_id="hg_boom")
    second = make_video(make_customer(creator, platform_user_id="u2"), provider_job_id="hg_ok")
    fake_heygen.statuses["hg_boom"] = RuntimeError("unexpected")
    fake_heygen.statuses["hg_ok"] = VideoJobStatus(status="completed", video_url="https://v.example.com/ok.mp4")

    summary = asyncio.run(service.sweep())

    repo = VideosRepository(db_session)
    assert repo.get(first.id).status == "generating"
    assert repo.get(second.id).status == "sent"
    assert summary.errors == 1


def test_sweep_resumes_completed_but_undelivered(db_session, service, fake_whop, make_creator, make_customer, make_video):
    customer = make_customer(make_creator())
    video = make_video(customer, status="completed", video_url="https://v.example.com/1.mp4")

    asyncio.run(service.sweep())

    assert VideosRepository(db_session).get(video.id).status == "sent"
    assert len(fake_whop.sent) == 1


def test_completion_is_applied_once(db_session, service, fake_whop, make_creator, make_customer, make_video):
    customer = make_customer(make_creator())
    video = make_video(customer, provider_job_id="hg_1")

    asyncio.run(service.complete_video(video, video_url="https://v.example.com/1.mp4"))
    asyncio.run(service.complete_video(video, video_url="https://v.example.com/other.mp4"))

    stored = VideosRepository(db_session).get(video.id)
    assert stored.video_url == "https://v.example.com/1.mp4"
    assert len(fake_whop.sent) == 1


def test_missing_customer_marks_failed(db_session, service, make_creator, make_customer, make_video):
    customer = make_customer(make_creator())
    video = make_video(customer, status="completed", video_url="https://v.example.com/1.mp4")
    db_session.expunge(video)
    video.customer_id = "missing"

    result = asyncio.run(service.deliver_completed(video))

    assert result.status == "failed"
    assert result.error_message == MISSING_RECORDS_MESSAGE


def test_late_failure_does_not_override_completion(db_session, service, make_creator, make_customer, make_video):
    customer = make_customer(make_creator())
    video = make_video(customer, status="sent", video_url="https://v.example.com/1.mp4")

    result = service.fail_generation(video, "late failure")

    assert result.status == "sent"


def test_poller_runs_a_sweep_immediately_and_stops(db_session, fake_heygen, fake_whop, make_creator, make_customer, make_video):
    customer = make_customer(make_creator())
    video = make_video(customer, provider_job_id="hg_1")
    fake_heygen.statuses["hg_1"] = VideoJobStatus(status="completed", video_url="https://v.example.com/1.mp4")
    poller = ReconciliationPoller(
        interval_seconds=60,
        session_factory=SessionLocal,
        heygen_provider=lambda: fake_heygen,
        whop_provider=lambda: fake_whop,
    )

    async def run() -> None:
        poller.start()
        assert poller.running
        for _ in range(50):
            if fake_whop.sent:
                break
            await asyncio.sleep(0.01)
        await poller.stop()

    asyncio.run(run())

    assert poller.running is False
    assert VideosRepository(db_session).get(video.id).status == "sent"


@pytest.mark.parametrize("error", [RuntimeError("boom"), asyncio.CancelledError()])
def test_interrupted_delivery_never_strands_the_video(db_session, service, fake_whop, make_creator, make_customer, make_video, error):
    customer = make_customer(make_creator())
    video = make_video(customer, status="completed", video_url="https://v.example.com/1.mp4")
    fake_whop.send_error = error

    if isinstance(error, asyncio.CancelledError):
        with pytest.raises(asyncio.CancelledError):
            asyncio.run(service.sweep())
    else:
        assert asyncio.run(service.sweep()).errors == 1
    fake_whop.send_error = None
    asyncio.run(service.sweep())

    stored = VideosRepository(db_session).get(video.id)
    assert stored.status == "failed"
    assert stored.error_message.startswith("DM delivery failed: ")
    assert fake_whop.sent == []


def test_sweep_expires_stale_delivery_claims(db_session, service, fake_whop, make_creator, make_customer, make_video):
    creator = make_creator()
    stale = make_video(
        make_customer(creator, platform_user_id="u1"),
        status="sending",
        video_url="https://v.example.com/1.mp4",
        updated_at=utcnow() - timedelta(seconds=settings.DELIVERY_LEASE_SECONDS + 60),
    )
    fresh = make_video(
        make_customer(creator, platform_user_id="u2"),
        status="sending",
        video_url="https://v.example.com/2.mp4",
    )

    summary = asyncio.run(service.sweep())

    repo = VideosRepository(db_session)
    expired = repo.get(stale.id)
    assert expired.status == "failed"
    assert expired.error_message == f"DM delivery failed: {INTERRUPTED_DELIVERY_REASON}"
    assert repo.get(fresh.id).status == "sending"
    assert summary.failed == 1
    assert fake_whop.sent == []


def test_database_error_on_one_item_does_not_poison_the_sweep(
    db_session, service, monkeypatch, fake_heygen, make_creator, make_customer, make_video
):
    creator = make_creator()
    creator_id = creator.id
    first = make_video(make_customer(creator, platform_user_id="u1"), provider_job_id="hg_broken")
    second = make_video(make_customer(creator, platform_user_id="u2"), provider_job_id="hg_ok")
    fake_heygen.statuses["hg_ok"] = VideoJobStatus(status="completed", video_url="https://v.example.com/ok.mp4")
    reconcile_video = service.reconcile_video

    async def reconcile_with_bad_write(video):
        if video.provider_job_id == "hg_broken":
            db_session.add(
                Customer(creator_id=creator_id, platform_user_id="u1", platform_member_id="mem_dup", name="Duplicate")
            )
            db_session.flush()
        return await reconcile_video(video)

    monkeypatch.setattr(service, "reconcile_video", reconcile_with_bad_write)

    summary = asyncio.run(service.sweep())

    repo = VideosRepository(db_session)
    assert repo.get(first.id).status == "generating"
    assert repo.get(second.id).status == "sent"
    assert summary.errors == 1
