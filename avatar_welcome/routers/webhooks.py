from __future__ import annotations

import logging
from typing import Any

import orjson
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from avatar_welcome.clients import HeyGenClient, WhopClient
from avatar_welcome.config import settings
from avatar_welcome.db.deps import get_session
from avatar_welcome.db.repositories import VideosRepository
from avatar_welcome.deps import get_heygen_client, get_orchestrator, get_whop_client
from avatar_welcome.errors import AuthError
from avatar_welcome.security import verify_heygen_signature, verify_whop_signature
from avatar_welcome.services.intake import MemberIntakeService
from avatar_welcome.services.orchestrator import WelcomeVideoOrchestrator
from avatar_welcome.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["webhooks"])

WHOP_SIGNATURE_HEADER = "x-whop-signature"
HEYGEN_SIGNATURE_HEADER = "signature"
HEYGEN_SUCCESS_EVENT = "avatar_video.success"
HEYGEN_FAILURE_EVENT = "avatar_video.fail"


def _load_json_object(body: bytes) -> dict[str, Any] | None:
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


@router.post("/whop/webhook")
async def whop_webhook(
    request: Request,
    session: Session = Depends(get_session),
    whop: WhopClient = Depends(get_whop_client),
    orchestrator: WelcomeVideoOrchestrator = Depends(get_orchestrator),
) -> dict:
    body = await request.body()
    if settings.WHOP_WEBHOOK_SECRET:
        if not verify_whop_signature(
            body=body,
            header=request.headers.get(WHOP_SIGNATURE_HEADER),
            secret=settings.WHOP_WEBHOOK_SECRET,
        ):
            logger.warning("Rejected platform webhook with invalid signature")
            raise AuthError("Invalid webhook signature")
    else:
        logger.warning("WHOP_WEBHOOK_SECRET not configured; skipping signature verification")

    payload = _load_json_object(body)
    if payload is None:
        logger.warning("Platform webhook body is not a JSON object")
        return {"success": True, "status": "invalid_payload"}

    service = MemberIntakeService(session, whop=whop, orchestrator=orchestrator)
    try:
        outcome = await service.handle_event(payload)
    except Exception:
        # Errors are acknowledged so the platform does not retry into duplicates.
        logger.exception("Membership webhook processing failed", extra={"action": payload.get("action")})
        return {"success": True, "status": "error"}
    logger.info(
        "Membership webhook processed",
        extra={"action": payload.get("action"), "outcome": outcome.status, "video_id": outcome.video_id},
    )
    return {"success": True, "status": outcome.status}


@router.get("/whop/webhook/test")
def whop_webhook_test() -> dict:
    return {
        "status": "Webhook endpoint is accessible",
        "webhookUrl": "/api/whop/webhook",
        "environment": {
            "hasApiKey": bool(settings.WHOP_API_KEY),
            "hasWebhookSecret": bool(settings.WHOP_WEBHOOK_SECRET),
            "hasAppId": bool(settings.WHOP_APP_ID),
            "hasTokenPublicKey": bool(settings.WHOP_TOKEN_PUBLIC_KEY),
            "hasHeygenWebhookSecret": bool(settings.HEYGEN_WEBHOOK_SECRET),
        },
    }


@router.post("/heygen/webhook")
async def heygen_webhook(
    request: Request,
    session: Session = Depends(get_session),
    heygen: HeyGenClient = Depends(get_heygen_client),
    whop: WhopClient = Depends(get_whop_client),
) -> dict:
    body = await request.body()
    if settings.HEYGEN_WEBHOOK_SECRET:
        if not verify_heygen_signature(
            body=body,
            supplied=request.headers.get(HEYGEN_SIGNATURE_HEADER),
            secret=settings.HEYGEN_WEBHOOK_SECRET,
        ):
            logger.warning("Rejected video provider webhook with invalid signature")
            raise AuthError("Invalid signature")
    else:
        logger.warning("HEYGEN_WEBHOOK_SECRET not configured; skipping signature verification")

    payload = _load_json_object(body) or {}
    event_type = payload.get("event_type")
    event_data = payload.get("event_data")
    if event_type not in (HEYGEN_SUCCESS_EVENT, HEYGEN_FAILURE_EVENT) or not isinstance(event_data, dict):
        logger.info("Ignoring video provider event", extra={"event_type": event_type})
        return {"success": True}

    job_id = event_data.get("video_id")
    video = VideosRepository(session).get_by_provider_job_id(job_id) if isinstance(job_id, str) else None
    if video is None:
        logger.info("Video provider event for unknown job", extra={"provider_job_id": job_id})
        return {"success": True}

    service = ReconciliationService(session, heygen=heygen, whop=whop)
    try:
        if event_type == HEYGEN_SUCCESS_EVENT and event_data.get("url"):
            await service.complete_video(
                video,
                video_url=event_data["url"],
                thumbnail_url=event_data.get("gif_download_url") or event_data.get("thumbnail_url"),
            )
        elif event_type == HEYGEN_FAILURE_EVENT:
            service.fail_generation(video, event_data.get("msg") or "Video provider reported generation failure")
    except Exception:
        logger.exception("Video provider webhook processing failed", extra={"video_id": video.id})
    return {"success": True}
