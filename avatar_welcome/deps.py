from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from avatar_welcome.clients import FishAudioClient, HeyGenClient, WhopClient
from avatar_welcome.db.deps import get_session
from avatar_welcome.services.orchestrator import WelcomeVideoOrchestrator

heygen_client = HeyGenClient()
fish_audio_client = FishAudioClient()
whop_client = WhopClient()


def get_heygen_client() -> HeyGenClient:
    return heygen_client


def get_fish_audio_client() -> FishAudioClient:
    return fish_audio_client


def get_whop_client() -> WhopClient:
    return whop_client


def get_orchestrator(
    session: Session = Depends(get_session),
    heygen: HeyGenClient = Depends(get_heygen_client),
    fish_audio: FishAudioClient = Depends(get_fish_audio_client),
) -> WelcomeVideoOrchestrator:
    return WelcomeVideoOrchestrator(session, heygen=heygen, fish_audio=fish_audio)
