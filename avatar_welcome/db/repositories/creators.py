from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from avatar_welcome.config import settings
from avatar_welcome.db.models import Creator


class CreatorsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, creator_id: str) -> Optional[Creator]:
        return self.session.get(Creator, creator_id)

    def get_by_platform_user_id(self, platform_user_id: str) -> Optional[Creator]:
        stmt = select(Creator).where(Creator.platform_user_id == platform_user_id).order_by(Creator.created_at)
        return self.session.scalars(stmt).first()

    def get_by_company_id(self, platform_company_id: str) -> Optional[Creator]:
        stmt = select(Creator).where(Creator.platform_company_id == platform_company_id)
        return self.session.scalars(stmt).first()

    def list(self) -> List[Creator]:
        return list(self.session.scalars(select(Creator).order_by(Creator.created_at)).all())

    def create(self, *, platform_user_id: str, platform_company_id: str) -> Creator:
        creator = Creator(
            platform_user_id=platform_user_id,
            platform_company_id=platform_company_id,
            message_template=settings.DEFAULT_MESSAGE_TEMPLATE,
            tts_voice_id=settings.DEFAULT_TTS_VOICE_ID,
            use_audio_for_generation=False,
            is_setup_complete=False,
        )
        self.session.add(creator)
        self.session.commit()
        self.session.refresh(creator)
        return creator

    def update_settings(self, creator: Creator, *, message_template: str | None) -> Creator:
        if message_template is not None:
            creator.message_template = message_template
        return self._save_with_setup_state(creator)

    def set_avatar(self, creator: Creator, *, avatar_photo_url: str) -> Creator:
        creator.avatar_photo_url = avatar_photo_url
        return self._save_with_setup_state(creator)

    def set_voice_sample(
        self,
        creator: Creator,
        *,
        audio_sample_url: str | None,
        voice_clone_model_id: str,
    ) -> Creator:
        creator.audio_sample_url = audio_sample_url
        creator.voice_clone_model_id = voice_clone_model_id
        creator.use_audio_for_generation = audio_sample_url is not None
        return self._save_with_setup_state(creator)

    def reset_onboarding(self, creator: Creator) -> Creator:
        creator.avatar_photo_url = None
        creator.audio_sample_url = None
        creator.voice_clone_model_id = None
        creator.use_audio_for_generation = False
        creator.tts_voice_id = settings.DEFAULT_TTS_VOICE_ID
        creator.message_template = settings.DEFAULT_MESSAGE_TEMPLATE
        creator.is_setup_complete = False
        self.session.add(creator)
        self.session.commit()
        self.session.refresh(creator)
        return creator

    def _save_with_setup_state(self, creator: Creator) -> Creator:
        creator.is_setup_complete = creator.compute_setup_complete()
        self.session.add(creator)
        self.session.commit()
        self.session.refresh(creator)
        return creator
