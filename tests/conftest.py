import os
import sys
import tempfile
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

_signing_key = ec.generate_private_key(ec.SECP256R1())
TEST_TOKEN_PRIVATE_KEY = _signing_key.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
).decode("utf-8")
TEST_TOKEN_PUBLIC_KEY = (
    _signing_key.public_key()
    .public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    .decode("utf-8")
)

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_avatar_welcome.db")
os.environ.setdefault("WHOP_API_KEY", "whop_test_key")
os.environ.setdefault("WHOP_APP_ID", "app_test")
os.environ.setdefault("WHOP_TOKEN_PUBLIC_KEY", TEST_TOKEN_PUBLIC_KEY)
os.environ.setdefault("WHOP_WEBHOOK_SECRET", "whop_webhook_secret")
os.environ.setdefault("HEYGEN_API_KEY", "heygen_test_key")
os.environ.setdefault("HEYGEN_WEBHOOK_SECRET", "heygen_webhook_secret")
os.environ.setdefault("FISH_AUDIO_API_KEY", "fish_test_key")
os.environ.setdefault("PUBLIC_BASE_URL", "https://welcome.example.com")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="avatar-welcome-uploads-"))
os.environ.setdefault("POLLER_ENABLED", "false")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import delete  # noqa: E402

from avatar_welcome.auth import AuthContext, get_current_user  # noqa: E402
from avatar_welcome.db.base import SessionLocal, init_db  # noqa: E402
from avatar_welcome.db.deps import get_session  # noqa: E402
from avatar_welcome.db.models import Creator, Customer, Video  # noqa: E402
from avatar_welcome.deps import get_fish_audio_client, get_heygen_client, get_whop_client  # noqa: E402
from avatar_welcome.errors import ExternalServiceError  # noqa: E402
from avatar_welcome.main import app  # noqa: E402
from avatar_welcome.schemas.providers import (  # noqa: E402
    AccessCheck,
    AvatarGroup,
    Experience,
    GroupAvatar,
    Membership,
    PlatformUser,
    SentMessage,
    UploadedAsset,
    VideoJobStatus,
    Voice,
    VoiceModel,
)

ADMIN_USER_ID = "user_admin_1"
COMPANY_ID = "biz_1"
EXPERIENCE_ID = "exp_1"


class FakeHeyGen:
    def __init__(self) -> None:
        self.text_calls: list[dict] = []
        self.audio_calls: list[dict] = []
        self.uploads: list[dict] = []
        self.statuses: dict[str, VideoJobStatus | Exception] = {}
        self.generate_error: Exception | None = None
        self._jobs = 0

    def _next_job(self) -> str:
        self._jobs += 1
        return f"hg_job_{self._jobs}"

    async def upload_asset(self, *, content: bytes, content_type: str) -> UploadedAsset:
        self.uploads.append({"content": content, "content_type": content_type})
        return UploadedAsset(id=f"asset_{len(self.uploads)}", url=f"https://files.heygen.test/asset_{len(self.uploads)}")

    async def generate_video_from_text(self, *, avatar_image_url: str, input_text: str, voice_id: str, title=None) -> str:
        if self.generate_error:
            raise self.generate_error
        self.text_calls.append(
            {"avatar_image_url": avatar_image_url, "input_text": input_text, "voice_id": voice_id, "title": title}
        )
        return self._next_job()

    async def generate_video_from_audio(self, *, avatar_image_url: str, input_audio_url: str, title=None) -> str:
        if self.generate_error:
            raise self.generate_error
        self.audio_calls.append({"avatar_image_url": avatar_image_url, "input_audio_url": input_audio_url, "title": title})
        return self._next_job()

    async def get_video_status(self, video_id: str) -> VideoJobStatus:
        result = self.statuses.get(video_id, VideoJobStatus(status="processing"))
        if isinstance(result, Exception):
            raise result
        return result

    async def list_avatar_groups(self) -> list[AvatarGroup]:
        return [AvatarGroup(id="grp_1", name="Studio")]

    async def list_group_avatars(self, group_id: str) -> list[GroupAvatar]:
        return [GroupAvatar(avatar_id=f"{group_id}_look_1", avatar_name="Look 1")]

    async def list_voices(self) -> list[Voice]:
        return [Voice(voice_id="voice_1", name="Warm", language="English")]


class FakeFishAudio:
    def __init__(self) -> None:
        self.model_state = "trained"
        self.created: list[dict] = []
        self.synthesized: list[dict] = []
        self.synthesize_error: Exception | None = None

    async def create_voice_model(self, *, title, description, file_name, content, content_type) -> VoiceModel:
        self.created.append({"title": title, "file_name": file_name, "content_type": content_type})
        return VoiceModel.model_validate({"_id": "fish_model_1", "state": "training", "title": title})

    async def get_voice_model(self, model_id: str) -> VoiceModel:
        return VoiceModel.model_validate({"_id": model_id, "state": self.model_state})

    async def synthesize_speech(self, *, text: str, reference_id: str, audio_format: str = "mp3") -> bytes:
        if self.synthesize_error:
            raise self.synthesize_error
        self.synthesized.append({"text": text, "reference_id": reference_id})
        return b"ID3-fake-mp3"


class FakeWhop:
    def __init__(self) -> None:
        self.access_levels: dict[tuple[str, str], str] = {}
        self.experiences: dict[str, str] = {EXPERIENCE_ID: COMPANY_ID}
        self.memberships: dict[str, str] = {}
        self.users: dict[str, PlatformUser] = {}
        self.sent: list[dict] = []
        self.send_error: BaseException | None = None
        self.member_count: int | Exception = 0

    async def check_access(self, *, user_id: str, experience_id: str) -> AccessCheck:
        level = self.access_levels.get((user_id, experience_id), "customer")
        return AccessCheck(has_access=level != "no_access", access_level=level)

    async def get_user(self, user_id: str) -> PlatformUser:
        if user_id not in self.users:
            raise ExternalServiceError("User not found", provider="whop", upstream_status=404)
        return self.users[user_id]

    async def get_experience(self, experience_id: str) -> Experience:
        if experience_id not in self.experiences:
            raise ExternalServiceError("Experience not found", provider="whop", upstream_status=404)
        return Experience(id=experience_id, company_id=self.experiences[experience_id])

    async def get_membership(self, membership_id: str) -> Membership:
        if membership_id not in self.memberships:
            raise ExternalServiceError("Membership not found", provider="whop", upstream_status=404)
        return Membership(id=membership_id, company_id=self.memberships[membership_id])

    async def send_direct_message(self, *, channel_id: str, content: str) -> SentMessage:
        if self.send_error:
            raise self.send_error
        self.sent.append({"channel_id": channel_id, "content": content})
        return SentMessage(id=f"msg_{len(self.sent)}")

    async def count_company_members(self, company_id: str) -> int:
        if isinstance(self.member_count, Exception):
            raise self.member_count
        return self.member_count


def _clear_tables(session) -> None:
    session.execute(delete(Video))
    session.execute(delete(Customer))
    session.execute(delete(Creator))
    session.commit()


@pytest.fixture()
def db_session():
    init_db()
    session = SessionLocal()
    _clear_tables(session)
    try:
        yield session
    finally:
        session.rollback()
        _clear_tables(session)
        session.close()


@pytest.fixture()
def fake_heygen() -> FakeHeyGen:
    return FakeHeyGen()


@pytest.fixture()
def fake_fish_audio() -> FakeFishAudio:
    return FakeFishAudio()


@pytest.fixture()
def fake_whop() -> FakeWhop:
    return FakeWhop()


@pytest.fixture()
def auth_context() -> AuthContext:
    return AuthContext(user_id=ADMIN_USER_ID)


@pytest.fixture()
def override_dependencies(db_session, auth_context, fake_heygen, fake_fish_audio, fake_whop):
    def get_session_override():
        yield db_session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_current_user] = lambda: auth_context
    app.dependency_overrides[get_heygen_client] = lambda: fake_heygen
    app.dependency_overrides[get_fish_audio_client] = lambda: fake_fish_audio
    app.dependency_overrides[get_whop_client] = lambda: fake_whop
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def api_client(override_dependencies):
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def make_creator(db_session):
    def _make(
        *,
        platform_user_id: str = ADMIN_USER_ID,
        platform_company_id: str = COMPANY_ID,
        complete: bool = True,
        message_template: str = "Hi {name}, welcome to {plan}!",
        voice_clone_model_id: str | None = "fish_model_1",
        audio_sample_url: str | None = None,
    ) -> Creator:
        creator = Creator(
            platform_user_id=platform_user_id,
            platform_company_id=platform_company_id,
            message_template=message_template,
            avatar_photo_url="https://welcome.example.com/api/files/avatars/avatar.png" if complete else None,
            voice_clone_model_id=voice_clone_model_id if complete else None,
            audio_sample_url=audio_sample_url,
            use_audio_for_generation=audio_sample_url is not None,
        )
        creator.is_setup_complete = creator.compute_setup_complete()
        db_session.add(creator)
        db_session.commit()
        db_session.refresh(creator)
        return creator

    return _make


@pytest.fixture()
def make_customer(db_session):
    def _make(creator: Creator, *, platform_user_id: str = "user_member_1", name: str = "Alice") -> Customer:
        customer = Customer(
            creator_id=creator.id,
            platform_user_id=platform_user_id,
            platform_member_id=f"mem_{platform_user_id}",
            platform_company_id=creator.platform_company_id,
            name=name,
            plan_name="Gold",
        )
        db_session.add(customer)
        db_session.commit()
        db_session.refresh(customer)
        return customer

    return _make


@pytest.fixture()
def make_video(db_session):
    def _make(customer: Customer, *, status: str = "generating", provider_job_id: str | None = "hg_job_x", **fields) -> Video:
        video = Video(
            customer_id=customer.id,
            creator_id=customer.creator_id,
            personalized_script="Hi Alice",
            status=status,
            provider_job_id=provider_job_id,
            **fields,
        )
        db_session.add(video)
        db_session.commit()
        db_session.refresh(video)
        return video

    return _make
