from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load env values for components that read os.environ directly.
_project_root = Path(__file__).resolve().parents[1]
load_dotenv(_project_root / ".env", override=False)


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./avatar_welcome.db"

    WHOP_API_KEY: str
    WHOP_APP_ID: str
    WHOP_API_BASE_URL: AnyHttpUrl = "https://api.whop.com"
    WHOP_TOKEN_PUBLIC_KEY: str | None = None
    WHOP_TOKEN_ISSUER: str = "urn:whopcom:exp-proxy"
    WHOP_WEBHOOK_SECRET: str | None = None

    HEYGEN_API_KEY: str
    HEYGEN_API_BASE_URL: AnyHttpUrl = "https://api.heygen.com"
    HEYGEN_UPLOAD_BASE_URL: AnyHttpUrl = "https://upload.heygen.com"
    HEYGEN_WEBHOOK_SECRET: str | None = None
    HEYGEN_TEST_MODE: bool = True

    FISH_AUDIO_API_KEY: str | None = None
    FISH_AUDIO_API_BASE_URL: AnyHttpUrl = "https://api.fish.audio"
    FISH_AUDIO_TTS_MODEL: str = "speech-1.5"

    DEFAULT_TTS_VOICE_ID: str = "1bd001e7e50f421d891986aad5158bc8"
    DEFAULT_MESSAGE_TEMPLATE: str = "Hi {name}! Welcome to our community. We're excited to have you here!"

    PUBLIC_BASE_URL: AnyHttpUrl = "http://localhost:5000"
    UPLOAD_DIR: str = "uploads/avatars"
    MAX_AVATAR_BYTES: int = 10 * 1024 * 1024
    MAX_AUDIO_BYTES: int = 20 * 1024 * 1024

    POLL_INTERVAL_SECONDS: float = 30.0
    POLLER_ENABLED: bool = True
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    DELIVERY_LEASE_SECONDS: float = 300.0

    LOG_LEVEL: str = "INFO"
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173"

    @field_validator("POLL_INTERVAL_SECONDS", "DELIVERY_LEASE_SECONDS")
    @classmethod
    def validate_positive_seconds(cls, value: float, info: ValidationInfo) -> float:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return value

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def public_base_url(self) -> str:
        return str(self.PUBLIC_BASE_URL).rstrip("/")

    @property
    def upload_dir(self) -> Path:
        return Path(self.UPLOAD_DIR).resolve()

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
