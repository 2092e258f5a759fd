"""Configuration management for voicegate.

Every field is read from the environment variable of the same name
(case-insensitive) or from ``.env``.
"""

from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "voicegate"
    debug: bool = False
    environment: str = "development"

    # API
    api_host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])  # JSON list in env

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # ElevenLabs (no key means the provider routes answer "not configured")
    eleven_api_key: str = ""
    xi_api_key: str = ""  # Name used by the official SDKs; fallback only
    eleven_base_url: str = "https://api.elevenlabs.io"
    eleven_model_id: str = "eleven_multilingual_v2"
    eleven_output_format: str = "mp3_44100_128"
    eleven_default_voice_id: str = "EXAVITQu4vr4xnvqsOuV"
    eleven_timeout_seconds: float = 60.0

    # Storage
    data_dir: str = "."
    max_upload_bytes: int = 50 * 1024 * 1024

    @property
    def api_key(self) -> str:
        """ElevenLabs credential, preferring ELEVEN_API_KEY over XI_API_KEY."""
        return self.eleven_api_key or self.xi_api_key

    @property
    def provider_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def public_dir(self) -> Path:
        """Directory served statically; root for public references."""
        return Path(self.data_dir).resolve() / "public"

    @property
    def audio_dir(self) -> Path:
        return self.public_dir / "audios"

    @property
    def uploads_dir(self) -> Path:
        return Path(self.data_dir).resolve() / "uploads"


def get_settings() -> Settings:
    """Load settings from the environment and ``.env``."""
    return Settings()
