"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Hume EVI credentials
    hume_api_key: str | None = Field(default=None)
    hume_config_id: str | None = Field(
        default=None,
        description="Optional EVI configuration id. Without it the engine's default configuration is used.",
    )

    # Hume EVI endpoints
    hume_evi_url: str = Field(default="wss://api.hume.ai/v0/evi/chat")
    hume_api_base_url: str = Field(
        default="https://api.hume.ai/v0/evi",
        description="REST base URL used for chat history lookups.",
    )
    hume_verbose_transcription: bool = Field(
        default=True,
        description="Ask EVI for interim user transcripts.",
    )

    # Streaming connection tuning
    hume_probe_timeout_seconds: float = Field(default=10.0, gt=0)
    hume_open_timeout_seconds: float = Field(default=10.0, gt=0)
    hume_close_timeout_seconds: float = Field(default=2.0, ge=0)
    hume_ping_interval_seconds: float = Field(
        default=20.0,
        ge=0,
        description="Keepalive ping interval. 0 disables pings.",
    )
    hume_http_timeout_seconds: float = Field(default=30.0, gt=0)

    evi_initialize_on_startup: bool = Field(
        default=True,
        description="If true, runs the EVI connectivity probe when the app starts.",
    )

    # Twilio Media Streams
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    twilio_enable_media_streams: bool = Field(
        default=False,
        description="If true, exposes the Twilio Media Streams endpoints.",
    )

    @field_validator("hume_api_key", "hume_config_id", mode="before")
    @classmethod
    def blank_as_none(cls, value: str | None) -> str | None:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
