"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_NUDGE_LINES = [
    "Hi there, I'm just calling to check in. How has your day been?",
    "Hi there, it's your companion calling. What's on your mind right now?",
    "Hello again! Did you do anything nice today?",
]


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Voice activity / turn taking
    vad_energy_threshold: float = Field(
        default=0.015,
        gt=0.0,
        description="RMS energy (normalized to [0, 1]) above which a frame counts as speech.",
    )
    silence_frame_threshold: int = Field(
        default=12,
        ge=1,
        description="Consecutive silent frames after speech that end a caller turn.",
    )
    idle_prompt_delay_ms: int = Field(
        default=3000,
        ge=1,
        description="How long the caller may stay silent before the agent nudges them.",
    )
    nudge_lines: list[str] = Field(default_factory=lambda: list(DEFAULT_NUDGE_LINES))
    fallback_reply: str = Field(default="I'm here with you. Tell me more about that.")

    # Outbound pacing (mu-law @ 8kHz: 160 bytes == 20ms)
    frame_size_bytes: int = Field(default=160, ge=1)
    frame_cadence_ms: int = Field(default=20, ge=1)

    # Media stream websocket server
    media_server_host: str = Field(default="0.0.0.0")
    media_server_port: int = Field(default=8765)
    media_stream_path: str = Field(default="/media")
    keepalive_interval_seconds: float = Field(default=15.0, gt=0.0)
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    public_ws_url: str | None = Field(
        default=None,
        description="Public websocket base URL of the media server. Derived from PUBLIC_BASE_URL if unset.",
    )

    # Speech recognition
    stt_provider: Literal["openai", "faster_whisper"] = Field(default="openai")
    stt_api_key: str | None = Field(default=None)
    stt_model: str = Field(default="whisper-1")
    whisper_model_size: str = Field(default="Systran/faster-whisper-small.en")
    whisper_compute_type: str = Field(default="auto")  # e.g. float16, int8_float16
    whisper_device: str = Field(default="auto")

    # Text to speech
    tts_provider: Literal["azure", "coqui"] = Field(default="azure")
    azure_speech_key: str | None = Field(default=None)
    azure_speech_region: str | None = Field(default=None)
    tts_voice: str = Field(default="en-US-JennyNeural")

    # LLM connectivity
    llm_provider: Literal["openai", "self_hosted_vllm"] = Field(default="openai")
    llm_endpoint: str | None = Field(
        default=None, description="HTTP endpoint for the self-hosted inference server."
    )
    llm_api_key: str | None = Field(default=None)
    llm_model: str = Field(default="gpt-4o-mini")
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=180, ge=1)
    llm_timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("nudge_lines")
    @classmethod
    def nudge_lines_not_empty(cls, value: list[str]) -> list[str]:
        lines = [line.strip() for line in value if line and line.strip()]
        if not lines:
            raise ValueError("At least one nudge line must be configured.")
        return lines

    @property
    def media_stream_url(self) -> str | None:
        """Websocket URL Twilio should stream call audio to."""

        base = self.public_ws_url
        if not base and self.public_base_url:
            base = to_ws_url(self.public_base_url)
        if not base:
            return None
        return base.rstrip("/") + self.media_stream_path


def to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
