"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from prompts.loader import load_prompt


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Realtime translation endpoint
    translation_ws_url: str = Field(
        default="wss://api.openai.com/v1/realtime",
        description="WebSocket URL of the realtime speech translation endpoint.",
    )
    translation_api_key: str | None = Field(default=None)
    translation_open_timeout_seconds: float = Field(default=10.0, gt=0.0)

    # Prompts. "[CALLER_LANGUAGE]" is replaced with the caller's language.
    ai_prompt_caller: str | None = Field(
        default=None,
        description="Instructions for the session translating the caller. Defaults to prompts/caller.txt.",
    )
    ai_prompt_agent: str | None = Field(
        default=None,
        description="Instructions for the session translating the agent. Defaults to prompts/agent.txt.",
    )
    caller_language: str = Field(
        default="Spanish",
        description="Caller's spoken language when the stream does not provide one.",
    )

    # Agent audio heard within this window of the first agent frame is not
    # translated (ringback, beeps when the agent leg connects).
    agent_audio_guard_ms: int = Field(default=1000, ge=0)

    # Twilio (Voice)
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )

    def caller_prompt_template(self) -> str:
        return self.ai_prompt_caller or load_prompt("caller.txt")

    def agent_prompt_template(self) -> str:
        return self.ai_prompt_agent or load_prompt("agent.txt")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
