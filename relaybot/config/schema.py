"""Configuration schema using Pydantic."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Base(BaseModel):
    """Base model accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TelegramConfig(Base):
    """Telegram bot configuration."""

    bot_token: str = ""
    chat_id: str = ""  # Direct chat the bot talks to
    group_id: str = ""  # Group chat, preferred over chat_id for notifications
    whitelist: list[str] = Field(default_factory=list)  # Allowed user/chat ids
    bot_username: str = ""  # Used when get_me is unavailable
    force_ipv4: bool = False
    proxy: str | None = None
    webhook_url: str = ""  # Empty = long polling
    webhook_listen: str = "0.0.0.0"
    webhook_port: int = 3000

    @field_validator("chat_id", "group_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("whitelist", mode="before")
    @classmethod
    def _coerce_whitelist(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, (str, int)):
            value = str(value).split(",")
        return [str(v).strip() for v in value if str(v).strip()]

    @property
    def fallback_chat_id(self) -> str:
        """Chat allowed to issue commands when no whitelist is configured."""
        return self.chat_id or self.group_id


class TranscriptionConfig(Base):
    """Voice message transcription."""

    openai_api_key: str = ""
    api_base: str = "https://api.openai.com/v1"
    model: str = "whisper-1"
    local_enabled: bool = True  # Fall back to the `whisper` CLI
    local_model: str = "base"
    timeout: float = 60.0


class TmuxConfig(Base):
    """tmux collaborator settings."""

    timeout: float = 10.0


class SessionsConfig(Base):
    """Session record storage."""

    dir: str = "~/.relaybot/sessions"


class Config(Base):
    """Root configuration for relaybot."""

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    tmux: TmuxConfig = Field(default_factory=TmuxConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)

    @property
    def sessions_path(self) -> Path:
        """Get expanded sessions directory path."""
        return Path(self.sessions.dir).expanduser()
