"""Configuration loading utilities."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

from relaybot.config.schema import Config

# Keys of the old single-level config file that now live under "telegram".
_LEGACY_TELEGRAM_KEYS = (
    "botToken",
    "chatId",
    "groupId",
    "whitelist",
    "botUsername",
    "forceIPv4",
    "forceIpv4",
)

_ENV_OVERRIDES = {
    "TELEGRAM_BOT_TOKEN": ("telegram", "botToken"),
    "TELEGRAM_CHAT_ID": ("telegram", "chatId"),
    "TELEGRAM_GROUP_ID": ("telegram", "groupId"),
    "TELEGRAM_WHITELIST": ("telegram", "whitelist"),
    "TELEGRAM_BOT_USERNAME": ("telegram", "botUsername"),
    "TELEGRAM_FORCE_IPV4": ("telegram", "forceIpv4"),
    "OPENAI_API_KEY": ("transcription", "openaiApiKey"),
}


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".relaybot" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, then apply environment overrides.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()
    data: dict[str, Any] = {}

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = _migrate_config(json.load(f))
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")
            data = {}

    data = _apply_env_overrides(data, os.environ)
    try:
        return Config.model_validate(data)
    except ValueError as e:
        logger.warning(f"Invalid configuration in {path}: {e}")
        logger.warning("Using default configuration.")
        return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Save configuration to file (camelCase keys)."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(by_alias=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def _migrate_config(data: dict) -> dict:
    """Migrate old config formats to current."""
    telegram = data.setdefault("telegram", {})
    for key in _LEGACY_TELEGRAM_KEYS:
        if key in data:
            value = data.pop(key)
            target = "forceIpv4" if key == "forceIPv4" else key
            telegram.setdefault(target, value)
    # Old files stored the OpenAI key at the top level for Whisper.
    if "openaiApiKey" in data:
        transcription = data.setdefault("transcription", {})
        transcription.setdefault("openaiApiKey", data.pop("openaiApiKey"))
    return data


def _apply_env_overrides(data: dict, environ: Any) -> dict:
    """Environment variables win over file values when set and non-empty."""
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if not value:
            continue
        if key == "forceIpv4":
            value = value.strip().lower() in ("1", "true", "yes", "on")
        data.setdefault(section, {})[key] = value
    return data
