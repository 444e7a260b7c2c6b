"""Notification and session records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

SESSION_TTL_SECONDS = 24 * 60 * 60
DEFAULT_SOURCE_CONTEXT = "default"

NotificationType = Literal["completed", "waiting"]


@dataclass
class Notification:
    """Event raised by the terminal assistant that the user should hear about."""

    type: NotificationType
    project: str
    message: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def source_context(self) -> str:
        return self.metadata.get("tmux_session") or DEFAULT_SOURCE_CONTEXT

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "project": self.project,
            "message": self.message,
            "metadata": dict(self.metadata),
        }


def _iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Session:
    """A token bound to a tmux session and an expiry deadline."""

    id: str
    token: str
    created_at: int
    expires_at: int
    source_context: str = DEFAULT_SOURCE_CONTEXT
    project: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now

    def to_record(self) -> dict[str, Any]:
        """Serialize to the on-disk record shape."""
        return {
            "id": self.id,
            "token": self.token,
            "type": "telegram",
            "created": _iso(self.created_at),
            "expires": _iso(self.expires_at),
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
            "tmuxSession": self.source_context,
            "project": self.project,
            "notification": self.payload,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "Session":
        """Parse an on-disk record; raises KeyError/TypeError/ValueError when malformed."""
        return cls(
            id=str(data["id"]),
            token=str(data["token"]),
            created_at=int(data["createdAt"]),
            expires_at=int(data["expiresAt"]),
            source_context=data.get("tmuxSession") or DEFAULT_SOURCE_CONTEXT,
            project=data.get("project") or "",
            payload=data.get("notification") or {},
        )
