"""Error taxonomy shared by the relay components."""

from __future__ import annotations

from typing import Literal

TransportErrorKind = Literal["transient", "endpoint_invalid"]


class RelayError(Exception):
    """Base error; ``user_message`` is what the chat user gets to see."""

    user_message = "❌ Something went wrong."

    def __init__(self, message: str = "", user_message: str | None = None):
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class ConfigurationError(RelayError):
    user_message = "❌ Telegram channel is not properly configured."


class AuthorizationError(RelayError):
    user_message = "⚠️ You are not authorized to use this bot."


class SessionNotFoundError(RelayError):
    """No session resolved for an inbound command."""

    INVALID_TOKEN = "❌ Invalid or expired token. Please wait for a new task notification."
    NO_ACTIVE_SESSION = "❌ No active session found. Please wait for a task notification first."

    def __init__(self, token: str | None = None):
        self.token = token
        if token:
            super().__init__(f"No session for token {token}", self.INVALID_TOKEN)
        else:
            super().__init__("No active session", self.NO_ACTIVE_SESSION)


class SessionExpiredError(RelayError):
    def __init__(self, session_id: str, token: str | None = None):
        self.session_id = session_id
        self.token = token
        if token:
            user_message = "❌ Token has expired. Please wait for a new task notification."
        else:
            user_message = "❌ Your session has expired. Please wait for a new task notification."
        super().__init__(f"Session {session_id} expired", user_message)


class TransportError(RelayError):
    """Delivery failure reported by the messaging transport."""

    def __init__(
        self,
        description: str,
        kind: TransportErrorKind = "transient",
        status: int | None = None,
        endpoint: str | None = None,
    ):
        self.description = description
        self.kind = kind
        self.status = status
        self.endpoint = endpoint
        super().__init__(f"[{kind}] {status or '-'} {description}")

    @property
    def endpoint_invalid(self) -> bool:
        return self.kind == "endpoint_invalid"


class ForwardingError(RelayError):
    """The execution session could not receive the command."""

    def __init__(self, message: str, source_context: str | None = None):
        self.source_context = source_context
        super().__init__(message, f"❌ Command execution failed: {message}")


class StorageError(RelayError):
    user_message = "❌ Session storage is unavailable."


class TranscriptionError(RelayError):
    """Every transcription provider failed; ``reasons`` lists why, in order."""

    def __init__(self, reasons: list[str]):
        self.reasons = reasons
        detail = "; ".join(reasons) if reasons else "no transcription provider configured"
        super().__init__(
            detail,
            "❌ Could not transcribe the audio. Please try again or send a text message.",
        )
