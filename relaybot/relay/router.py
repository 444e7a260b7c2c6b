"""Inbound command grammar and session resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal

from loguru import logger

from relaybot.errors import (
    AuthorizationError,
    ForwardingError,
    SessionExpiredError,
    SessionNotFoundError,
)
from relaybot.relay.auth import AuthorizationGuard
from relaybot.session.models import Session
from relaybot.session.store import SessionStore

# "/cmd TOKEN body", optionally "@bot /cmd TOKEN body" or "/cmd@bot TOKEN body" in groups.
_EXPLICIT_RE = re.compile(
    r"^(?:@\w+\s+)?/cmd(?:@\w+)?\s+([A-Z0-9]{8})\s+(.+)$",
    re.IGNORECASE | re.DOTALL,
)
# "TOKEN body", upper-case token only
_BARE_RE = re.compile(r"^([A-Z0-9]{8})\s+(.+)$", re.DOTALL)

CommandForm = Literal["explicit", "bare", "recent"]
Forwarder = Callable[[str, str], Awaitable[Any]]


@dataclass(frozen=True)
class ParsedCommand:
    body: str
    token: str | None = None
    form: CommandForm = "recent"


@dataclass(frozen=True)
class RouteResult:
    """A command that reached its tmux session."""

    command: str
    source_context: str
    session: Session
    token: str | None = None


def parse_command(text: str) -> ParsedCommand:
    """
    Split inbound text into (token, body).

    Anything starting with 8 upper-case alphanumerics and whitespace is read
    as a token reference, even if no such token exists. The /cmd form accepts
    the token in any case.
    """
    text = text.strip()
    match = _EXPLICIT_RE.match(text)
    if match:
        return ParsedCommand(body=match.group(2), token=match.group(1).upper(), form="explicit")
    match = _BARE_RE.match(text)
    if match:
        return ParsedCommand(body=match.group(2), token=match.group(1), form="bare")
    return ParsedCommand(body=text)


class CommandRouter:
    """Authorize, parse, resolve a session and forward the command into it."""

    def __init__(
        self,
        store: SessionStore,
        guard: AuthorizationGuard,
        forwarder: Forwarder,
    ):
        self.store = store
        self.guard = guard
        self.forwarder = forwarder

    async def route(self, text: str, user_id: Any, chat_id: Any) -> RouteResult:
        """Route one inbound text; raises a RelayError subclass on any failure."""
        if not self.guard.is_authorized(user_id, chat_id):
            logger.warning(f"Unauthorized user/chat: {user_id}/{chat_id}")
            raise AuthorizationError(f"User {user_id} in chat {chat_id} is not authorized")

        parsed = parse_command(text)
        return await self.dispatch(parsed, chat_id)

    async def dispatch(self, parsed: ParsedCommand, chat_id: Any = None) -> RouteResult:
        """Resolve and forward an already-parsed (and authorized) command."""
        if parsed.token:
            session = await self.store.find_by_token(parsed.token)
        else:
            session = await self.store.find_most_recent_unexpired()

        if session is None:
            logger.info(f"No session for chat {chat_id} (token {parsed.token or '-'})")
            raise SessionNotFoundError(parsed.token)

        if session.is_expired(self.store.now()):
            logger.info(f"Session {session.id} (token {session.token}) expired, removing")
            await self.store.remove(session.id)
            raise SessionExpiredError(session.id, parsed.token)

        try:
            await self.forwarder(parsed.body, session.source_context)
        except ForwardingError:
            logger.error(
                f"Command injection failed - chat {chat_id}, session {session.id}, "
                f"tmux {session.source_context}"
            )
            raise
        except Exception as e:
            logger.error(
                f"Command injection failed - chat {chat_id}, session {session.id}, "
                f"tmux {session.source_context}: {e}"
            )
            raise ForwardingError(str(e), session.source_context) from e

        if parsed.token:
            logger.info(f"Command injected - chat {chat_id}, token {parsed.token}, command: {parsed.body}")
        else:
            logger.info(f"Command injected (auto-session) - chat {chat_id}, session {session.id}, command: {parsed.body}")
        return RouteResult(
            command=parsed.body,
            source_context=session.source_context,
            session=session,
            token=parsed.token,
        )
