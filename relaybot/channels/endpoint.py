"""Outbound destination selection with failover across chat ids."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Literal

from loguru import logger

from relaybot.errors import ConfigurationError, TransportError, TransportErrorKind

# Telegram descriptions meaning the chat itself can't be delivered to.
INVALID_CHAT_ERRORS = (
    "chat not found",
    "bot was blocked by the user",
    "user is deactivated",
    "bot was kicked from the group chat",
    "bot is not a member of the group chat",
    "chat_id is empty",
    "chat_id_invalid",
)
INVALID_CHAT_STATUSES = {400, 403}

Provenance = Literal["active", "group", "chat", "whitelist", "explicit"]
Deliver = Callable[..., Awaitable[Any]]


def classify_failure(status: int | None, description: str | None) -> TransportErrorKind:
    """Decide whether a delivery failure is about the endpoint or transient."""
    if status in INVALID_CHAT_STATUSES:
        return "endpoint_invalid"
    text = (description or "").lower()
    if any(marker in text for marker in INVALID_CHAT_ERRORS):
        return "endpoint_invalid"
    return "transient"


@dataclass(frozen=True)
class EndpointCandidate:
    endpoint: str
    provenance: Provenance


@dataclass
class DeliveryResult:
    ok: bool
    endpoint: str | None = None
    error: TransportError | None = None
    attempted: list[str] = field(default_factory=list)
    failed_over: bool = False


class ChatEndpointResolver:
    """
    Sends messages to the current destination chat and fails over on dead chats.

    Destination order is the last endpoint that worked, then the group id,
    then the direct chat id. When the transport says the endpoint is invalid
    (400/403 or a known description) the whitelist, chat id and group id are
    tried in that order; the first that accepts the message becomes the
    active endpoint for every later send. Transient failures never fail over.

    ``active_endpoint`` is plain instance state; all sends run on one event
    loop so it needs no lock.
    """

    def __init__(
        self,
        deliver: Deliver,
        chat_id: str = "",
        group_id: str = "",
        whitelist: Iterable[Any] = (),
    ):
        self._deliver = deliver
        self.chat_id = str(chat_id or "")
        self.group_id = str(group_id or "")
        self.whitelist = [str(v) for v in whitelist]
        self.active_endpoint: str | None = None

    def primary(self) -> EndpointCandidate | None:
        if self.active_endpoint:
            return EndpointCandidate(self.active_endpoint, "active")
        if self.group_id:
            return EndpointCandidate(self.group_id, "group")
        if self.chat_id:
            return EndpointCandidate(self.chat_id, "chat")
        return None

    def candidates(self, failed_endpoint: str) -> list[EndpointCandidate]:
        """Alternates to try after ``failed_endpoint``, de-duplicated in first-seen order."""
        failed = str(failed_endpoint)
        seen: set[str] = {failed}
        result: list[EndpointCandidate] = []
        ordered: list[tuple[str, Provenance]] = [(wid, "whitelist") for wid in self.whitelist]
        ordered.append((self.chat_id, "chat"))
        ordered.append((self.group_id, "group"))
        for endpoint, provenance in ordered:
            if not endpoint or endpoint in seen:
                continue
            seen.add(endpoint)
            result.append(EndpointCandidate(endpoint, provenance))
        return result

    async def _attempt(self, endpoint: str, content: str, options: dict[str, Any]) -> TransportError | None:
        try:
            await self._deliver(endpoint, content, **options)
            return None
        except TransportError as e:
            if e.endpoint is None:
                e.endpoint = endpoint
            return e

    async def send(
        self,
        content: str,
        *,
        endpoint: str | None = None,
        **options: Any,
    ) -> DeliveryResult:
        """
        Deliver ``content``; ``options`` are passed through to the transport.

        With an explicit ``endpoint`` only that chat is attempted and the
        active endpoint is left alone.
        """
        if endpoint is not None:
            error = await self._attempt(str(endpoint), content, options)
            if error:
                logger.error(f"Failed to send message to {endpoint}: {error}")
                return DeliveryResult(ok=False, endpoint=str(endpoint), error=error, attempted=[str(endpoint)])
            return DeliveryResult(ok=True, endpoint=str(endpoint), attempted=[str(endpoint)])

        first = self.primary()
        if first is None:
            raise ConfigurationError("Telegram chat id or group id must be configured")

        attempted = [first.endpoint]
        error = await self._attempt(first.endpoint, content, options)
        if error is None:
            return DeliveryResult(ok=True, endpoint=first.endpoint, attempted=attempted)

        if not error.endpoint_invalid:
            logger.error(f"Failed to send Telegram message to {first.endpoint}: {error}")
            return DeliveryResult(ok=False, endpoint=first.endpoint, error=error, attempted=attempted)

        logger.warning(f"Chat ID {first.endpoint} is invalid ({error.description}), attempting recovery...")
        alternates = self.candidates(first.endpoint)
        if not alternates:
            logger.warning("No alternative chat IDs available for recovery")

        last_error = error
        for candidate in alternates:
            logger.debug(f"Trying alternative chat ID: {candidate.endpoint} ({candidate.provenance})")
            attempted.append(candidate.endpoint)
            candidate_error = await self._attempt(candidate.endpoint, content, options)
            if candidate_error is None:
                self.active_endpoint = candidate.endpoint
                logger.info(f"Chat ID recovered: {first.endpoint} -> {candidate.endpoint}")
                return DeliveryResult(
                    ok=True,
                    endpoint=candidate.endpoint,
                    attempted=attempted,
                    failed_over=True,
                )
            logger.debug(f"Chat ID {candidate.endpoint} also failed: {candidate_error.description}")
            last_error = candidate_error

        logger.error(f"All chat ID recovery attempts failed (tried {', '.join(attempted)})")
        return DeliveryResult(ok=False, endpoint=first.endpoint, error=last_error, attempted=attempted)
