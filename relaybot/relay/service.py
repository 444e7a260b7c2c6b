"""Relay service: outbound notifications and inbound command handling."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from loguru import logger

from relaybot.channels.endpoint import ChatEndpointResolver, DeliveryResult
from relaybot.errors import (
    AuthorizationError,
    RelayError,
    SessionExpiredError,
    SessionNotFoundError,
    TranscriptionError,
)
from relaybot.relay import formatter
from relaybot.relay.auth import AuthorizationGuard
from relaybot.relay.router import CommandRouter, ParsedCommand, RouteResult
from relaybot.session.models import Notification
from relaybot.session.store import SessionStore
from relaybot.session.token import generate_token

DEFAULT_BOT_USERNAME = "claude_remote_bot"


class RelayService:
    """
    Ties sessions, routing and delivery together.

    Every public handler catches RelayError and answers the user instead of
    raising. The bot username lookup is cached on the instance.
    """

    def __init__(
        self,
        store: SessionStore,
        guard: AuthorizationGuard,
        router: CommandRouter,
        resolver: ChatEndpointResolver,
        transcriber: Any = None,
        bot_username: str = "",
        username_lookup: Callable[[], Awaitable[str | None]] | None = None,
    ):
        self.store = store
        self.guard = guard
        self.router = router
        self.resolver = resolver
        self.transcriber = transcriber
        self._configured_username = bot_username
        self._username_lookup = username_lookup
        self._bot_username: str | None = None

    # Outbound

    async def notify(self, notification: Notification) -> DeliveryResult:
        """
        Create a session for ``notification`` and deliver it.

        A failed delivery removes the session again. StorageError and
        ConfigurationError propagate.
        """
        token = generate_token()
        session_id = await self.store.create(notification, token)
        text = formatter.render_notification(notification, token)
        try:
            result = await self.resolver.send(
                text,
                parse_mode="HTML",
                buttons=formatter.notification_buttons(token),
            )
        except Exception:
            await self.store.remove(session_id)
            raise

        if result.ok:
            logger.info(f"Telegram message sent successfully, session {session_id} (token {token}) -> {result.endpoint}")
        else:
            logger.error(
                f"Failed to deliver notification for session {session_id} (token {token}), "
                f"tried {', '.join(result.attempted)}: {result.error}"
            )
            await self.store.remove(session_id)
        return result

    async def reply(self, chat_id: Any, text: str, **options: Any) -> DeliveryResult:
        """Answer the chat an update came from; failures are logged only."""
        return await self.resolver.send(text, endpoint=str(chat_id), **options)

    # Inbound

    async def handle_text(self, chat_id: Any, user_id: Any, text: str) -> RouteResult | None:
        """Route a text message and reply with a confirmation or the error."""
        text = (text or "").strip()
        if not text:
            return None
        try:
            result = await self.router.route(text, user_id, chat_id)
        except RelayError as e:
            await self._reply_error(chat_id, user_id, e)
            return None
        await self._confirm(chat_id, result)
        return result

    async def handle_voice(
        self,
        chat_id: Any,
        user_id: Any,
        fetch_audio: Callable[[], Awaitable[tuple[bytes, str]]],
    ) -> RouteResult | None:
        """Transcribe a voice message, echo it and route it without a token."""
        if not await self._check_authorized(chat_id, user_id):
            return None

        await self.reply(chat_id, "🎤 Processing your voice message...")
        try:
            if self.transcriber is None:
                raise TranscriptionError([])
            audio, filename = await fetch_audio()
            transcribed = (await self.transcriber.transcribe(audio, filename)).strip()
            await self.reply(chat_id, formatter.render_transcription(transcribed), parse_mode="HTML")
            result = await self.router.dispatch(ParsedCommand(body=transcribed), chat_id)
        except RelayError as e:
            await self._reply_error(chat_id, user_id, e)
            return None
        await self._confirm(chat_id, result)
        return result

    async def handle_callback(self, chat_id: Any, data: str) -> bool:
        """Explain the command format for a notification button press."""
        purpose, _, token = (data or "").partition(":")
        if not token:
            logger.debug(f"Ignoring callback data without token: {data!r}")
            return False
        username = await self.bot_username() if purpose == "group" else ""
        text = formatter.render_command_format(purpose, token, username)
        if text is None:
            logger.debug(f"Unknown callback purpose: {purpose}")
            return False
        await self.reply(chat_id, text, parse_mode="HTML")
        return True

    async def handle_start(self, chat_id: Any, user_id: Any) -> None:
        if await self._check_authorized(chat_id, user_id):
            await self.reply(chat_id, formatter.WELCOME_TEXT, parse_mode="HTML")

    async def handle_help(self, chat_id: Any, user_id: Any) -> None:
        if await self._check_authorized(chat_id, user_id):
            await self.reply(chat_id, formatter.HELP_TEXT, parse_mode="HTML")

    async def _check_authorized(self, chat_id: Any, user_id: Any) -> bool:
        if self.guard.is_authorized(user_id, chat_id):
            return True
        logger.warning(f"Unauthorized user/chat: {user_id}/{chat_id}")
        await self._reply_error(chat_id, user_id, AuthorizationError())
        return False

    async def bot_username(self) -> str:
        """Bot username from get_me (cached), then config, then the default."""
        if self._bot_username:
            return self._bot_username
        if self._username_lookup is not None:
            try:
                username = await self._username_lookup()
            except Exception as e:
                logger.error(f"Failed to get bot username: {e}")
                username = None
            if username:
                self._bot_username = username
                return username
        return self._configured_username or DEFAULT_BOT_USERNAME

    async def _confirm(self, chat_id: Any, result: RouteResult) -> None:
        text = formatter.render_confirmation(result.command, result.source_context)
        delivery = await self.reply(chat_id, text, parse_mode="HTML")
        if not delivery.ok:
            logger.warning(f"Confirmation for session {result.session.id} not delivered to {chat_id}")

    async def _reply_error(self, chat_id: Any, user_id: Any, error: RelayError) -> None:
        if isinstance(error, (SessionNotFoundError, SessionExpiredError, AuthorizationError)):
            logger.info(f"Rejected command from {user_id}/{chat_id}: {error}")
        else:
            logger.error(f"Command from {user_id}/{chat_id} failed: {error}")
        await self.reply(chat_id, error.user_message)
