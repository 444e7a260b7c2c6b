"""Telegram channel implementation using python-telegram-bot."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger
from telegram import BotCommand, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import BadRequest, ChatMigrated, Forbidden, TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)
from telegram.request import HTTPXRequest

from relaybot.channels.endpoint import classify_failure
from relaybot.config.schema import TelegramConfig
from relaybot.errors import ConfigurationError, TransportError

ALLOWED_UPDATES = ["message", "callback_query"]


def to_transport_error(error: TelegramError, endpoint: str | None = None) -> TransportError:
    """Map a python-telegram-bot error onto the relay's transport taxonomy."""
    if isinstance(error, Forbidden):
        status: int | None = 403
    elif isinstance(error, (BadRequest, ChatMigrated)):
        status = 400
    else:
        status = None
    description = getattr(error, "message", None) or str(error)
    return TransportError(
        description,
        kind=classify_failure(status, description),
        status=status,
        endpoint=endpoint,
    )


def _chat_ref(endpoint: str) -> int | str:
    """Numeric ids go to Telegram as ints, @channel names as-is."""
    return int(endpoint) if endpoint.lstrip("-").isdigit() else endpoint


def _keyboard(buttons: list[list[tuple[str, str]]] | None) -> InlineKeyboardMarkup | None:
    if not buttons:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(label, callback_data=data) for label, data in row] for row in buttons]
    )


class TelegramChannel:
    """
    Telegram transport for the relay.

    Long polling by default; webhook mode when ``webhook_url`` is set.
    Inbound updates are handed to the RelayService, outbound messages go
    through ``deliver`` which raises TransportError on failure.
    """

    name = "telegram"

    BOT_COMMANDS = [
        BotCommand("start", "Start the bot"),
        BotCommand("help", "Show available commands"),
        BotCommand("cmd", "Send a command: /cmd TOKEN command"),
    ]

    def __init__(self, config: TelegramConfig):
        self.config = config
        self.service: Any = None
        self._app: Application | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _build_request(self) -> HTTPXRequest:
        kwargs: dict[str, Any] = {
            "connection_pool_size": 16,
            "pool_timeout": 5.0,
            "connect_timeout": 30.0,
            "read_timeout": 30.0,
        }
        if self.config.proxy:
            kwargs["proxy"] = self.config.proxy
        if self.config.force_ipv4:
            # Binding the local side to 0.0.0.0 keeps httpx on IPv4.
            kwargs["httpx_kwargs"] = {"transport": httpx.AsyncHTTPTransport(local_address="0.0.0.0")}
        return HTTPXRequest(**kwargs)

    def build_application(self) -> Application:
        """Build the PTB application and register handlers."""
        if not self.config.bot_token:
            raise ConfigurationError("Telegram bot token not configured")

        builder = (
            Application.builder()
            .token(self.config.bot_token)
            .request(self._build_request())
            .get_updates_request(self._build_request())
        )
        self._app = builder.build()
        self._app.add_error_handler(self._on_error)

        self._app.add_handler(CommandHandler("start", self._on_start))
        self._app.add_handler(CommandHandler("help", self._on_help))
        self._app.add_handler(CommandHandler("cmd", self._on_text))
        self._app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self._on_text))
        self._app.add_handler(MessageHandler(filters.VOICE | filters.AUDIO, self._on_voice))
        self._app.add_handler(CallbackQueryHandler(self._on_callback))
        return self._app

    async def open(self) -> None:
        """Initialize the bot for sending only (notification path)."""
        if self._app is None:
            self.build_application()
        await self._app.initialize()

    async def close(self) -> None:
        if self._app:
            await self._app.shutdown()
            self._app = None

    async def start(self) -> None:
        """Start receiving updates; runs until stop() is called."""
        if self.service is None:
            raise RuntimeError("TelegramChannel.service must be set before start()")
        if self._app is None:
            self.build_application()

        self._running = True
        await self._app.initialize()
        await self._app.start()

        bot_info = await self._app.bot.get_me()
        logger.info(f"Telegram bot @{bot_info.username} connected")

        try:
            await self._app.bot.set_my_commands(self.BOT_COMMANDS)
            logger.debug("Telegram bot commands registered")
        except TelegramError as e:
            logger.warning(f"Failed to register bot commands: {e}")

        if self.config.webhook_url:
            logger.info(f"Starting Telegram bot (webhook mode on {self.config.webhook_listen}:{self.config.webhook_port})...")
            await self._app.updater.start_webhook(
                listen=self.config.webhook_listen,
                port=self.config.webhook_port,
                url_path="webhook/telegram",
                webhook_url=self.config.webhook_url,
                allowed_updates=ALLOWED_UPDATES,
                drop_pending_updates=True,
            )
        else:
            logger.info("Starting Telegram bot (polling mode)...")
            await self._app.updater.start_polling(
                allowed_updates=ALLOWED_UPDATES,
                drop_pending_updates=True,
            )

        while self._running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        """Stop the Telegram bot."""
        self._running = False
        if self._app:
            logger.info("Stopping Telegram bot...")
            if self._app.updater and self._app.updater.running:
                await self._app.updater.stop()
            if self._app.running:
                await self._app.stop()
            await self._app.shutdown()
            self._app = None

    # Outbound

    async def deliver(
        self,
        endpoint: str,
        content: str,
        parse_mode: str | None = None,
        buttons: list[list[tuple[str, str]]] | None = None,
    ) -> int | None:
        """Send one message to ``endpoint``; returns the message id."""
        if not self._app:
            raise ConfigurationError("Telegram bot not running")
        try:
            sent = await self._app.bot.send_message(
                chat_id=_chat_ref(endpoint),
                text=content,
                parse_mode=parse_mode,
                reply_markup=_keyboard(buttons),
            )
        except TelegramError as e:
            raise to_transport_error(e, endpoint) from e
        return getattr(sent, "message_id", None)

    async def get_username(self) -> str | None:
        """Bot username as reported by get_me."""
        if not self._app:
            return None
        me = await self._app.bot.get_me()
        return getattr(me, "username", None)

    async def set_webhook(self, url: str) -> bool:
        if not self._app:
            raise ConfigurationError("Telegram bot not running")
        try:
            ok = await self._app.bot.set_webhook(url=url, allowed_updates=ALLOWED_UPDATES)
        except TelegramError as e:
            raise to_transport_error(e) from e
        logger.info(f"Webhook set to {url}: {ok}")
        return bool(ok)

    # Inbound

    async def _on_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /start command."""
        if not update.message or not update.effective_user:
            return
        await self.service.handle_start(update.message.chat_id, update.effective_user.id)

    async def _on_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /help command."""
        if not update.message or not update.effective_user:
            return
        await self.service.handle_help(update.message.chat_id, update.effective_user.id)

    async def _on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle plain text and /cmd messages."""
        message = update.message
        if not message or not update.effective_user or not message.text:
            return
        logger.debug(f"Telegram message from {update.effective_user.id} in {message.chat_id}: {message.text[:50]}")
        await self.service.handle_text(message.chat_id, update.effective_user.id, message.text)

    async def _on_voice(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle voice notes and audio files."""
        message = update.message
        if not message or not update.effective_user:
            return
        media = message.voice or message.audio
        if media is None:
            return

        async def fetch_audio() -> tuple[bytes, str]:
            try:
                tg_file = await self._app.bot.get_file(media.file_id)
                data = await tg_file.download_as_bytearray()
            except TelegramError as e:
                error = to_transport_error(e, str(message.chat_id))
                error.user_message = f"❌ Failed to process voice message: {error.description}"
                raise error from e
            return bytes(data), tg_file.file_path or "voice.ogg"

        await self.service.handle_voice(message.chat_id, update.effective_user.id, fetch_audio)

    async def _on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle notification button presses."""
        query = update.callback_query
        if not query:
            return
        try:
            await query.answer()
        except TelegramError as e:
            logger.error(f"Failed to answer callback query: {e}")
        if not query.message:
            return
        await self.service.handle_callback(query.message.chat_id, query.data or "")

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Log polling / handler errors instead of silently swallowing them."""
        logger.error(f"Telegram error: {context.error}")
