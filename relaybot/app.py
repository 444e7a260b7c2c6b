"""Wiring: build the relay service and its Telegram channel from config."""

from __future__ import annotations

from relaybot.channels.endpoint import ChatEndpointResolver
from relaybot.channels.telegram import TelegramChannel
from relaybot.config.schema import Config
from relaybot.providers.transcription import create_transcriber
from relaybot.relay.auth import AuthorizationGuard
from relaybot.relay.router import CommandRouter
from relaybot.relay.service import RelayService
from relaybot.session.store import SessionStore
from relaybot.tmux import TmuxInjector


def create_service(config: Config, channel: TelegramChannel | None = None) -> RelayService:
    """Create a RelayService bound to ``channel`` (one is built if not given)."""
    tg = config.telegram
    channel = channel or TelegramChannel(tg)

    store = SessionStore(config.sessions_path)
    guard = AuthorizationGuard(tg.whitelist, tg.fallback_chat_id)
    injector = TmuxInjector(timeout=config.tmux.timeout)
    router = CommandRouter(store, guard, injector.inject)
    resolver = ChatEndpointResolver(
        channel.deliver,
        chat_id=tg.chat_id,
        group_id=tg.group_id,
        whitelist=tg.whitelist,
    )
    service = RelayService(
        store=store,
        guard=guard,
        router=router,
        resolver=resolver,
        transcriber=create_transcriber(config.transcription),
        bot_username=tg.bot_username,
        username_lookup=channel.get_username,
    )
    channel.service = service
    return service
