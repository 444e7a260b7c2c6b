"""Relay core: authorization, command routing and message texts."""

from relaybot.relay.auth import AuthorizationGuard
from relaybot.relay.router import CommandRouter, ParsedCommand, RouteResult, parse_command
from relaybot.relay.service import RelayService

__all__ = [
    "AuthorizationGuard",
    "CommandRouter",
    "ParsedCommand",
    "RelayService",
    "RouteResult",
    "parse_command",
]
