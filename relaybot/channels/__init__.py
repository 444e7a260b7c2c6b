"""Chat channels module."""

from relaybot.channels.endpoint import ChatEndpointResolver, DeliveryResult

__all__ = ["ChatEndpointResolver", "DeliveryResult"]
