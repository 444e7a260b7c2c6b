"""CLI module for relaybot."""
