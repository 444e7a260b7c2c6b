"""Transcription provider module."""

from relaybot.providers.transcription import (
    LocalWhisperProvider,
    OpenAIWhisperProvider,
    TranscriptionChain,
    create_transcriber,
)

__all__ = ["LocalWhisperProvider", "OpenAIWhisperProvider", "TranscriptionChain", "create_transcriber"]
