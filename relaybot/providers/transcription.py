"""Voice transcription providers tried in order until one succeeds."""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Protocol, Sequence

import httpx
from loguru import logger

from relaybot.config.schema import TranscriptionConfig
from relaybot.errors import TranscriptionError


class ProviderFailure(Exception):
    """One provider could not produce a transcription."""


class TranscriptionProvider(Protocol):
    name: str

    async def transcribe(self, audio: bytes, filename: str) -> str: ...


def _content_type(filename: str) -> str:
    return "audio/ogg" if Path(filename).suffix.lower() in ("", ".ogg", ".oga") else "audio/mpeg"


class OpenAIWhisperProvider:
    """Hosted Whisper transcription over the OpenAI audio API."""

    name = "openai-whisper"

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.openai.com/v1",
        model: str = "whisper-1",
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.model = model
        self.timeout = timeout

    async def transcribe(self, audio: bytes, filename: str) -> str:
        if not self.api_key:
            raise ProviderFailure("OpenAI API key not configured")
        suffix = Path(filename).suffix or ".ogg"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.api_base}/audio/transcriptions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    data={"model": self.model},
                    files={"file": (f"audio{suffix}", audio, _content_type(filename))},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                text = (response.json().get("text") or "").strip()
        except httpx.HTTPStatusError as e:
            raise ProviderFailure(f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderFailure(str(e) or type(e).__name__) from e
        if not text:
            raise ProviderFailure("empty transcription")
        return text


class LocalWhisperProvider:
    """Runs the `whisper` CLI on a temporary copy of the audio."""

    name = "local-whisper"

    def __init__(self, model: str = "base", timeout: float = 60.0, executable: str = "whisper"):
        self.model = model
        self.timeout = timeout
        self.executable = executable

    async def transcribe(self, audio: bytes, filename: str) -> str:
        binary = shutil.which(self.executable)
        if not binary:
            raise ProviderFailure(f"`{self.executable}` not found on PATH")
        suffix = Path(filename).suffix or ".ogg"
        with tempfile.TemporaryDirectory(prefix="relaybot_voice_") as tmp:
            audio_path = Path(tmp) / f"voice{suffix}"
            audio_path.write_bytes(audio)
            proc = await asyncio.create_subprocess_exec(
                binary, str(audio_path),
                "--model", self.model,
                "--output_format", "txt",
                "--output_dir", tmp,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                proc.kill()
                await proc.wait()
                raise ProviderFailure(f"timed out after {self.timeout:.0f}s") from e
            if proc.returncode != 0:
                detail = stderr.decode(errors="replace").strip().splitlines()
                raise ProviderFailure(f"exit {proc.returncode}: {detail[-1] if detail else 'no output'}")
            txt_path = audio_path.with_suffix(".txt")
            if not txt_path.exists():
                raise ProviderFailure("transcription file not found")
            text = txt_path.read_text(encoding="utf-8").strip()
        if not text:
            raise ProviderFailure("empty transcription")
        return text


class TranscriptionChain:
    """Try each provider in order; collect a reason per failed provider."""

    def __init__(self, providers: Sequence[TranscriptionProvider]):
        self.providers = list(providers)

    async def transcribe(self, audio: bytes, filename: str) -> str:
        reasons: list[str] = []
        for provider in self.providers:
            try:
                text = await provider.transcribe(audio, filename)
                logger.info(f"Transcribed via {provider.name}: {text[:50]}...")
                return text
            except ProviderFailure as e:
                logger.warning(f"Transcription via {provider.name} failed: {e}")
                reasons.append(f"{provider.name}: {e}")
        raise TranscriptionError(reasons)


def create_transcriber(config: TranscriptionConfig) -> TranscriptionChain:
    """Build the provider chain from config: hosted Whisper first, then local."""
    providers: list[TranscriptionProvider] = []
    if config.openai_api_key:
        providers.append(
            OpenAIWhisperProvider(
                api_key=config.openai_api_key,
                api_base=config.api_base,
                model=config.model,
                timeout=config.timeout,
            )
        )
    if config.local_enabled:
        providers.append(LocalWhisperProvider(model=config.local_model, timeout=config.timeout))
    return TranscriptionChain(providers)
