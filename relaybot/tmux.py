"""tmux helpers: find the current session and type commands into one."""

from __future__ import annotations

import asyncio
import os
import subprocess

from loguru import logger

from relaybot.errors import ForwardingError


def current_session() -> str | None:
    """Name of the tmux session this process runs in, or None outside tmux."""
    if not os.environ.get("TMUX"):
        return None
    try:
        result = subprocess.run(
            ["tmux", "display-message", "-p", "#S"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"tmux session lookup failed: {e}")
        return None
    name = result.stdout.strip()
    return name if result.returncode == 0 and name else None


class TmuxInjector:
    """Types a command into a tmux session and presses Enter."""

    def __init__(self, timeout: float = 10.0, executable: str = "tmux"):
        self.timeout = timeout
        self.executable = executable

    async def _run(self, *args: str) -> tuple[int, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.executable, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ForwardingError(f"tmux is not available: {e}") from e
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise ForwardingError(f"tmux {args[0]} timed out") from e
        return proc.returncode or 0, stderr.decode(errors="replace").strip()

    async def session_exists(self, session: str) -> bool:
        code, _ = await self._run("has-session", "-t", session)
        return code == 0

    async def inject(self, command: str, session: str) -> None:
        """Send ``command`` literally to ``session``; raises ForwardingError."""
        if not await self.session_exists(session):
            raise ForwardingError(f"tmux session '{session}' not found", session)

        code, err = await self._run("send-keys", "-t", session, "-l", "--", command)
        if code != 0:
            raise ForwardingError(f"tmux send-keys failed: {err or code}", session)
        code, err = await self._run("send-keys", "-t", session, "Enter")
        if code != 0:
            raise ForwardingError(f"tmux send-keys Enter failed: {err or code}", session)
        logger.debug(f"Injected into tmux {session}: {command[:50]}")

