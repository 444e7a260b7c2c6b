import pytest

import relaybot.tmux as tmux_module
from relaybot.errors import ForwardingError
from relaybot.tmux import TmuxInjector


class _FakeProc:
    def __init__(self, returncode: int, stderr: bytes = b""):
        self.returncode = returncode
        self._stderr = stderr

    async def communicate(self):
        return b"", self._stderr


class _FakeExec:
    """Scripted replacement for asyncio.create_subprocess_exec."""

    def __init__(self, codes: dict[str, int]):
        self.codes = codes
        self.calls: list[tuple[str, ...]] = []

    async def __call__(self, *args, **kwargs):
        self.calls.append(args)
        return _FakeProc(self.codes.get(args[1], 0), b"boom")


@pytest.mark.asyncio
async def test_inject_sends_literal_text_then_enter(monkeypatch):
    fake = _FakeExec({})
    monkeypatch.setattr(tmux_module.asyncio, "create_subprocess_exec", fake)

    await TmuxInjector().inject("-n run tests", "work")

    assert fake.calls == [
        ("tmux", "has-session", "-t", "work"),
        ("tmux", "send-keys", "-t", "work", "-l", "--", "-n run tests"),
        ("tmux", "send-keys", "-t", "work", "Enter"),
    ]


@pytest.mark.asyncio
async def test_inject_missing_session(monkeypatch):
    fake = _FakeExec({"has-session": 1})
    monkeypatch.setattr(tmux_module.asyncio, "create_subprocess_exec", fake)

    with pytest.raises(ForwardingError, match="not found") as exc_info:
        await TmuxInjector().inject("ls", "ghost")

    assert exc_info.value.source_context == "ghost"
    assert len(fake.calls) == 1


@pytest.mark.asyncio
async def test_inject_send_keys_failure(monkeypatch):
    fake = _FakeExec({"send-keys": 1})
    monkeypatch.setattr(tmux_module.asyncio, "create_subprocess_exec", fake)

    with pytest.raises(ForwardingError, match="send-keys failed: boom"):
        await TmuxInjector().inject("ls", "work")


@pytest.mark.asyncio
async def test_inject_without_tmux_binary(monkeypatch):
    async def missing(*args, **kwargs):
        raise FileNotFoundError("tmux")

    monkeypatch.setattr(tmux_module.asyncio, "create_subprocess_exec", missing)

    with pytest.raises(ForwardingError, match="not available"):
        await TmuxInjector().inject("ls", "work")


def test_current_session_outside_tmux(monkeypatch):
    monkeypatch.delenv("TMUX", raising=False)
    assert tmux_module.current_session() is None
