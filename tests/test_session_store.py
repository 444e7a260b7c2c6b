import json
import re

import pytest

from relaybot.errors import StorageError
from relaybot.session.models import Notification
from relaybot.session.store import SessionStore
from relaybot.session.token import TOKEN_ALPHABET, generate_token

T0 = 1_700_000_000


class _Clock:
    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _notification(**metadata) -> Notification:
    return Notification(type="completed", project="demo", message="done", metadata=metadata)


def _store(tmp_path, clock=None) -> SessionStore:
    return SessionStore(tmp_path / "sessions", clock=clock or _Clock())


def test_generate_token_shape():
    for _ in range(50):
        token = generate_token()
        assert re.fullmatch(r"[A-Z0-9]{8}", token)
        assert set(token) <= set(TOKEN_ALPHABET)


@pytest.mark.asyncio
async def test_create_writes_record_with_stable_shape(tmp_path):
    store = _store(tmp_path)

    session_id = await store.create(_notification(tmux_session="work"), "AB12CD34")

    path = tmp_path / "sessions" / f"{session_id}.json"
    data = json.loads(path.read_text())
    assert set(data) == {
        "id", "token", "type", "created", "expires", "createdAt", "expiresAt",
        "tmuxSession", "project", "notification",
    }
    assert data["id"] == session_id
    assert data["token"] == "AB12CD34"
    assert data["type"] == "telegram"
    assert data["createdAt"] == T0
    assert data["expiresAt"] == T0 + 86400
    assert data["tmuxSession"] == "work"
    assert data["project"] == "demo"
    assert data["notification"]["message"] == "done"
    assert data["created"].startswith("2023-11-14T")


@pytest.mark.asyncio
async def test_create_defaults_source_context(tmp_path):
    store = _store(tmp_path)
    await store.create(_notification(), "AB12CD34")

    session = await store.find_by_token("AB12CD34")
    assert session is not None
    assert session.source_context == "default"


@pytest.mark.asyncio
async def test_create_leaves_no_temp_files(tmp_path):
    store = _store(tmp_path)
    await store.create(_notification(), "AB12CD34")
    await store.create(_notification(), "ZZ99ZZ99")

    names = [p.name for p in (tmp_path / "sessions").iterdir()]
    assert len(names) == 2
    assert all(n.endswith(".json") and not n.startswith(".") for n in names)


@pytest.mark.asyncio
async def test_create_raises_storage_error_when_dir_unusable(tmp_path):
    blocker = tmp_path / "sessions"
    blocker.write_text("not a directory")
    store = SessionStore(blocker, clock=_Clock())

    with pytest.raises(StorageError):
        await store.create(_notification(), "AB12CD34")


@pytest.mark.asyncio
async def test_find_by_token_skips_corrupt_records(tmp_path):
    store = _store(tmp_path)
    session_id = await store.create(_notification(), "AB12CD34")
    (tmp_path / "sessions" / "0000-broken.json").write_text("{not json")
    (tmp_path / "sessions" / "0001-partial.json").write_text('{"id": "x"}')

    session = await store.find_by_token("AB12CD34")

    assert session is not None
    assert session.id == session_id
    assert await store.find_by_token("NOPE0000") is None


@pytest.mark.asyncio
async def test_find_by_token_is_exact_match(tmp_path):
    store = _store(tmp_path)
    await store.create(_notification(), "AB12CD34")

    assert await store.find_by_token("ab12cd34") is None


@pytest.mark.asyncio
async def test_find_most_recent_unexpired_prefers_latest(tmp_path):
    clock = _Clock(100)
    store = _store(tmp_path, clock)
    await store.create(_notification(tmux_session="a"), "AAAAAAAA")
    clock.now = 200
    await store.create(_notification(tmux_session="b"), "BBBBBBBB")

    session = await store.find_most_recent_unexpired()

    assert session is not None
    assert session.token == "BBBBBBBB"


@pytest.mark.asyncio
async def test_find_most_recent_unexpired_ignores_expired(tmp_path):
    clock = _Clock(T0)
    store = _store(tmp_path, clock)
    await store.create(_notification(), "OLDOLD00")
    clock.now = T0 + 86400
    assert await store.find_most_recent_unexpired() is None

    await store.create(_notification(), "NEWNEW00")
    session = await store.find_most_recent_unexpired()
    assert session is not None
    assert session.token == "NEWNEW00"


@pytest.mark.asyncio
async def test_find_most_recent_unexpired_empty_dir(tmp_path):
    store = _store(tmp_path)
    assert await store.find_most_recent_unexpired() is None


@pytest.mark.asyncio
async def test_remove_is_idempotent(tmp_path):
    store = _store(tmp_path)
    session_id = await store.create(_notification(), "AB12CD34")

    await store.remove(session_id)
    await store.remove(session_id)
    await store.remove("does-not-exist")

    assert await store.find_by_token("AB12CD34") is None


@pytest.mark.asyncio
async def test_purge_expired_removes_only_expired(tmp_path):
    clock = _Clock(T0)
    store = _store(tmp_path, clock)
    await store.create(_notification(), "OLDOLD00")
    clock.now = T0 + 50_000
    await store.create(_notification(), "NEWNEW00")
    clock.now = T0 + 86400

    removed = await store.purge_expired()

    assert removed == 1
    assert [s.token for s in await store.list_sessions()] == ["NEWNEW00"]


def _write_record(sessions_dir, name, session_id, token, created_at, ttl=86400):
    sessions_dir.mkdir(parents=True, exist_ok=True)
    record = {
        "id": session_id,
        "token": token,
        "createdAt": created_at,
        "expiresAt": created_at + ttl,
        "tmuxSession": name,
    }
    (sessions_dir / f"{name}.json").write_text(json.dumps(record))


@pytest.mark.asyncio
async def test_find_most_recent_unexpired_tie_keeps_first_file_name(tmp_path):
    sessions_dir = tmp_path / "sessions"
    _write_record(sessions_dir, "b-session", "b-session", "BBBBBBBB", T0)
    _write_record(sessions_dir, "a-session", "a-session", "AAAAAAAA", T0)
    _write_record(sessions_dir, "c-session", "c-session", "CCCCCCCC", T0)

    session = await _store(tmp_path).find_most_recent_unexpired()

    assert session is not None
    assert session.token == "AAAAAAAA"


@pytest.mark.asyncio
async def test_record_with_non_finite_timestamp_is_skipped(tmp_path):
    store = _store(tmp_path)
    await store.create(_notification(tmux_session="work"), "AB12CD34")
    (tmp_path / "sessions" / "0000-inf.json").write_text(
        '{"id": "0000-inf", "token": "INFINITY", "createdAt": Infinity, "expiresAt": Infinity}'
    )

    session = await store.find_most_recent_unexpired()

    assert session is not None
    assert session.token == "AB12CD34"
    assert await store.find_by_token("INFINITY") is None


@pytest.mark.asyncio
async def test_record_id_must_match_file_name(tmp_path):
    sessions_dir = tmp_path / "sessions"
    _write_record(sessions_dir, "real", "../config", "AB12CD34", T0 - 2 * 86400)
    victim = tmp_path / "config.json"
    victim.write_text("{}")
    store = _store(tmp_path)

    assert await store.find_by_token("AB12CD34") is None
    assert await store.purge_expired() == 0
    assert victim.exists()
    assert (sessions_dir / "real.json").exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("session_id", ["../config", "nested/id", ".hidden", ""])
async def test_remove_rejects_ids_outside_the_directory(tmp_path, session_id):
    store = _store(tmp_path)
    (tmp_path / "config.json").write_text("{}")

    with pytest.raises(StorageError):
        await store.remove(session_id)

    assert (tmp_path / "config.json").exists()
