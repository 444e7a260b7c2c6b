"""File-backed session store: one JSON record per session."""

from __future__ import annotations

import json
import os
import tempfile
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Iterator

from loguru import logger

from relaybot.errors import StorageError
from relaybot.session.models import SESSION_TTL_SECONDS, Notification, Session


class SessionStore:
    """
    Persists sessions as ``<id>.json`` files in a directory.

    Records are published with write-to-temp + ``os.replace`` so a concurrent
    scan never sees a half-written file. There is no lock: a scan racing a
    create or remove may or may not see that record. Expiry is enforced by
    callers at read time; nothing sweeps the directory in the background.
    """

    RECORD_SUFFIX = ".json"
    TEMP_SUFFIX = ".tmp"

    def __init__(self, sessions_dir: Path, clock: Callable[[], float] = time.time):
        self.sessions_dir = Path(sessions_dir).expanduser()
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def _ensure_dir(self) -> None:
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create sessions directory {self.sessions_dir}: {e}") from e

    def _record_path(self, session_id: str) -> Path:
        if not session_id or Path(session_id).name != session_id or session_id.startswith("."):
            raise StorageError(f"Invalid session id: {session_id!r}")
        return self.sessions_dir / f"{session_id}{self.RECORD_SUFFIX}"

    async def create(self, notification: Notification, token: str) -> str:
        """Persist a new session for ``notification`` and return its id."""
        self._ensure_dir()
        now = self.now()
        session = Session(
            id=str(uuid.uuid4()),
            token=token,
            created_at=now,
            expires_at=now + SESSION_TTL_SECONDS,
            source_context=notification.source_context,
            project=notification.project,
            payload=notification.to_dict(),
        )
        self._write_atomic(self._record_path(session.id), session.to_record())
        logger.debug(f"Session created: {session.id} (token {token}, tmux {session.source_context})")
        return session.id

    def _write_atomic(self, path: Path, record: dict[str, Any]) -> None:
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.stem}.", suffix=self.TEMP_SUFFIX, dir=self.sessions_dir
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write session record {path.name}: {e}") from e

    def _iter_sessions(self) -> Iterator[Session]:
        """Yield readable sessions in file-name order, skipping corrupt ones."""
        try:
            names = sorted(os.listdir(self.sessions_dir))
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Cannot list sessions directory {self.sessions_dir}: {e}") from e

        for name in names:
            if name.startswith(".") or not name.endswith(self.RECORD_SUFFIX):
                continue
            path = self.sessions_dir / name
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                session = Session.from_record(data)
            except FileNotFoundError:
                # Removed between listing and reading.
                continue
            except (OSError, ValueError, KeyError, TypeError, ArithmeticError) as e:
                logger.error(f"Failed to read session file {name}: {e}")
                continue
            # The id names the file that remove() deletes.
            if session.id != name[: -len(self.RECORD_SUFFIX)]:
                logger.error(f"Skipping session file {name}: id {session.id!r} does not match file name")
                continue
            yield session

    async def find_by_token(self, token: str) -> Session | None:
        """Return the first session whose token equals ``token`` exactly."""
        for session in self._iter_sessions():
            if session.token == token:
                return session
        return None

    async def find_most_recent_unexpired(self, scope: Any = None) -> Session | None:
        """
        Return the unexpired session with the greatest ``created_at``.

        ``scope`` is reserved for narrowing by chat/user and is ignored. Ties
        keep the first session in scan (file-name) order.
        """
        del scope
        now = self.now()
        latest: Session | None = None
        for session in self._iter_sessions():
            if session.is_expired(now):
                continue
            if latest is None or session.created_at > latest.created_at:
                latest = session
        return latest

    async def remove(self, session_id: str) -> None:
        """Delete a session record; a missing record is not an error."""
        try:
            self._record_path(session_id).unlink()
            logger.debug(f"Session removed: {session_id}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to remove session {session_id}: {e}") from e

    async def list_sessions(self) -> list[Session]:
        """All readable sessions, expired ones included."""
        return list(self._iter_sessions())

    async def purge_expired(self) -> int:
        """Remove expired records on demand; returns how many were removed."""
        now = self.now()
        removed = 0
        for session in self._iter_sessions():
            if session.is_expired(now):
                await self.remove(session.id)
                removed += 1
        return removed
