"""Per-session exclusion sets (which words a session has already been given).

Two stores share one contract: an in-memory store for a single process and a
SQLite-backed store on top of ``Database``. Both hand out a per-session lock
so dispense-and-record runs serialized per session id, not globally.
"""
from __future__ import annotations

import logging
import re
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from vocab_drill.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from vocab_drill.db import Database

log = logging.getLogger("vocab_drill.sessions")

DEFAULT_SESSION_ID = "default"
MAX_SESSION_ID_LENGTH = 255
_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_session_id(session_id: str | None) -> str:
    if session_id is None:
        return DEFAULT_SESSION_ID
    value = session_id.strip()
    if not value:
        raise ValidationError.empty_field("session_id")
    if len(value) > MAX_SESSION_ID_LENGTH:
        raise ValidationError(
            f"session_id must be at most {MAX_SESSION_ID_LENGTH} characters", "session_id"
        )
    if not _SESSION_ID_RE.match(value):
        raise ValidationError(
            "session_id must contain only letters, digits, hyphens and underscores",
            "session_id",
        )
    return value


def generate_session_id() -> str:
    return f"sess_{uuid.uuid4()}"


@dataclass
class Session:
    session_id: str
    used_word_ids: set[str] = field(default_factory=set)
    seen_word_ids: set[str] = field(default_factory=set)  # cleared only by reset()
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_accessed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def touch(self) -> None:
        self.last_accessed_at = datetime.now(timezone.utc)

    def is_expired(self, max_age: timedelta) -> bool:
        return datetime.now(timezone.utc) - self.last_accessed_at > max_age


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0  # holders plus waiters


class _KeyedLocks:
    """Per-key locks that exist only while some caller holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _LockEntry()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class SessionStore:
    """Contract shared by the session store implementations."""

    def __init__(self):
        self._locks = _KeyedLocks()

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        with self._locks.hold(session_id):
            yield

    def get_or_create(self, session_id: str) -> Session:
        raise NotImplementedError

    def record_used(self, session_id: str, word_id: str) -> None:
        raise NotImplementedError

    def reset(self, session_id: str) -> None:
        raise NotImplementedError

    def reset_for_pool(self, session_id: str, pool_ids: Iterable[str]) -> None:
        raise NotImplementedError

    def delete(self, session_id: str) -> bool:
        raise NotImplementedError

    def exists(self, session_id: str) -> bool:
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError

    def delete_expired(self, max_age: timedelta) -> int:
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    def __init__(self, max_sessions: int = 10000):
        super().__init__()
        self.max_sessions = max_sessions
        self._sessions: dict[str, Session] = {}
        self._guard = threading.Lock()

    def get_or_create(self, session_id: str) -> Session:
        with self._guard:
            session = self._sessions.get(session_id)
            if session is None:
                self._evict_if_needed()
                session = self._sessions[session_id] = Session(session_id)
                log.debug("Created session %s", session_id)
            else:
                session.touch()
            return session

    def record_used(self, session_id: str, word_id: str) -> None:
        session = self.get_or_create(session_id)
        session.used_word_ids.add(word_id)
        session.seen_word_ids.add(word_id)

    def reset(self, session_id: str) -> None:
        with self._guard:
            session = self._sessions.get(session_id)
        if session is not None:
            session.used_word_ids.clear()
            session.seen_word_ids.clear()
            session.touch()

    def reset_for_pool(self, session_id: str, pool_ids: Iterable[str]) -> None:
        session = self.get_or_create(session_id)
        session.used_word_ids.difference_update(pool_ids)

    def delete(self, session_id: str) -> bool:
        with self._guard:
            removed = self._sessions.pop(session_id, None) is not None
        return removed

    def exists(self, session_id: str) -> bool:
        return session_id in self._sessions

    def count(self) -> int:
        return len(self._sessions)

    def delete_expired(self, max_age: timedelta) -> int:
        with self._guard:
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(max_age)]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            log.info("Expired %d idle sessions", len(expired))
        return len(expired)

    def _evict_if_needed(self) -> None:
        if len(self._sessions) < self.max_sessions:
            return
        oldest = min(self._sessions.values(), key=lambda s: s.last_accessed_at)
        del self._sessions[oldest.session_id]
        log.info("Evicted session %s (store at capacity %d)", oldest.session_id, self.max_sessions)


class SqliteSessionStore(SessionStore):
    def __init__(self, db: Database, max_sessions: int = 10000):
        super().__init__()
        self.db = db
        self.max_sessions = max_sessions

    def get_or_create(self, session_id: str) -> Session:
        if self.db.get_session(session_id) is None and self.count() >= self.max_sessions:
            oldest = self.db.get_oldest_session_id()
            if oldest is not None:
                self.db.delete_session(oldest)
                log.info("Evicted session %s (store at capacity %d)", oldest, self.max_sessions)
        row = self.db.ensure_session(session_id)
        return Session(
            session_id=session_id,
            used_word_ids=self.db.get_session_word_ids(session_id, used_only=True),
            seen_word_ids=self.db.get_session_word_ids(session_id),
            created_at=datetime.fromisoformat(row["created_at"]),
            last_accessed_at=datetime.fromisoformat(row["last_accessed_at"]),
        )

    def record_used(self, session_id: str, word_id: str) -> None:
        self.db.ensure_session(session_id)
        self.db.mark_session_word(session_id, word_id)

    def reset(self, session_id: str) -> None:
        if self.db.get_session(session_id) is None:
            return
        self.db.delete_session(session_id)
        self.db.ensure_session(session_id)

    def reset_for_pool(self, session_id: str, pool_ids: Iterable[str]) -> None:
        self.db.release_session_words(session_id, list(pool_ids))

    def delete(self, session_id: str) -> bool:
        removed = self.db.delete_session(session_id)
        return removed

    def exists(self, session_id: str) -> bool:
        return self.db.get_session(session_id) is not None

    def count(self) -> int:
        return self.db.get_session_count()

    def delete_expired(self, max_age: timedelta) -> int:
        cutoff = (datetime.now(timezone.utc) - max_age).isoformat()
        n = self.db.delete_sessions_before(cutoff)
        if n:
            log.info("Expired %d idle sessions", n)
        return n
