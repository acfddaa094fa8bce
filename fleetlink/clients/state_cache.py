"""TTL caches holding pending OAuth authorization states.

Both backends expose ``pop`` as a single atomic lookup-and-remove, which is
what makes a state value single-use under concurrent callbacks.
"""

from __future__ import annotations

import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Tuple

from fleetlink.models.oauth import AuthorizationStateEntry


class MemoryStateCache:
    """Process-local cache; only safe with a single worker process."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[AuthorizationStateEntry, float]] = {}
        self._lock = threading.Lock()

    def put(self, entry: AuthorizationStateEntry, ttl_seconds: float) -> None:
        with self._lock:
            self._evict_expired()
            self._entries[entry.state] = (entry, self._clock() + ttl_seconds)

    def pop(self, state: str) -> Optional[AuthorizationStateEntry]:
        with self._lock:
            self._evict_expired()
            item = self._entries.pop(state, None)
        return item[0] if item else None

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._entries)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, deadline) in self._entries.items() if now >= deadline]
        for key in expired:
            del self._entries[key]


class SQLiteStateCache:
    """Cache shared between worker processes through a SQLite file."""

    def __init__(self, db_path: str, clock: Callable[[], float] = time.time) -> None:
        self._db_path = Path(db_path)
        self._clock = clock
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_tables()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_tables(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_states (
                    state TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    evict_at REAL NOT NULL
                )
                """
            )

    def put(self, entry: AuthorizationStateEntry, ttl_seconds: float) -> None:
        now = self._clock()
        with self._connect() as conn:
            conn.execute("DELETE FROM oauth_states WHERE evict_at <= ?", (now,))
            conn.execute(
                """
                INSERT INTO oauth_states (state, owner_id, created_at, evict_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(state) DO UPDATE SET
                    owner_id = excluded.owner_id,
                    created_at = excluded.created_at,
                    evict_at = excluded.evict_at
                """,
                (entry.state, entry.owner_id, entry.created_at.isoformat(), now + ttl_seconds),
            )

    def pop(self, state: str) -> Optional[AuthorizationStateEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                DELETE FROM oauth_states
                WHERE state = ? AND evict_at > ?
                RETURNING state, owner_id, created_at
                """,
                (state, self._clock()),
            ).fetchall()
        if not rows:
            return None
        row = rows[0]
        return AuthorizationStateEntry(
            state=row["state"],
            owner_id=row["owner_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


__all__ = ["MemoryStateCache", "SQLiteStateCache"]
