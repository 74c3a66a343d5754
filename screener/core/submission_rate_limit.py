from __future__ import annotations

import hashlib
import math
import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, ContextManager, Iterator, Mapping, Protocol

from screener.core.config import settings


class SubmissionRateLimitExceeded(Exception):
    def __init__(self, retry_after: int):
        super().__init__(f"Rate limit exceeded; retry after {retry_after}s")
        self.retry_after = retry_after


@dataclass
class RateLimitEntry:
    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0


class CounterStore(Protocol):
    def transaction(self) -> ContextManager[None]: ...

    def get(self, key: str) -> RateLimitEntry | None: ...

    def set(self, key: str, entry: RateLimitEntry, ttl_seconds: float) -> None: ...

    def delete(self, key: str) -> None: ...

    def purge_expired(self, now: float) -> int: ...

    def clear(self) -> None: ...


class InMemoryCounterStore:
    """Process-local counters. Not shared between workers or instances."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[RateLimitEntry, float]] = {}
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            yield

    def get(self, key: str) -> RateLimitEntry | None:
        with self._lock:
            item = self._entries.get(key)
        if item is None:
            return None
        entry, _expires_at = item
        return RateLimitEntry(count=entry.count, window_start=entry.window_start)

    def set(self, key: str, entry: RateLimitEntry, ttl_seconds: float) -> None:
        with self._lock:
            self._entries[key] = (entry, entry.window_start + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self, now: float) -> int:
        with self._lock:
            expired = [key for key, (_entry, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class SqliteCounterStore:
    """Counters in a SQLite file so several worker processes on one host share them.

    `transaction()` opens a `BEGIN IMMEDIATE` transaction, which takes the
    database write lock up front, so a read-then-increment inside it cannot
    interleave with another process doing the same.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def _get_connection(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is not None:
                return self._conn

            directory = os.path.dirname(self._db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            self._conn = sqlite3.connect(
                self._db_path,
                check_same_thread=False,
                timeout=5,
                isolation_level=None,
            )
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA busy_timeout=5000;")
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS submission_rate_limit (
                    client_key TEXT PRIMARY KEY,
                    request_count INTEGER NOT NULL,
                    window_start REAL NOT NULL,
                    expires_at REAL NOT NULL
                );
                """
            )
            return self._conn

    @contextmanager
    def transaction(self) -> Iterator[None]:
        conn = self._get_connection()
        with self._lock:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def get(self, key: str) -> RateLimitEntry | None:
        conn = self._get_connection()
        with self._lock:
            row = conn.execute(
                "SELECT request_count, window_start FROM submission_rate_limit WHERE client_key = ?",
                (key,),
            ).fetchone()
        if not row:
            return None
        return RateLimitEntry(count=int(row[0]), window_start=float(row[1]))

    def set(self, key: str, entry: RateLimitEntry, ttl_seconds: float) -> None:
        conn = self._get_connection()
        with self._lock:
            conn.execute(
                """
                INSERT INTO submission_rate_limit (client_key, request_count, window_start, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(client_key) DO UPDATE SET
                    request_count = excluded.request_count,
                    window_start = excluded.window_start,
                    expires_at = excluded.expires_at
                """,
                (key, entry.count, entry.window_start, entry.window_start + ttl_seconds),
            )

    def delete(self, key: str) -> None:
        conn = self._get_connection()
        with self._lock:
            conn.execute("DELETE FROM submission_rate_limit WHERE client_key = ?", (key,))

    def purge_expired(self, now: float) -> int:
        conn = self._get_connection()
        with self._lock:
            cursor = conn.execute("DELETE FROM submission_rate_limit WHERE expires_at <= ?", (now,))
        return int(cursor.rowcount or 0)

    def clear(self) -> None:
        conn = self._get_connection()
        with self._lock:
            conn.execute("DELETE FROM submission_rate_limit")


class FixedWindowRateLimiter:
    """Approximate fixed-window limiter: `limit` hits per `window_seconds` per client key.

    The first hit opens a window. A hit after the window has elapsed resets the
    count to 1 instead of incrementing. Rejected hits do not count.
    """

    def __init__(
        self,
        store: CounterStore,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._limit = max(1, int(limit))
        self._window = max(1, int(window_seconds))
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def store(self) -> CounterStore:
        return self._store

    def check(self, key: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock, self._store.transaction():
            entry = self._store.get(key)
            if entry is None or now - entry.window_start >= self._window:
                self._store.set(key, RateLimitEntry(count=1, window_start=now), self._window)
                return RateLimitDecision(allowed=True, remaining=self._limit - 1)

            if entry.count >= self._limit:
                elapsed = now - entry.window_start
                retry_after = max(1, math.ceil(self._window - elapsed))
                return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

            entry.count += 1
            self._store.set(key, entry, self._window)
            return RateLimitDecision(allowed=True, remaining=self._limit - entry.count)

    def hit(self, key: str) -> RateLimitDecision:
        decision = self.check(key)
        if not decision.allowed:
            raise SubmissionRateLimitExceeded(decision.retry_after)
        return decision

    def purge_expired(self) -> int:
        return self._store.purge_expired(self._clock())


def _short_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]


def client_key_from_headers(headers: Mapping[str, str]) -> str:
    forwarded_for = (headers.get("x-forwarded-for") or "").strip()
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    user_agent = headers.get("user-agent") or ""
    accept_language = headers.get("accept-language") or ""
    return f"unknown-{_short_hash(user_agent + accept_language)}"


def _build_store() -> CounterStore:
    if settings.submission_rate_limit_backend == "sqlite":
        return SqliteCounterStore(settings.submission_rate_limit_db_path)
    return InMemoryCounterStore()


@lru_cache(maxsize=1)
def get_submission_limiter() -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        _build_store(),
        limit=settings.submission_rate_limit_max,
        window_seconds=settings.submission_rate_limit_window_s,
    )


def clear_submission_rate_limit() -> None:
    get_submission_limiter().store.clear()
