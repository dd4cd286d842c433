"""
cache/store.py -- SQLite-backed key/value cache with TTLs and sorted sets.

Two kinds of entries share one key space:
  - JSON values (get / set / delete / delete_pattern), used for list caching
  - sorted sets of (member, score) pairs (zadd / zremrangebyscore / zcard),
    used by the sliding-window rate limiter

Every key may carry an absolute expiry. Expired keys read as absent and are
removed lazily on access; purge_expired() trims the rest in bulk.

Patterns passed to delete_pattern() use glob syntax ("users:list:*"), which
SQLite's GLOB operator evaluates directly.

Usage:
    cache = CacheStore()                      # file-backed default
    cache = CacheStore(":memory:")            # tests
    cache.set("users:list:1:10", data, ttl=300)
    cache.get("users:list:1:10")              # dict or None
    cache.delete_pattern("users:list:*")
"""

from __future__ import annotations

import json
import math
import sqlite3
import threading
import time
from typing import Any, Callable, Optional

_DDL = """
CREATE TABLE IF NOT EXISTS cache_keys (
    key         TEXT PRIMARY KEY,
    data        TEXT,
    expires_at  REAL
);
CREATE TABLE IF NOT EXISTS cache_zset (
    key         TEXT NOT NULL,
    member      TEXT NOT NULL,
    score       REAL NOT NULL,
    PRIMARY KEY (key, member)
);
CREATE INDEX IF NOT EXISTS idx_cache_zset_score ON cache_zset (key, score);
"""


class CacheStore:
    """Thread-safe cache over a single SQLite connection.

    clock is injectable so tests can move time forward without sleeping.
    """

    def __init__(self, db_path: str = "rbacapi_cache.db", clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_DDL)
        self._conn.commit()

    # ------------------------------------------------------------------
    # Key/value
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """Return the decoded value for key, or None if missing or expired."""
        with self._lock:
            if not self._alive(key):
                return None
            row = self._conn.execute("SELECT data FROM cache_keys WHERE key = ?", (key,)).fetchone()
        if row is None or row[0] is None:
            return None
        return json.loads(row[0])

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store value under key, replacing any existing entry."""
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._conn.execute("DELETE FROM cache_zset WHERE key = ?", (key,))
            self._conn.execute(
                "INSERT OR REPLACE INTO cache_keys (key, data, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), expires_at),
            )
            self._conn.commit()

    def delete(self, key: str) -> bool:
        with self._lock:
            removed = self._delete(key)
            self._conn.commit()
        return removed

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._alive(key)

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns number of keys removed."""
        with self._lock:
            cursor = self._conn.execute("DELETE FROM cache_keys WHERE key GLOB ?", (pattern,))
            self._conn.execute("DELETE FROM cache_zset WHERE key GLOB ?", (pattern,))
            self._conn.commit()
        return cursor.rowcount

    def expire(self, key: str, seconds: int) -> bool:
        """Set key to expire in seconds. Returns False if the key does not exist."""
        with self._lock:
            if not self._alive(key):
                return False
            self._conn.execute(
                "UPDATE cache_keys SET expires_at = ? WHERE key = ?",
                (self._clock() + seconds, key),
            )
            self._conn.commit()
        return True

    def pttl(self, key: str) -> int:
        """Remaining lifetime in milliseconds; -2 if missing, -1 if no expiry."""
        with self._lock:
            if not self._alive(key):
                return -2
            row = self._conn.execute("SELECT expires_at FROM cache_keys WHERE key = ?", (key,)).fetchone()
        if row[0] is None:
            return -1
        return max(0, int((row[0] - self._clock()) * 1000))

    def ttl(self, key: str) -> int:
        """Remaining lifetime in whole seconds (rounded up); -2 missing, -1 no expiry."""
        remaining = self.pttl(key)
        return remaining if remaining < 0 else math.ceil(remaining / 1000)

    # ------------------------------------------------------------------
    # Sorted sets
    # ------------------------------------------------------------------

    def zadd(self, key: str, score: float, member: str) -> None:
        with self._lock:
            self._alive(key)
            self._conn.execute(
                "INSERT OR IGNORE INTO cache_keys (key, data, expires_at) VALUES (?, NULL, NULL)",
                (key,),
            )
            self._conn.execute(
                "INSERT OR REPLACE INTO cache_zset (key, member, score) VALUES (?, ?, ?)",
                (key, member, score),
            )
            self._conn.commit()

    def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        """Remove members whose score lies in [min_score, max_score]."""
        with self._lock:
            if not self._alive(key):
                return 0
            cursor = self._conn.execute(
                "DELETE FROM cache_zset WHERE key = ? AND score >= ? AND score <= ?",
                (key, min_score, max_score),
            )
            self._conn.commit()
        return cursor.rowcount

    def zcard(self, key: str) -> int:
        with self._lock:
            if not self._alive(key):
                return 0
            row = self._conn.execute("SELECT COUNT(*) FROM cache_zset WHERE key = ?", (key,)).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Delete all expired keys. Returns number of keys removed."""
        now = self._clock()
        with self._lock:
            self._conn.execute(
                "DELETE FROM cache_zset WHERE key IN "
                "(SELECT key FROM cache_keys WHERE expires_at IS NOT NULL AND expires_at <= ?)",
                (now,),
            )
            cursor = self._conn.execute(
                "DELETE FROM cache_keys WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (now,),
            )
            self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _alive(self, key: str) -> bool:
        row = self._conn.execute("SELECT expires_at FROM cache_keys WHERE key = ?", (key,)).fetchone()
        if row is None:
            return False
        if row[0] is not None and row[0] <= self._clock():
            self._delete(key)
            self._conn.commit()
            return False
        return True

    def _delete(self, key: str) -> bool:
        self._conn.execute("DELETE FROM cache_zset WHERE key = ?", (key,))
        cursor = self._conn.execute("DELETE FROM cache_keys WHERE key = ?", (key,))
        return cursor.rowcount > 0
