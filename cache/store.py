"""
cache/store.py -- SQLite-backed key-value cache with per-key TTL.

Default session cache for development and tests; production deployments
point CACHE_URL at Redis (cache/redis_store.py). Both expose the same
set/get/delete surface that auth.sessions.SessionStore expects.

Values are JSON-encoded dicts. Each row stores its absolute expiry; get()
treats an expired row as missing and removes it. purge_expired() trims the
table in bulk and runs from the API's background task.

Usage:
    cache = SQLiteCache()
    cache.set("refresh_session:42", {"refresh_token": "..."}, ttl_seconds=604800)
    data = cache.get("refresh_session:42")   # dict or None
    cache.delete("refresh_session:42")
    cache.purge_expired()
"""

import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Optional, Union

from core.config import Settings

logger = logging.getLogger("budgetkeeper.cache")

_DEFAULT_DB = Path(__file__).resolve().parent.parent / "budgetkeeper_cache.db"

_DDL = """
CREATE TABLE IF NOT EXISTS kv_cache (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    expires_at  REAL NOT NULL
);
"""


class SQLiteCache:
    """Thread-safe TTL cache on one shared SQLite connection.

    sqlite3 connections are not safe for concurrent use, so every statement
    runs under a lock. clock is injectable for expiry tests.
    """

    def __init__(self, db_path: Union[Path, str] = _DEFAULT_DB, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        if str(db_path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    def get(self, key: str) -> Optional[dict]:
        """Return the stored dict for key if it exists and hasn't expired."""
        with self._lock:
            row = self._conn.execute("SELECT value, expires_at FROM kv_cache WHERE key = ?", (key,)).fetchone()
            if row is None:
                return None
            value, expires_at = row
            if expires_at <= self._clock():
                self._conn.execute("DELETE FROM kv_cache WHERE key = ?", (key,))
                self._conn.commit()
                return None
        return json.loads(value)

    def set(self, key: str, value: dict, ttl_seconds: int) -> None:
        """Store value under key for ttl_seconds, replacing any existing entry."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv_cache (key, value, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), self._clock() + ttl_seconds),
            )
            self._conn.commit()

    def delete(self, key: str) -> None:
        """Remove key. No error if it is absent."""
        with self._lock:
            self._conn.execute("DELETE FROM kv_cache WHERE key = ?", (key,))
            self._conn.commit()

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of rows removed."""
        with self._lock:
            cursor = self._conn.execute("DELETE FROM kv_cache WHERE expires_at <= ?", (self._clock(),))
            self._conn.commit()
        return cursor.rowcount

    def ping(self) -> bool:
        with self._lock:
            self._conn.execute("SELECT 1").fetchone()
        return True

    def close(self) -> None:
        self._conn.close()


def build_cache(settings: Settings):
    """Return the session cache selected by CACHE_URL.

    redis:// and rediss:// select RedisCache; anything else falls back to
    SQLiteCache at cache_db_path.
    """
    if settings.cache_url.startswith(("redis://", "rediss://")):
        from cache.redis_store import RedisCache

        cache = RedisCache(settings.cache_url, socket_timeout=settings.cache_timeout_seconds)
        cache.verify_connection()
        logger.info("Session cache: redis")
        return cache
    if settings.cache_url:
        logger.warning("Unsupported CACHE_URL scheme; using the SQLite cache")
    logger.info("Session cache: sqlite (%s)", settings.cache_db_path)
    return SQLiteCache(settings.cache_db_path)
