"""
auth/sessions.py -- Refresh-session records in a TTL key-value cache.

One session per account, keyed by session_key(account_id). Login, refresh,
logout and account deletion all derive the key through that one function.
A second login overwrites the first session (no multi-device fan-out).

TTL floor: put() refuses a TTL shorter than min_ttl_seconds (the refresh-token
lifetime). If the cache entry expired before the token, the token would fail
early at best.

The cache is anything with set(key, value, ttl_seconds) / get(key) /
delete(key) that stores JSON-compatible dicts: cache.store.SQLiteCache or
cache.redis_store.RedisCache. Backend errors surface as InternalError.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.errors import InternalError
from auth.models import RefreshSession

logger = logging.getLogger("budgetkeeper.auth.sessions")

_KEY_PREFIX = "refresh_session"


class KeyValueCache(Protocol):
    def set(self, key: str, value: dict, ttl_seconds: int) -> None: ...

    def get(self, key: str) -> dict | None: ...

    def delete(self, key: str) -> None: ...


def session_key(account_id: str) -> str:
    return f"{_KEY_PREFIX}:{account_id}"


class SessionStore:
    """Cache-backed RefreshSession storage scoped to the auth core."""

    def __init__(self, cache: KeyValueCache, min_ttl_seconds: int) -> None:
        self._cache = cache
        self.min_ttl_seconds = min_ttl_seconds

    def put(self, account_id: str, record: RefreshSession, ttl_seconds: int) -> None:
        """Write (or overwrite) the session for account_id."""
        if ttl_seconds < self.min_ttl_seconds:
            raise ValueError(
                f"Session TTL {ttl_seconds}s is below the refresh-token lifetime {self.min_ttl_seconds}s"
            )
        try:
            self._cache.set(session_key(account_id), record.to_dict(), ttl_seconds)
        except Exception as exc:
            logger.exception("Session cache write failed")
            raise InternalError("Session cache unavailable") from exc

    def get(self, account_id: str) -> RefreshSession | None:
        try:
            data = self._cache.get(session_key(account_id))
        except Exception as exc:
            logger.exception("Session cache read failed")
            raise InternalError("Session cache unavailable") from exc
        if data is None:
            return None
        try:
            return RefreshSession.from_dict(data)
        except (KeyError, TypeError):
            logger.warning("Discarding malformed session record for account %s", account_id)
            return None

    def delete(self, account_id: str) -> None:
        """Remove the session. No error if it does not exist."""
        try:
            self._cache.delete(session_key(account_id))
        except Exception as exc:
            logger.exception("Session cache delete failed")
            raise InternalError("Session cache unavailable") from exc
