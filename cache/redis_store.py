"""
cache/redis_store.py -- Redis-backed key-value cache with per-key TTL.

Same surface as cache.store.SQLiteCache. Values are JSON strings set with
EX=ttl, so Redis expires them on its own; nothing needs purging.

The client is synchronous: the auth core is synchronous and FastAPI runs
its routes in a thread pool. redis-py's connection pool is thread-safe.
Socket timeouts are explicit so a stalled Redis fails the request instead
of hanging it.
"""

from __future__ import annotations

import json
from typing import Optional

from redis import Redis


class RedisCache:
    """Thin Redis wrapper for refresh-session records."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0, client: Optional[Redis] = None):
        self.redis_url = redis_url
        self.client = client or Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """Assert Redis connectivity before serving requests."""
        self.client.ping()

    def get(self, key: str) -> Optional[dict]:
        raw = self.client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: dict, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.client.set(key, json.dumps(value), ex=int(ttl_seconds))

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def purge_expired(self) -> int:
        """Redis expires keys itself."""
        return 0

    def ping(self) -> bool:
        return bool(self.client.ping())

    def close(self) -> None:
        self.client.close()
