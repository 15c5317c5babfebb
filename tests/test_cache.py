"""
tests/test_cache.py -- SQLite and Redis session cache backends.

SQLiteCache runs against a real in-memory database with a fake clock.
RedisCache gets a MagicMock client, so no Redis server is needed.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from cache.redis_store import RedisCache
from cache.store import SQLiteCache, build_cache
from core.config import Settings


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestSQLiteCache:
    def test_set_get_delete(self) -> None:
        cache = SQLiteCache(":memory:")
        cache.set("k", {"a": 1}, ttl_seconds=60)
        assert cache.get("k") == {"a": 1}
        cache.delete("k")
        assert cache.get("k") is None
        cache.delete("k")

    def test_entry_expires(self) -> None:
        """get() treats an entry past its TTL as missing."""
        clock = FakeClock()
        cache = SQLiteCache(":memory:", clock=clock)
        cache.set("k", {"a": 1}, ttl_seconds=60)
        clock.now += 59
        assert cache.get("k") == {"a": 1}
        clock.now += 1
        assert cache.get("k") is None

    def test_set_overwrites(self) -> None:
        cache = SQLiteCache(":memory:")
        cache.set("k", {"v": 1}, ttl_seconds=60)
        cache.set("k", {"v": 2}, ttl_seconds=60)
        assert cache.get("k") == {"v": 2}

    def test_purge_expired_counts_rows(self) -> None:
        clock = FakeClock()
        cache = SQLiteCache(":memory:", clock=clock)
        cache.set("short", {}, ttl_seconds=10)
        cache.set("long", {}, ttl_seconds=1000)
        clock.now += 100
        assert cache.purge_expired() == 1
        assert cache.get("long") == {}

    def test_non_positive_ttl_is_refused(self) -> None:
        with pytest.raises(ValueError):
            SQLiteCache(":memory:").set("k", {}, ttl_seconds=0)


class TestRedisCache:
    def test_set_uses_expiry(self) -> None:
        """Values are JSON strings set with EX=ttl."""
        client = MagicMock()
        cache = RedisCache("redis://localhost:6379/0", client=client)
        cache.set("k", {"a": 1}, ttl_seconds=120)
        client.set.assert_called_once_with("k", json.dumps({"a": 1}), ex=120)

    def test_get_decodes_json(self) -> None:
        client = MagicMock()
        client.get.return_value = '{"a": 1}'
        assert RedisCache("redis://x", client=client).get("k") == {"a": 1}

    def test_get_missing_key(self) -> None:
        client = MagicMock()
        client.get.return_value = None
        assert RedisCache("redis://x", client=client).get("k") is None

    def test_delete_and_purge(self) -> None:
        client = MagicMock()
        cache = RedisCache("redis://x", client=client)
        cache.delete("k")
        client.delete.assert_called_once_with("k")
        assert cache.purge_expired() == 0

    def test_non_positive_ttl_is_refused(self) -> None:
        with pytest.raises(ValueError):
            RedisCache("redis://x", client=MagicMock()).set("k", {}, ttl_seconds=0)


class TestBuildCache:
    def test_empty_url_selects_sqlite(self, tmp_path) -> None:
        settings = Settings(debug=True, cache_url="", cache_db_path=str(tmp_path / "cache.db"))
        cache = build_cache(settings)
        assert isinstance(cache, SQLiteCache)
        cache.close()

    def test_redis_url_selects_redis(self, monkeypatch) -> None:
        """redis:// builds a RedisCache and checks connectivity first."""
        verify = MagicMock()
        monkeypatch.setattr(RedisCache, "verify_connection", verify)
        settings = Settings(debug=True, cache_url="redis://localhost:6379/0")
        cache = build_cache(settings)
        assert isinstance(cache, RedisCache)
        verify.assert_called_once()
