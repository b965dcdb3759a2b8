"""
Tests for portables.core.cache backends.

The Redis backend is exercised against a minimal in-test client double
so no server is required.
"""

import time

import pytest

from portables.core.cache import InMemoryCache, RedisCache


class TestInMemoryCache:
    def test_set_get_delete(self):
        cache = InMemoryCache()
        cache.set("k", "running")
        assert cache.get("k") == "running"
        assert cache.exists("k")
        cache.delete("k")
        assert cache.get("k") is None
        assert not cache.exists("k")

    def test_delete_missing_is_noop(self):
        InMemoryCache().delete("missing")

    def test_ttl_expiry(self):
        cache = InMemoryCache()
        cache.set("k", "v", ttl_seconds=1)
        assert cache.exists("k")
        cache._store["k"] = ("v", time.time() - 1)
        assert cache.get("k") is None

    def test_lru_eviction(self):
        cache = InMemoryCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.exists("a")
        assert not cache.exists("b")
        assert cache.size() == 2

    def test_keys_by_prefix(self):
        cache = InMemoryCache()
        cache.set("portables:export:1", "running")
        cache.set("portables:import:2", "running")
        cache.set("other", "x")
        assert sorted(cache.keys("portables:")) == ["portables:export:1", "portables:import:2"]

    def test_replace_only_live_keys(self):
        cache = InMemoryCache()
        assert cache.replace("k", "cancel_requested") is False
        assert not cache.exists("k")

        cache.set("k", "running", ttl_seconds=60)
        expires_at = cache._store["k"][1]
        assert cache.replace("k", "cancel_requested") is True
        assert cache._store["k"] == ("cancel_requested", expires_at)


class FakeRedis:
    """Just enough of the redis client surface for RedisCache."""

    def __init__(self):
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, xx=False, keepttl=False):
        if xx and key not in self.data:
            return None
        if not keepttl:
            self.ttls.pop(key, None)
        self.data[key] = value.encode()
        return True

    def setex(self, key, ttl, value):
        self.set(key, value)
        self.ttls[key] = ttl

    def delete(self, key):
        self.data.pop(key, None)

    def exists(self, key):
        return int(key in self.data)

    def scan_iter(self, match):
        prefix = match.rstrip("*")
        return [k.encode() for k in self.data if k.startswith(prefix)]


class TestRedisCache:
    @pytest.fixture
    def client(self):
        return FakeRedis()

    def test_json_round_trip(self, client):
        cache = RedisCache(client=client)
        cache.set("k", {"marker": "running"})
        assert client.data["k"] == b'{"marker": "running"}'
        assert cache.get("k") == {"marker": "running"}

    def test_ttl_uses_setex(self, client):
        cache = RedisCache(client=client, default_ttl_seconds=30)
        cache.set("k", "v")
        assert client.ttls["k"] == 30

    def test_keys_decoded(self, client):
        cache = RedisCache(client=client)
        cache.set("portables:export:1", "running")
        cache.set("x", "y")
        assert cache.keys("portables:") == ["portables:export:1"]

    def test_exists_delete(self, client):
        cache = RedisCache(client=client)
        cache.set("a", 1)
        assert cache.exists("a")
        cache.delete("a")
        assert not cache.exists("a")

    def test_replace_uses_set_xx(self, client):
        cache = RedisCache(client=client)
        assert cache.replace("k", "cancel_requested") is False
        assert "k" not in client.data

        client.setex("k", 30, '"running"')
        assert cache.replace("k", "cancel_requested") is True
        assert cache.get("k") == "cancel_requested"
        assert client.ttls["k"] == 30
