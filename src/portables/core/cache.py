"""
Cache backends for lightweight cross-process markers.

The cancellation registry keeps one small string per running job in a
``CacheBackend``. In a single process ``InMemoryCache`` is enough; when
several scheduler workers share jobs, ``RedisCache`` makes the marker
reachable from any of them, so an administrative "cancel" issued in one
process is observed by the job running in another.

Architecture:
    ::

        CacheBackend (Protocol)
        ├── InMemoryCache  : single process, bounded, TTL, lock-protected
        └── RedisCache     : distributed, JSON values

        API: get(key) → value | None
             set(key, value, ttl_seconds=None)
             replace(key, value) → bool
             delete(key)
             exists(key) → bool
             keys(prefix) → list[str]

Guardrails:
    ❌ DON'T: Put live objects (tokens, connections) in a cache
    ✅ DO: Store JSON-serializable markers keyed by job

Tags:
    cache, redis, in-memory, ttl, portables, cancellation
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Protocol


class CacheBackend(Protocol):
    """Protocol for cache backend implementations."""

    def get(self, key: str) -> Any | None:
        """Retrieve a value, or ``None`` if missing or expired."""
        ...

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a JSON-serializable value with optional TTL."""
        ...

    def replace(self, key: str, value: Any) -> bool:
        """Overwrite *key* only if it still exists. Returns whether it was written."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key. No-op if it does not exist."""
        ...

    def exists(self, key: str) -> bool:
        """Check if a key exists and has not expired."""
        ...

    def keys(self, prefix: str = "") -> list[str]:
        """List live keys starting with *prefix*."""
        ...


# ------------------------------------------------------------------ #
# In-Memory Cache
# ------------------------------------------------------------------ #


class InMemoryCache:
    """Bounded in-memory cache with TTL support.

    Uses LRU eviction when ``max_size`` is reached. All operations are
    serialized by a lock so concurrent jobs may share one instance.

    Example:
        cache = InMemoryCache(max_size=500, default_ttl_seconds=None)
        cache.set("portables:export:42", "running")
    """

    def __init__(
        self,
        *,
        max_size: int = 10_000,
        default_ttl_seconds: int | None = None,
    ):
        self._store: dict[str, tuple[Any, float | None]] = {}
        self._access_order: list[str] = []
        self._max_size = max_size
        self._default_ttl = default_ttl_seconds
        self._lock = threading.RLock()

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        with self._lock:
            if key not in self._store:
                return None

            value, expires_at = self._store[key]
            if expires_at is not None and time.time() > expires_at:
                self._remove(key)
                return None

            self._touch(key)
            return value

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        expires_at = (time.time() + ttl) if ttl else None

        with self._lock:
            # Evict LRU if at capacity
            if key not in self._store and len(self._store) >= self._max_size:
                if self._access_order:
                    lru_key = self._access_order.pop(0)
                    self._store.pop(lru_key, None)

            self._store[key] = (value, expires_at)
            self._touch(key)

    def replace(self, key: str, value: Any) -> bool:
        """Overwrite a live key, keeping its expiry."""
        with self._lock:
            if self.get(key) is None:
                return False
            _, expires_at = self._store[key]
            self._store[key] = (value, expires_at)
            return True

    def delete(self, key: str) -> None:
        """Remove a key from the cache."""
        with self._lock:
            self._remove(key)

    def exists(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        return self.get(key) is not None

    def keys(self, prefix: str = "") -> list[str]:
        """List live keys starting with *prefix*."""
        with self._lock:
            return [k for k in list(self._store) if k.startswith(prefix) and self.exists(k)]

    def size(self) -> int:
        """Return current number of cached keys."""
        with self._lock:
            return len(self._store)

    def _touch(self, key: str) -> None:
        if key in self._access_order:
            self._access_order.remove(key)
        self._access_order.append(key)

    def _remove(self, key: str) -> None:
        self._store.pop(key, None)
        if key in self._access_order:
            self._access_order.remove(key)


# ------------------------------------------------------------------ #
# Redis Cache (optional)
# ------------------------------------------------------------------ #


class RedisCache:
    """Redis-backed distributed cache.

    Requires the ``redis`` package (``pip install portables[redis]``).

    Example:
        cache = RedisCache("redis://localhost:6379/0")
        cache.set("portables:import:7", "running")
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        default_ttl_seconds: int | None = None,
        client: Any | None = None,
    ):
        if client is None:
            try:
                import redis
            except ImportError as exc:
                msg = (
                    "Redis backend requires 'redis' package. "
                    "Install with: pip install portables[redis]"
                )
                raise ImportError(msg) from exc
            client = redis.from_url(url, decode_responses=False)

        self._client = client
        self._default_ttl = default_ttl_seconds

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        raw = self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        serialized = json.dumps(value)

        if ttl:
            self._client.setex(key, ttl, serialized)
        else:
            self._client.set(key, serialized)

    def replace(self, key: str, value: Any) -> bool:
        """Overwrite a live key in one round trip (SET XX, keeping its TTL)."""
        return bool(self._client.set(key, json.dumps(value), xx=True, keepttl=True))

    def delete(self, key: str) -> None:
        """Remove a key from the cache."""
        self._client.delete(key)

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return bool(self._client.exists(key))

    def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with *prefix* (SCAN, not KEYS)."""
        found = []
        for raw in self._client.scan_iter(match=f"{prefix}*"):
            found.append(raw.decode() if isinstance(raw, bytes) else raw)
        return found


__all__ = [
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
]
