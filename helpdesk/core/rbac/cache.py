"""Short-lived cache for computed access scopes.

Cache-aside: ``ScopeCache.get_or_compute`` reads the backing store and
falls back to computing the scope when the entry is missing, unreadable, or
the store itself fails. The cache is never the source of truth; role and
team mutations invalidate the affected user's entry.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis

from .scope import AccessScope

logger = logging.getLogger(__name__)

KEY_PREFIX = "rbac:access_scope:"


class CacheStore(Protocol):
    """Backing store for ``ScopeCache``."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryCacheStore:
    """Per-process TTL store."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 10000):
        self._clock = clock
        self._max_entries = max_entries
        self._entries: Dict[str, Tuple[float, str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            if len(self._entries) >= self._max_entries:
                self._entries = {k: v for k, v in self._entries.items() if v[0] > now}
            self._entries[key] = (now + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisCacheStore:
    """Shared store for deployments running several API processes."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        return cls(redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        ))

    def get(self, key: str) -> Optional[str]:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        self._client.setex(key, ttl, value)

    def delete(self, key: str) -> None:
        self._client.delete(key)


class NullCacheStore:
    """Disables caching: every lookup is computed."""

    def get(self, key: str) -> Optional[str]:
        return None

    def set(self, key: str, value: str, ttl: int) -> None:
        return None

    def delete(self, key: str) -> None:
        return None


class ScopeCache:
    """Cache-aside access scope cache keyed by user id."""

    def __init__(self, store: CacheStore, ttl: int = 60):
        if ttl < 1:
            raise ValueError("Scope cache TTL must be at least one second")
        self.store = store
        self.ttl = ttl

    @staticmethod
    def key_for(user_id) -> str:
        return f"{KEY_PREFIX}{user_id}"

    def get_or_compute(self, user_id, compute: Callable[[], AccessScope]) -> AccessScope:
        key = self.key_for(user_id)

        try:
            raw = self.store.get(key)
        except Exception:
            logger.warning("Scope cache read failed for %s, computing directly", user_id, exc_info=True)
            return compute()

        if raw is not None:
            try:
                return AccessScope.from_json(raw)
            except (ValueError, KeyError, TypeError):
                logger.warning("Discarding malformed scope cache entry for %s", user_id)

        scope = compute()

        try:
            self.store.set(key, scope.to_json(), self.ttl)
        except Exception:
            logger.warning("Scope cache write failed for %s", user_id, exc_info=True)

        return scope

    def invalidate(self, user_id) -> None:
        try:
            self.store.delete(self.key_for(user_id))
        except Exception:
            logger.warning("Scope cache invalidation failed for %s", user_id, exc_info=True)


def build_scope_cache(backend: str, ttl: int, redis_url: Optional[str] = None) -> ScopeCache:
    """Create the scope cache selected by configuration."""
    if backend == "redis":
        if not redis_url:
            raise ValueError("redis_url is required for the redis scope cache")
        return ScopeCache(RedisCacheStore.from_url(redis_url), ttl=ttl)
    if backend == "none":
        return ScopeCache(NullCacheStore(), ttl=ttl)
    return ScopeCache(MemoryCacheStore(), ttl=ttl)
