"""
Key/value cache stores with TTL support.

`CacheStore` is the capability interface consumed by the services. Three
implementations are selected at startup (see `create_cache_store`):

- RedisCacheStore: shared cache backed by redis.asyncio
- InMemoryCacheStore: process-local TTL store for development and tests
- NullCacheStore: always misses, used when caching is disabled

`JsonCache` wraps any store and makes every call best-effort: values are
JSON-encoded, calls are bounded by a timeout, and failures become misses.
"""
import asyncio
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Dict, Optional, Sequence, Type

import redis.asyncio as redis
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from redis.asyncio import Redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from app.core.exceptions import CacheUnavailableError
from app.core.telemetry import CACHE_LOOKUPS, cache_namespace

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """Abstract interface for cache implementations. Values are strings."""

    name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get value by key, returns None if not found or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Set value with optional TTL."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key, returns True if existed."""
        pass

    @abstractmethod
    async def delete_pattern(self, prefix: str) -> int:
        """Delete every key starting with prefix, returns count removed."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


class CacheEntry:
    """Single cache entry with expiration tracking."""

    def __init__(self, value: str, expires_at: Optional[float]) -> None:
        self.value = value
        self.expires_at = expires_at

    def is_expired(self) -> bool:
        """Check if entry has expired."""
        if self.expires_at is None:
            return False
        return time.time() > self.expires_at


class InMemoryCacheStore(CacheStore):
    """
    Thread-safe in-memory cache with TTL support.

    Usage:
        store = InMemoryCacheStore(default_ttl_seconds=300)
        await store.set("user_behavior:u1", payload)
    """

    name = "memory"

    def __init__(self, default_ttl_seconds: Optional[float] = None) -> None:
        self._store: Dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl_seconds
        self._lock = Lock()

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._store[key]
                return None
            return entry.value

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        expires_at = time.time() + ttl if ttl else None
        with self._lock:
            self._store[key] = CacheEntry(value, expires_at)

    async def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._store:
                del self._store[key]
                return True
            return False

    async def delete_pattern(self, prefix: str) -> int:
        with self._lock:
            matching = [k for k in self._store if k.startswith(prefix)]
            for key in matching:
                del self._store[key]
        return len(matching)

    def clear(self) -> None:
        """Clear all entries."""
        with self._lock:
            self._store.clear()

    def size(self) -> int:
        """Return number of entries (including possibly expired)."""
        with self._lock:
            return len(self._store)

    def cleanup_expired(self) -> int:
        """Remove expired entries, return count removed."""
        removed = 0
        with self._lock:
            expired_keys = [k for k, v in self._store.items() if v.is_expired()]
            for key in expired_keys:
                del self._store[key]
                removed += 1
        return removed


class NullCacheStore(CacheStore):
    """Cache that never stores anything. Every lookup is a miss."""

    name = "none"

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        return None

    async def delete(self, key: str) -> bool:
        return False

    async def delete_pattern(self, prefix: str) -> int:
        return 0


_GLOB_SPECIAL = re.compile(r"([\\*?\[\]])")


def escape_glob(prefix: str) -> str:
    """Escape redis MATCH metacharacters so the prefix matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", prefix)


# Errors that indicate a stale / broken connection and are safe to retry.
_RETRY_ERRORS: Sequence[Type[Exception]] = (
    RedisConnectionError,
    RedisTimeoutError,
    ConnectionResetError,
    OSError,
)

_RETRY = Retry(ExponentialBackoff(cap=0.5, base=0.05), retries=2)


def make_redis_client(redis_url: str) -> Redis:
    """Create a text-mode async Redis client (JSON strings in, str out)."""
    return redis.from_url(
        redis_url,
        decode_responses=True,
        health_check_interval=10,
        socket_keepalive=True,
        socket_connect_timeout=2,
        socket_timeout=2,
        retry=_RETRY,
        retry_on_error=list(_RETRY_ERRORS),
    )


class RedisCacheStore(CacheStore):
    """Redis-backed cache store. The client must use decode_responses=True."""

    name = "redis"

    def __init__(self, client: Redis) -> None:
        self._r = client

    async def get(self, key: str) -> Optional[str]:
        return await self._r.get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            await self._r.setex(key, int(ttl_seconds), value)
        else:
            await self._r.set(key, value)

    async def delete(self, key: str) -> bool:
        return bool(await self._r.delete(key))

    async def delete_pattern(self, prefix: str) -> int:
        keys = [key async for key in self._r.scan_iter(match=f"{escape_glob(prefix)}*", count=500)]
        if not keys:
            return 0
        return int(await self._r.delete(*keys))

    async def close(self) -> None:
        await self._r.aclose()


def create_cache_store(backend: str, redis_url: Optional[str] = None) -> CacheStore:
    """
    Build the configured cache store.

    Args:
        backend: "redis", "memory" or "none"
        redis_url: Required when backend is "redis"
    """
    backend = backend.lower()
    if backend == "redis":
        if not redis_url:
            raise ValueError("CACHE_BACKEND=redis requires REDIS_URL")
        return RedisCacheStore(make_redis_client(redis_url))
    if backend == "memory":
        return InMemoryCacheStore()
    if backend == "none":
        return NullCacheStore()
    raise ValueError(f"Unknown cache backend: {backend}")


class JsonCache:
    """
    Best-effort JSON cache on top of a CacheStore.

    Never raises: an unavailable or slow store behaves like an empty cache.
    """

    def __init__(self, store: CacheStore, timeout_ms: int = 50) -> None:
        self._store = store
        self._timeout = timeout_ms / 1000

    @property
    def backend(self) -> str:
        return self._store.name

    async def _call(self, operation: str, awaitable: Any) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise CacheUnavailableError(operation, "timeout") from e
        except Exception as e:
            raise CacheUnavailableError(operation, str(e) or type(e).__name__) from e

    async def get(self, key: str, adapter: Optional[TypeAdapter] = None) -> Any:
        """
        Fetch and decode a cached value.

        Args:
            key: Cache key
            adapter: Optional pydantic adapter used to validate the payload

        Returns:
            The decoded value, or None on miss, failure or invalid payload
        """
        namespace = cache_namespace(key)
        try:
            raw = await self._call("get", self._store.get(key))
        except CacheUnavailableError as e:
            logger.warning(f"Cache get failed, treating as miss: {e.message}", extra={"cache_key": key})
            CACHE_LOOKUPS.labels(namespace=namespace, outcome="error").inc()
            return None

        if raw is None:
            CACHE_LOOKUPS.labels(namespace=namespace, outcome="miss").inc()
            return None

        try:
            value = json.loads(raw)
            if adapter is not None:
                value = adapter.validate_python(value)
        except (ValueError, PydanticValidationError) as e:
            logger.warning(f"Discarding unreadable cache entry: {e}", extra={"cache_key": key})
            CACHE_LOOKUPS.labels(namespace=namespace, outcome="invalid").inc()
            return None

        CACHE_LOOKUPS.labels(namespace=namespace, outcome="hit").inc()
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Encode and store a value. Returns False if the store rejected it."""
        try:
            payload = json.dumps(value, separators=(",", ":"), default=str)
            await self._call("set", self._store.set(key, payload, ttl_seconds))
            return True
        except (CacheUnavailableError, TypeError) as e:
            logger.warning(f"Cache set failed: {e}", extra={"cache_key": key})
            return False

    async def delete(self, key: str) -> bool:
        try:
            return await self._call("delete", self._store.delete(key))
        except CacheUnavailableError as e:
            logger.warning(f"Cache delete failed: {e.message}", extra={"cache_key": key})
            return False

    async def delete_pattern(self, prefix: str) -> int:
        try:
            return await self._call("delete_pattern", self._store.delete_pattern(prefix))
        except CacheUnavailableError as e:
            logger.warning(f"Cache pattern delete failed: {e.message}", extra={"cache_key": prefix})
            return 0
