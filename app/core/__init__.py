"""Core infrastructure components."""
from .cache import (
    CacheStore,
    InMemoryCacheStore,
    JsonCache,
    NullCacheStore,
    RedisCacheStore,
    create_cache_store,
)
from .circuit_breaker import CircuitBreaker, CircuitState
from .exceptions import (
    AppException,
    CacheUnavailableError,
    CircuitBreakerOpenError,
    DataAccessError,
    RankingServiceError,
)
from .timeouts import bounded

__all__ = [
    "AppException",
    "CacheStore",
    "CacheUnavailableError",
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "DataAccessError",
    "InMemoryCacheStore",
    "JsonCache",
    "NullCacheStore",
    "RankingServiceError",
    "RedisCacheStore",
    "bounded",
    "create_cache_store",
]
