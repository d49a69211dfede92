"""
Service layer infrastructure - resilience patterns for Amadeus API calls.

Provides:
- TieredCache: Session cache with a persisted fallback, TTL and eviction
- RequestDeduplicator: Prevents duplicate concurrent requests
- retry_with_backoff: Exponential backoff for transient failures
- AmadeusClient: Authenticated HTTP client with error mapping
"""

from travelhub.services.errors import (
    ServiceError,
    ValidationError,
    CachePersistenceError,
    UpstreamError,
    UpstreamTransientError,
    UpstreamPermanentError,
    RateLimitError,
    RequestTimeoutError,
    RetryExhaustedError,
    NotFoundError,
    AuthenticationError,
)
from travelhub.services.cache import (
    CacheEntry,
    CacheResult,
    PersistedLookup,
    PersistentStore,
    SessionCache,
    TieredCache,
    UsageStats,
    generate_cache_key,
)
from travelhub.services.deduplicator import RequestDeduplicator
from travelhub.services.retry import RetryPolicy, is_transient, retry_with_backoff
from travelhub.services.client import AmadeusClient

__all__ = [
    # Errors
    "ServiceError",
    "ValidationError",
    "CachePersistenceError",
    "UpstreamError",
    "UpstreamTransientError",
    "UpstreamPermanentError",
    "RateLimitError",
    "RequestTimeoutError",
    "RetryExhaustedError",
    "NotFoundError",
    "AuthenticationError",
    # Cache
    "CacheEntry",
    "CacheResult",
    "PersistedLookup",
    "PersistentStore",
    "SessionCache",
    "TieredCache",
    "UsageStats",
    "generate_cache_key",
    # Deduplicator
    "RequestDeduplicator",
    # Retry
    "RetryPolicy",
    "is_transient",
    "retry_with_backoff",
    # Client
    "AmadeusClient",
]
