"""
Two-tier response cache.

Features:
- Memory-based session tier (L1) owned by one service instance
- Optional persisted tier (L2) shared across instances
- Fixed per-service TTL, oldest-created-first eviction at capacity
- Promotion of persisted hits into the session tier
- Best-effort persisted writes: storage failures never fail a response
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Protocol

from loguru import logger

from travelhub.services.errors import CachePersistenceError

MAX_KEY_LENGTH = 200

IDENTIFIER_SUFFIXES = ("Id", "Ids", "_id", "_ids")

Clock = Callable[[], datetime]


def _is_identifier(name: str) -> bool:
    return name == "id" or name.endswith(IDENTIFIER_SUFFIXES)


def normalize_params(value: Any, keep_case: bool = False) -> Any:
    """
    Canonical form of request parameters for keying and persistence.

    Strings are whitespace-collapsed and lower-cased, except values of
    identifier keys (``id``, ``offerId``, ``hotelIds`` ...), which are
    case-sensitive upstream.
    """
    if isinstance(value, Mapping):
        return {
            str(k): normalize_params(v, keep_case or _is_identifier(str(k)))
            for k, v in sorted(value.items(), key=lambda item: str(item[0]))
            if v is not None
        }
    if isinstance(value, (list, tuple)):
        return [normalize_params(v, keep_case) for v in value]
    if isinstance(value, str):
        collapsed = " ".join(value.split())
        return collapsed if keep_case else collapsed.lower()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def serialize_params(params: Mapping[str, Any]) -> str:
    """Compact, order-independent JSON for a parameter mapping."""
    return json.dumps(
        normalize_params(params),
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )


def generate_cache_key(namespace: str, params: Mapping[str, Any] | None = None) -> str:
    """Generate a cache key from a namespace and request params."""
    full_key = f"{namespace}:{serialize_params(params or {})}"

    # Hash long keys
    if len(full_key) > MAX_KEY_LENGTH:
        hash_val = hashlib.md5(full_key.encode()).hexdigest()[:16]
        return f"{namespace}:{hash_val}"

    return full_key


@dataclass
class CacheEntry:
    """A single cache entry. Replaced as a whole, never updated in place."""

    data: Any
    meta: dict[str, Any]
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is past its TTL."""
        return now >= self.expires_at


@dataclass
class CacheResult:
    """Result from cache lookup."""

    data: Any
    meta: dict[str, Any]
    from_cache: str  # 'session' | 'persisted'


@dataclass
class PersistedLookup:
    """Key fields of a persisted cache row."""

    lookup_key: str
    search_params: dict[str, Any] = field(default_factory=dict)


class PersistentStore(Protocol):
    """Durable cache storage shared across service instances."""

    async def load(
        self, lookup_key: str, search_params: Mapping[str, Any]
    ) -> CacheEntry | None: ...

    async def save(
        self,
        lookup_key: str,
        search_params: Mapping[str, Any],
        entry: CacheEntry,
    ) -> None: ...

    async def purge_expired(self) -> int: ...


@dataclass
class UsageStats:
    """Request and cache counters for one service."""

    request_count: int = 0
    cache_hits: int = 0
    session_hits: int = 0
    persisted_hits: int = 0
    misses: int = 0
    evictions: int = 0
    upstream_calls: int = 0
    retries: int = 0
    persist_failures: int = 0

    @property
    def cache_hit_rate(self) -> float:
        """Calculate cache hit rate."""
        if self.request_count == 0:
            return 0.0
        return self.cache_hits / self.request_count

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "request_count": self.request_count,
            "cache_hits": self.cache_hits,
            "cache_hit_rate": f"{self.cache_hit_rate:.1%}",
            "session_hits": self.session_hits,
            "persisted_hits": self.persisted_hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "upstream_calls": self.upstream_calls,
            "retries": self.retries,
            "persist_failures": self.persist_failures,
        }


class SessionCache:
    """
    Process-local cache tier with a fixed TTL and bounded size.

    When full, the entry created earliest is evicted before a new key is
    inserted. Reads do not refresh an entry's position.
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl: timedelta = timedelta(minutes=5),
        clock: Clock = datetime.now,
        name: str = "session",
        debug: bool = False,
    ):
        self._memory: dict[str, CacheEntry] = {}
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._name = name
        self._debug = debug
        self.evictions = 0

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        return len(self._memory)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> CacheEntry | None:
        """Return a live entry, dropping it if it has expired."""
        entry = self._memory.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._memory[key]
            self._log(f"EXPIRED: {key[:50]}...")
            return None

        return entry

    def set(
        self,
        key: str,
        data: Any,
        meta: dict[str, Any] | None = None,
        expires_at: datetime | None = None,
    ) -> CacheEntry:
        """Store a new entry, evicting the oldest one if at capacity."""
        now = self._clock()
        entry = CacheEntry(
            data=data,
            meta=meta or {},
            created_at=now,
            expires_at=expires_at or now + self._ttl,
        )

        if key not in self._memory:
            while len(self._memory) >= self._max_size and self._memory:
                self._evict_oldest()

        self._memory[key] = entry
        self._log(f"SET: {key[:50]}... (TTL: {self._ttl.total_seconds()}s)")
        return entry

    def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        if key in self._memory:
            del self._memory[key]
            self._log(f"DELETE: {key[:50]}...")
            return True
        return False

    def invalidate(self, pattern: str) -> int:
        """
        Invalidate all keys starting with a prefix.

        Args:
            pattern: Key prefix, usually a namespace such as ``"flights:offers"``

        Returns:
            Number of entries invalidated
        """
        keys_to_delete = [k for k in self._memory if k.startswith(pattern)]
        for key in keys_to_delete:
            del self._memory[key]

        if keys_to_delete:
            self._log(f"INVALIDATE: {len(keys_to_delete)} entries matching '{pattern}'")

        return len(keys_to_delete)

    def clear(self) -> int:
        """Clear all cache entries."""
        count = len(self._memory)
        self._memory.clear()
        self._log(f"CLEAR: {count} entries removed")
        return count

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._memory[key]

        if expired_keys:
            logger.debug(
                f"[{self._name}] Cleaned {len(expired_keys)} expired cache entries"
            )

        return len(expired_keys)

    def _evict_oldest(self) -> None:
        """Evict the entry created earliest."""
        oldest_key = min(
            self._memory.keys(),
            key=lambda k: self._memory[k].created_at,
        )
        del self._memory[oldest_key]
        self.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}...")

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[{self._name}] {message}")


class TieredCache:
    """
    Session tier in front of an optional persisted tier.

    Usage:
        cache = TieredCache(SessionCache(max_size=1000), store=store)

        result = await cache.get(key, lookup=PersistedLookup("paris", params))
        if result:
            return result.data

        data = await fetch_data()
        await cache.set(key, data, meta, lookup=PersistedLookup("paris", params))
    """

    def __init__(
        self,
        session: SessionCache,
        store: PersistentStore | None = None,
        persist_ttl: timedelta | None = None,
        stats: UsageStats | None = None,
        clock: Clock = datetime.now,
        name: str = "cache",
    ):
        self.session = session
        self.store = store
        self.persist_ttl = persist_ttl or session.ttl
        self.stats = stats or UsageStats()
        self._clock = clock
        self._name = name

    async def get(
        self,
        key: str,
        lookup: PersistedLookup | None = None,
        record: bool = True,
    ) -> CacheResult | None:
        """
        Look a key up in the session tier, then the persisted tier.

        Persisted hits are promoted into the session tier. Both kinds of hit
        count the same way in the usage statistics; ``record=False`` leaves
        the statistics untouched.
        """
        if record:
            self.stats.request_count += 1

        hit = self._session_hit(key, record)
        if hit is not None:
            return hit

        if self.store is not None and lookup is not None:
            stored = await self._load(lookup)

            # Another call may have filled the session tier while the store was read
            hit = self._session_hit(key, record)
            if hit is not None:
                return hit

            if stored is not None and not stored.is_expired(self._clock()):
                expires_at = min(
                    stored.expires_at, self._clock() + self.session.ttl
                )
                self.session.set(key, stored.data, stored.meta, expires_at=expires_at)
                self._sync_evictions()
                if record:
                    self.stats.cache_hits += 1
                    self.stats.persisted_hits += 1
                logger.debug(
                    f"[{self._name}] Persisted cache hit: {lookup.lookup_key}"
                )
                return CacheResult(
                    data=stored.data, meta=stored.meta, from_cache="persisted"
                )

        if record:
            self.stats.misses += 1
        return None

    def _session_hit(self, key: str, record: bool) -> CacheResult | None:
        entry = self.session.get(key)
        if entry is None:
            return None
        if record:
            self.stats.cache_hits += 1
            self.stats.session_hits += 1
        logger.debug(f"[{self._name}] Session cache hit: {key[:50]}...")
        return CacheResult(data=entry.data, meta=entry.meta, from_cache="session")

    def peek(self, key: str) -> CacheEntry | None:
        """Read the session tier without touching statistics."""
        return self.session.get(key)

    async def set(
        self,
        key: str,
        data: Any,
        meta: dict[str, Any] | None = None,
        lookup: PersistedLookup | None = None,
        ttl: timedelta | None = None,
    ) -> CacheEntry:
        """
        Write the session tier, then the persisted tier best-effort.

        ``ttl`` overrides the session TTL for this entry.
        """
        expires_at = self._clock() + ttl if ttl is not None else None
        entry = self.session.set(key, data, meta, expires_at=expires_at)
        self._sync_evictions()

        if self.store is not None and lookup is not None:
            persisted = CacheEntry(
                data=entry.data,
                meta=entry.meta,
                created_at=entry.created_at,
                expires_at=entry.created_at + self.persist_ttl,
            )
            try:
                await self.store.save(lookup.lookup_key, lookup.search_params, persisted)
            except CachePersistenceError as e:
                self.stats.persist_failures += 1
                logger.warning(
                    f"[{self._name}] Persisted cache write failed for "
                    f"'{lookup.lookup_key}': {e}"
                )

        return entry

    def invalidate(self, key: str | None = None, namespace: str | None = None) -> int:
        """Drop one key, a namespace, or (with no arguments) everything."""
        if key is not None:
            return int(self.session.delete(key))
        if namespace is not None:
            return self.session.invalidate(f"{namespace}:")
        return self.session.clear()

    def cleanup_expired(self) -> int:
        return self.session.cleanup_expired()

    def __len__(self) -> int:
        return len(self.session)

    async def _load(self, lookup: PersistedLookup) -> CacheEntry | None:
        try:
            return await self.store.load(lookup.lookup_key, lookup.search_params)
        except CachePersistenceError as e:
            self.stats.persist_failures += 1
            logger.warning(
                f"[{self._name}] Persisted cache read failed for "
                f"'{lookup.lookup_key}': {e}"
            )
            return None

    def _sync_evictions(self) -> None:
        self.stats.evictions = self.session.evictions
