"""
Base class for the Amadeus-facing services.

Every cached operation runs the same pipeline:

    key -> session tier -> persisted tier -> join or start the in-flight
    request -> upstream call with backoff -> shape -> populate cache -> respond

Shaping happens once, inside the shared request, so cached and live
responses have identical shapes.
"""

import asyncio
from abc import ABC
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, ClassVar, Mapping, TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from travelhub.services.cache import (
    PersistedLookup,
    PersistentStore,
    SessionCache,
    TieredCache,
    UsageStats,
    generate_cache_key,
)
from travelhub.services.client import AmadeusClient
from travelhub.services.deduplicator import RequestDeduplicator
from travelhub.services.errors import (
    CachePersistenceError,
    ServiceError,
    UpstreamError,
    ValidationError,
)
from travelhub.services.retry import RetryPolicy, retry_with_backoff

P = TypeVar("P", bound=BaseModel)

Shaped = tuple[Any, dict[str, Any]]


class AmadeusModel(BaseModel):
    """Upstream payload; unknown fields are ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class RequestParams(BaseModel):
    """Inbound parameters; accepts Amadeus camelCase or snake_case names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    def to_query(self) -> dict[str, Any]:
        """Upstream query parameters."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GeoCode(AmadeusModel):
    latitude: float
    longitude: float


class ListEnvelope(AmadeusModel):
    """``{"data": [...], "meta": {...}}`` response body."""

    data: list[dict[str, Any]] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class ItemEnvelope(AmadeusModel):
    """``{"data": {...}}`` response body."""

    data: dict[str, Any]
    meta: dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """What every service operation returns."""

    data: Any
    meta: dict[str, Any] = Field(default_factory=dict)
    from_cache: str | None = None  # 'session' | 'persisted' | None


class BaseAmadeusService(ABC):
    """
    Abstract base class for Amadeus-facing services.

    Subclasses:
    - Set SERVICE_ID
    - Build their operations on ``_cached_fetch``
    - Validate upstream payloads into pydantic models while shaping
    """

    SERVICE_ID: ClassVar[str] = "amadeus"

    def __init__(
        self,
        client: AmadeusClient,
        cache_ttl: timedelta,
        max_cache_size: int,
        store: PersistentStore | None = None,
        persist_ttl: timedelta | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        debug: bool = False,
    ):
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.stats = UsageStats()
        self.cache = TieredCache(
            SessionCache(
                max_size=max_cache_size,
                ttl=cache_ttl,
                clock=clock,
                name=f"{self.SERVICE_ID}-session",
                debug=debug,
            ),
            store=store,
            persist_ttl=persist_ttl,
            stats=self.stats,
            clock=clock,
            name=self.SERVICE_ID,
        )
        self.deduplicator = RequestDeduplicator(name=self.SERVICE_ID, debug=debug)
        self._sleep = sleep

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def parse_params(self, model: type[P], params: P | Mapping[str, Any]) -> P:
        """Validate inbound params, raising ``ValidationError`` on bad input."""
        if isinstance(params, model):
            return params
        try:
            return model.model_validate(params)
        except PydanticValidationError as e:
            raise ValidationError(
                _describe_validation_error(e), service_id=self.service_id
            ) from e

    def generate_cache_key(self, namespace: str, params: Mapping[str, Any]) -> str:
        return generate_cache_key(f"{self.service_id}:{namespace}", params)

    async def _cached_fetch(
        self,
        operation: str,
        namespace: str,
        params: Mapping[str, Any],
        fetch: Callable[[], Awaitable[dict[str, Any]]],
        shape: Callable[[dict[str, Any]], Shaped],
        lookup: PersistedLookup | None = None,
        persist_if: Callable[[Any], bool] | None = None,
        ttl: timedelta | None = None,
    ) -> SearchResult:
        """
        Answer a request from cache, or fetch, shape and cache it once.

        Args:
            operation: Human readable label for logs and errors
            namespace: Cache namespace within this service
            params: Parameters that identify the request
            fetch: Performs one upstream attempt
            shape: Validates and transforms the raw payload into (data, meta)
            lookup: Persisted tier key fields, for services that persist
            persist_if: Predicate on shaped data deciding whether to persist
            ttl: Session TTL for this entry, overriding the service default
        """
        key = self.generate_cache_key(namespace, params)

        try:
            cached = await self.cache.get(key, lookup)
            if cached is not None:
                return SearchResult(
                    data=cached.data, meta=cached.meta, from_cache=cached.from_cache
                )

            async def load() -> Shaped:
                raw = await self._call_upstream(operation, fetch)
                data, meta = self._shape(operation, raw, shape)
                persisted = lookup if persist_if is None or persist_if(data) else None
                await self.cache.set(key, data, meta, lookup=persisted, ttl=ttl)
                return data, meta

            data, meta = await self.deduplicator.dedupe(key, load)
            return SearchResult(data=data, meta=meta)

        except ServiceError as e:
            logger.error(f"{self.service_id} service error during {operation}: {e}")
            raise

    async def _uncached_call(
        self,
        operation: str,
        fetch: Callable[[], Awaitable[dict[str, Any]]],
        shape: Callable[[dict[str, Any]], Shaped],
        retry: bool = True,
    ) -> SearchResult:
        """Call upstream without caching or deduplication."""
        try:
            raw = await self._call_upstream(operation, fetch, retry=retry)
            data, meta = self._shape(operation, raw, shape)
            return SearchResult(data=data, meta=meta)
        except ServiceError as e:
            logger.error(f"{self.service_id} service error during {operation}: {e}")
            raise

    async def _call_upstream(
        self,
        operation: str,
        fetch: Callable[[], Awaitable[dict[str, Any]]],
        retry: bool = True,
    ) -> dict[str, Any]:
        async def attempt() -> dict[str, Any]:
            self.stats.upstream_calls += 1
            logger.info(f"{self.service_id}: fetching {operation} from Amadeus")
            return await fetch()

        if not retry:
            return await attempt()

        return await retry_with_backoff(
            attempt,
            max_retries=self.retry_policy.max_retries,
            base_delay=self.retry_policy.base_delay,
            jitter=self.retry_policy.jitter,
            on_retry=self._record_retry,
            sleep=self._sleep,
            operation_name=f"{self.service_id} {operation}",
        )

    def _shape(
        self,
        operation: str,
        raw: dict[str, Any],
        shape: Callable[[dict[str, Any]], Shaped],
    ) -> Shaped:
        try:
            return shape(raw)
        except PydanticValidationError as e:
            raise UpstreamError(
                f"Malformed Amadeus response for {operation}: "
                f"{_describe_validation_error(e)}",
                service_id=self.service_id,
            ) from e

    def _record_retry(self, retry: int, delay: float, error: Exception) -> None:
        self.stats.retries += 1

    def _get(
        self, endpoint: str, params: Mapping[str, Any] | None = None
    ) -> Callable[[], Awaitable[dict[str, Any]]]:
        """Fetch callable for a GET request."""
        query = dict(params) if params else None
        return lambda: self.client.request("GET", endpoint, params=query)

    def _post(
        self, endpoint: str, body: dict[str, Any]
    ) -> Callable[[], Awaitable[dict[str, Any]]]:
        """Fetch callable for a POST request."""
        return lambda: self.client.request("POST", endpoint, json_data=body)

    # Maintenance and monitoring

    def clear_expired_session_cache(self) -> int:
        """Remove expired session entries."""
        cleared = self.cache.cleanup_expired()
        if cleared:
            logger.info(f"{self.service_id}: cleared {cleared} expired session entries")
        return cleared

    async def purge_persisted_cache(self) -> int:
        """Ask the persisted tier to drop its expired rows."""
        if self.cache.store is None:
            return 0
        try:
            return await self.cache.store.purge_expired()
        except CachePersistenceError as e:
            logger.warning(f"{self.service_id}: persisted cache purge failed: {e}")
            return 0

    def invalidate_cache(self, namespace: str | None = None) -> int:
        """Drop session entries for one namespace, or all of them."""
        if namespace is None:
            return self.cache.invalidate()
        return self.cache.invalidate(namespace=f"{self.service_id}:{namespace}")

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of usage counters and cache occupancy."""
        stats = self.stats.to_dict()
        stats.update(
            {
                "service": self.service_id,
                "session_cache_size": len(self.cache),
                "max_session_cache_size": self.cache.session.max_size,
                "cache_ttl_seconds": int(self.cache.session.ttl.total_seconds()),
                "pending_requests": self.deduplicator.get_in_flight_count(),
                "deduplication": self.deduplicator.get_stats().to_dict(),
            }
        )
        return stats

    def get_cost_stats(self) -> dict[str, Any]:
        return self.get_stats()

    async def close(self) -> None:
        await self.deduplicator.cancel_all()


def _describe_validation_error(error: PydanticValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "params"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)


def shape_list(raw: dict[str, Any]) -> Shaped:
    """Pass a list response through after checking its envelope."""
    envelope = ListEnvelope.model_validate(raw)
    return envelope.data, envelope.meta


def shape_item(raw: dict[str, Any]) -> Shaped:
    """Pass a single-record response through after checking its envelope."""
    envelope = ItemEnvelope.model_validate(raw)
    return envelope.data, envelope.meta
