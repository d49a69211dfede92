"""
Application wiring - builds every long-lived object once and owns its lifecycle.
"""

from datetime import timedelta
from typing import Any

from loguru import logger

from travelhub.datasource.activities import ActivityService
from travelhub.datasource.base import BaseAmadeusService
from travelhub.datasource.flights import FlightService
from travelhub.datasource.hotels import HotelService
from travelhub.datasource.locations import LocationService
from travelhub.datasource.scheduler import CacheScheduler
from travelhub.datastore.engine import Database
from travelhub.datastore.models import CachedActivityDB, CachedLocationDB
from travelhub.datastore.repositories import SqlCacheStore
from travelhub.services.client import AmadeusClient
from travelhub.services.errors import CachePersistenceError
from travelhub.services.retry import RetryPolicy
from travelhub.settings import Settings


class TravelContext:
    """
    Holds the client, database, services and scheduler for one process.

    Usage:
        context = TravelContext(settings)
        await context.start()
        ...
        await context.close()
    """

    def __init__(
        self,
        settings: Settings,
        client: AmadeusClient | None = None,
        enable_scheduler: bool = True,
    ):
        self.settings = settings
        self.enable_scheduler = enable_scheduler
        self.database = Database(settings.database_url, echo=settings.database_echo)
        self.client = client or AmadeusClient(
            base_url=settings.amadeus_base_url,
            api_key=settings.amadeus_api_key,
            api_secret=settings.amadeus_api_secret,
            timeout=settings.amadeus_timeout,
        )
        self.flights: FlightService | None = None
        self.locations: LocationService | None = None
        self.activities: ActivityService | None = None
        self.hotels: HotelService | None = None
        self.scheduler: CacheScheduler | None = None

    @property
    def services(self) -> list[BaseAmadeusService]:
        services = (self.flights, self.locations, self.activities, self.hotels)
        return [s for s in services if s]

    async def start(self) -> None:
        """Open the database, build the services and start background jobs."""
        settings = self.settings
        await self.database.init()

        retry_policy = RetryPolicy(
            max_retries=settings.retry_max_retries,
            base_delay=settings.retry_base_delay,
            jitter=settings.retry_jitter,
        )
        debug = settings.log_level.upper() == "DEBUG"

        self.flights = FlightService(
            self.client,
            markup_percent=settings.flight_markup_percent,
            cache_ttl=timedelta(minutes=settings.flight_cache_ttl_minutes),
            max_cache_size=settings.flight_cache_max_size,
            retry_policy=retry_policy,
            debug=debug,
        )
        self.locations = LocationService(
            self.client,
            store=SqlCacheStore(self.database.session_factory, CachedLocationDB),
            cache_ttl=timedelta(minutes=settings.location_cache_ttl_minutes),
            max_cache_size=settings.location_cache_max_size,
            persist_ttl=timedelta(hours=settings.location_persist_ttl_hours),
            warm_batch_size=settings.cache_warm_batch_size,
            warm_batch_delay=settings.cache_warm_batch_delay,
            warm_rate_limit_delay=settings.cache_warm_rate_limit_delay,
            retry_policy=retry_policy,
            debug=debug,
        )
        self.activities = ActivityService(
            self.client,
            store=SqlCacheStore(self.database.session_factory, CachedActivityDB),
            cache_ttl=timedelta(minutes=settings.activity_cache_ttl_minutes),
            max_cache_size=settings.activity_cache_max_size,
            persist_ttl=timedelta(hours=settings.activity_persist_ttl_hours),
            currency=settings.activity_currency,
            fx_rate=settings.activity_fx_rate,
            retry_policy=retry_policy,
            debug=debug,
        )
        self.hotels = HotelService(
            self.client,
            cache_ttl=timedelta(minutes=settings.hotel_cache_ttl_minutes),
            max_cache_size=settings.hotel_cache_max_size,
            retry_policy=retry_policy,
            debug=debug,
        )

        if not self.client.is_configured():
            logger.warning("Amadeus credentials are not set; upstream calls will fail")

        if self.enable_scheduler:
            self.scheduler = CacheScheduler(settings, self.locations, self.services)
            self.scheduler.start()

        logger.info(f"TravelContext started ({settings.environment})")

    async def get_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {}
        for service in self.services:
            service_stats = service.get_stats()
            store = service.cache.store
            if isinstance(store, SqlCacheStore):
                try:
                    service_stats["persisted"] = await store.get_stats()
                except CachePersistenceError as e:
                    logger.warning(
                        f"Persisted stats unavailable for {service.service_id}: {e}"
                    )
                    service_stats["persisted"] = None
            stats[service.service_id] = service_stats
        stats["scheduler"] = self.scheduler.get_status() if self.scheduler else None
        return stats

    async def close(self) -> None:
        """Stop jobs, cancel in-flight requests and release connections."""
        if self.scheduler is not None:
            self.scheduler.stop()
            self.scheduler = None

        for service in self.services:
            await service.close()

        await self.client.close()
        await self.database.close()
        logger.info("TravelContext closed")
