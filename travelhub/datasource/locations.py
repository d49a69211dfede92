"""
Airport and city lookups against the Amadeus reference-data APIs.

Keyword searches are persisted so they survive restarts and are shared by
every instance; everything else lives in the session tier.
"""

import asyncio
import math
import re
from datetime import timedelta
from typing import Any, Iterable, Literal, Mapping

from loguru import logger
from pydantic import Field, field_validator, model_validator

from travelhub.datasource.base import (
    AmadeusModel,
    BaseAmadeusService,
    GeoCode,
    RequestParams,
    SearchResult,
    Shaped,
    shape_list,
)
from travelhub.services.cache import PersistedLookup, PersistentStore
from travelhub.services.client import AmadeusClient
from travelhub.services.errors import (
    RateLimitError,
    RetryExhaustedError,
    ValidationError,
)

DEFAULT_SUB_TYPE = "AIRPORT,CITY"
DEFAULT_NEARBY_RADIUS_KM = 100
EARTH_RADIUS_KM = 6371.0

POPULAR_DESTINATIONS = (
    "New York",
    "London",
    "Paris",
    "Tokyo",
    "Los Angeles",
    "Chicago",
    "Miami",
    "San Francisco",
    "Seattle",
    "NYC",
    "LON",
    "PAR",
    "TYO",
    "LAX",
    "CHI",
    "MIA",
    "SFO",
    "SEA",
)

_LOCATION_ID = re.compile(r"^[A-Za-z0-9]+$")


# Request parameters


def _flatten_page(data: Any) -> Any:
    """Accept ``{"page": {"limit": 5}}`` as well as ``page[limit]``."""
    if isinstance(data, Mapping) and isinstance(data.get("page"), Mapping):
        data = dict(data)
        page = data.pop("page")
        if "limit" in page:
            data.setdefault("page[limit]", page["limit"])
        if "offset" in page:
            data.setdefault("page[offset]", page["offset"])
    return data


class LocationSearchParams(RequestParams):
    keyword: str = Field(min_length=1, max_length=100)
    sub_type: str = DEFAULT_SUB_TYPE
    country_code: str | None = Field(default=None, min_length=2, max_length=2)
    view: Literal["LIGHT", "FULL"] | None = None
    sort: str | None = None
    page_limit: int = Field(default=10, ge=1, le=100, alias="page[limit]")
    page_offset: int | None = Field(default=None, ge=0, alias="page[offset]")

    @model_validator(mode="before")
    @classmethod
    def flatten_page(cls, data: Any) -> Any:
        return _flatten_page(data)

    @field_validator("sub_type", "country_code", "view", mode="before")
    @classmethod
    def uppercase(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            value = ",".join(value)
        return value.upper() if isinstance(value, str) else value


class NearbyAirportParams(RequestParams):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius: int = Field(default=DEFAULT_NEARBY_RADIUS_KM, ge=0, le=500)
    page_limit: int | None = Field(default=None, ge=1, le=100, alias="page[limit]")
    sort: Literal[
        "relevance",
        "distance",
        "analytics.flights.score",
        "analytics.travelers.score",
    ] | None = None

    @model_validator(mode="before")
    @classmethod
    def flatten_page(cls, data: Any) -> Any:
        return _flatten_page(data)

    @field_validator("latitude", "longitude")
    @classmethod
    def round_coordinate(cls, value: float) -> float:
        # 40.7589 -> 40.76, about a kilometre
        return round(value, 2)


class PopularDestinationParams(RequestParams):
    origin_city_code: str | None = Field(default=None, min_length=3, max_length=3)
    period: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}$")
    max: int | None = Field(default=None, ge=1, le=100)

    @model_validator(mode="before")
    @classmethod
    def accept_origin(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "origin" in data:
            data = dict(data)
            data.setdefault("originCityCode", data.pop("origin"))
        return data

    @field_validator("origin_city_code", mode="before")
    @classmethod
    def uppercase(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


# Upstream payloads


class Address(AmadeusModel):
    city_name: str | None = None
    city_code: str | None = None
    country_name: str | None = None
    country_code: str | None = None
    state_code: str | None = None
    region_code: str | None = None


class Distance(AmadeusModel):
    value: float
    unit: str = "KM"


class TravelerScore(AmadeusModel):
    score: float | None = None


class Analytics(AmadeusModel):
    travelers: TravelerScore | None = None


class Location(AmadeusModel):
    id: str | None = None
    type: str | None = None
    sub_type: str | None = None
    name: str | None = None
    detailed_name: str | None = None
    iata_code: str | None = None
    time_zone_offset: str | None = None
    address: Address | None = None
    geo_code: GeoCode | None = None
    distance: Distance | None = None
    analytics: Analytics | None = None


class LocationsResponse(AmadeusModel):
    data: list[Location] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class LocationResponse(AmadeusModel):
    data: Location


# Transforms


def transform_location(location: Location) -> dict[str, Any]:
    address = location.address or Address()
    geo = location.geo_code
    travelers = location.analytics.travelers if location.analytics else None
    return {
        "id": location.id,
        "name": location.name,
        "detailedName": location.detailed_name,
        "type": location.sub_type,
        "iataCode": location.iata_code,
        "city": address.city_name,
        "cityCode": address.city_code,
        "country": address.country_name,
        "countryCode": address.country_code,
        "coordinates": {
            "latitude": geo.latitude if geo else None,
            "longitude": geo.longitude if geo else None,
        },
        "timeZone": location.time_zone_offset,
        "relevanceScore": travelers.score if travelers else None,
        "distance": location.distance.model_dump() if location.distance else None,
    }


def transform_locations(locations: Iterable[Location]) -> list[dict[str, Any]]:
    """Flatten upstream locations for clients."""
    return [transform_location(location) for location in locations]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def _distance_km(location: Location, latitude: float, longitude: float) -> float | None:
    if location.distance is not None:
        value = location.distance.value
        return value * 1.609344 if location.distance.unit.upper() == "MI" else value
    if location.geo_code is not None:
        return haversine_km(
            latitude, longitude, location.geo_code.latitude, location.geo_code.longitude
        )
    return None


def within_radius(
    locations: Iterable[Location], latitude: float, longitude: float, radius_km: float
) -> list[Location]:
    """Drop locations farther than ``radius_km``; unknown distances are kept."""
    kept = []
    for location in locations:
        distance = _distance_km(location, latitude, longitude)
        if distance is None or distance <= radius_km:
            kept.append(location)
    return kept


def _is_rate_limited(error: Exception) -> bool:
    if isinstance(error, RetryExhaustedError):
        error = error.last_error
    return isinstance(error, RateLimitError)


class LocationService(BaseAmadeusService):
    """Location search, details, nearby airports and cache warming."""

    SERVICE_ID = "locations"

    def __init__(
        self,
        client: AmadeusClient,
        store: PersistentStore | None = None,
        cache_ttl: timedelta = timedelta(minutes=30),
        max_cache_size: int = 1000,
        persist_ttl: timedelta = timedelta(hours=24),
        warm_batch_size: int = 2,
        warm_batch_delay: float = 30.0,
        warm_rate_limit_delay: float = 60.0,
        **kwargs: Any,
    ):
        super().__init__(
            client,
            cache_ttl,
            max_cache_size,
            store=store,
            persist_ttl=persist_ttl,
            **kwargs,
        )
        self.warm_batch_size = warm_batch_size
        self.warm_batch_delay = warm_batch_delay
        self.warm_rate_limit_delay = warm_rate_limit_delay

    async def search_locations(
        self, params: LocationSearchParams | Mapping[str, Any]
    ) -> SearchResult:
        """Keyword search for airports and cities. Non-empty results are persisted."""
        search = self.parse_params(LocationSearchParams, params)
        query = search.to_query()
        return await self._cached_fetch(
            "location search",
            "search",
            query,
            self._get("/v1/reference-data/locations", query),
            _shape_locations,
            lookup=PersistedLookup(search.keyword, query),
            persist_if=bool,
        )

    async def get_location_details(self, location_id: str) -> SearchResult:
        return await self._location_by_id(location_id, "location details")

    async def get_airport_info(self, airport_code: str) -> SearchResult:
        return await self._location_by_id(airport_code, "airport information")

    async def get_cities_by_airport(self, airport_code: str) -> SearchResult:
        return await self._location_by_id(airport_code, "cities by airport")

    async def get_airports_by_city(self, city_code: str) -> SearchResult:
        code = (city_code or "").strip()
        if not code:
            raise ValidationError("City code is required", service_id=self.service_id)
        return await self.search_locations({"keyword": code, "subType": "AIRPORT"})

    async def get_nearby_airports(
        self, params: NearbyAirportParams | Mapping[str, Any]
    ) -> SearchResult:
        """
        Airports around a point.

        Coordinates are rounded to two decimals before keying and before the
        upstream call, so nearby points share one cache entry.
        """
        search = self.parse_params(NearbyAirportParams, params)
        query = search.to_query()

        def shape(raw: dict[str, Any]) -> Shaped:
            response = LocationsResponse.model_validate(raw)
            nearby = within_radius(
                response.data, search.latitude, search.longitude, search.radius
            )
            return transform_locations(nearby), response.meta

        return await self._cached_fetch(
            "nearby airports",
            "nearby",
            query,
            self._get("/v1/reference-data/locations/airports", query),
            shape,
        )

    async def get_popular_destinations(
        self, params: PopularDestinationParams | Mapping[str, Any] | None = None
    ) -> SearchResult:
        search = self.parse_params(PopularDestinationParams, params or {})
        query = search.to_query()
        return await self._cached_fetch(
            "popular destinations",
            "popular",
            query,
            self._get("/v1/travel/analytics/fare-searches", query),
            shape_list,
        )

    async def _location_by_id(self, location_id: str, operation: str) -> SearchResult:
        location_id = (location_id or "").strip().upper()
        if not _LOCATION_ID.match(location_id):
            raise ValidationError(
                f"Invalid location id: {location_id!r}", service_id=self.service_id
            )
        return await self._cached_fetch(
            operation,
            "details",
            {"id": location_id},
            self._get(f"/v1/reference-data/locations/{location_id}"),
            _shape_location,
        )

    # Cache warming

    async def populate_popular_destinations_cache(
        self, keywords: Iterable[str] | None = None
    ) -> dict[str, int]:
        """
        Warm the cache for popular keywords.

        Runs one batch at a time, skips keywords already cached, and contains
        failures to the keyword that caused them. Pauses between batches, and
        for longer after a rate limit. Never raises.

        Returns:
            Summary with ``cached``, ``skipped`` and ``failed`` counts
        """
        keywords = list(keywords if keywords is not None else POPULAR_DESTINATIONS)
        summary = {"cached": 0, "skipped": 0, "failed": 0}
        size = max(1, self.warm_batch_size)
        batches = [keywords[i : i + size] for i in range(0, len(keywords), size)]

        logger.info(
            f"Starting cache warm-up for {len(keywords)} keywords "
            f"in {len(batches)} batches"
        )

        for index, batch in enumerate(batches, 1):
            logger.info(f"Warm-up batch {index}/{len(batches)}: {', '.join(batch)}")
            outcomes = await asyncio.gather(*(self._warm_keyword(k) for k in batch))

            rate_limited = False
            for outcome in outcomes:
                if outcome == "rate_limited":
                    summary["failed"] += 1
                    rate_limited = True
                else:
                    summary[outcome] += 1

            if index == len(batches):
                break
            if rate_limited:
                logger.warning(
                    f"Rate limited during warm-up, waiting "
                    f"{self.warm_rate_limit_delay}s"
                )
                await self._sleep(self.warm_rate_limit_delay)
            else:
                await self._sleep(self.warm_batch_delay)

        logger.info(f"Cache warm-up finished: {summary}")
        return summary

    async def _warm_keyword(self, keyword: str) -> str:
        try:
            search = self.parse_params(LocationSearchParams, {"keyword": keyword})
            query = search.to_query()
            key = self.generate_cache_key("search", query)
            lookup = PersistedLookup(search.keyword, query)

            if await self.cache.get(key, lookup, record=False) is not None:
                logger.debug(f"Already cached: '{keyword}'")
                return "skipped"

            result = await self.search_locations(search)
            if result.from_cache:
                return "skipped"
            logger.info(f"Cached {len(result.data)} locations for '{keyword}'")
            return "cached"

        except Exception as e:
            logger.warning(f"Failed to warm '{keyword}': {e}")
            return "rate_limited" if _is_rate_limited(e) else "failed"


def _shape_locations(raw: dict[str, Any]) -> Shaped:
    response = LocationsResponse.model_validate(raw)
    return transform_locations(response.data), response.meta


def _shape_location(raw: dict[str, Any]) -> Shaped:
    response = LocationResponse.model_validate(raw)
    return transform_location(response.data), {}
