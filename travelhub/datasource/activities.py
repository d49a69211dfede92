"""
Tours, activities and points of interest from the Amadeus destination APIs.

Searches are persisted by location so neighbouring instances reuse them.
Prices are converted into the configured display currency before caching.
"""

import re
from datetime import timedelta
from typing import Any, Iterable, Mapping

from pydantic import Field, field_validator, model_validator

from travelhub.datasource.base import (
    AmadeusModel,
    BaseAmadeusService,
    GeoCode,
    RequestParams,
    SearchResult,
    Shaped,
)
from travelhub.services.cache import PersistedLookup, PersistentStore
from travelhub.services.client import AmadeusClient
from travelhub.services.errors import ValidationError

DEFAULT_CURRENCY = "INR"
DEFAULT_FX_RATE = 85.0

ACTIVITY_CATEGORIES = [
    "SIGHTSEEING",
    "BEACH_PARK",
    "HISTORICAL",
    "MUSEUM",
    "RELIGIOUS",
    "SHOPPING",
    "NIGHTLIFE",
    "RESTAURANT",
    "OUTDOOR",
    "ADVENTURE",
    "ENTERTAINMENT",
    "SPORTS",
    "WELLNESS",
    "FAMILY",
]

_RESOURCE_ID = re.compile(r"^[A-Za-z0-9_-]+$")

POINT_FIELDS = {"latitude", "longitude", "radius"}
SQUARE_FIELDS = {"north", "west", "south", "east"}


def normalize_categories(value: Any) -> list[str] | None:
    """Upper-case, de-duplicate and sort categories given as a list or CSV."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.split(",")
    categories = sorted({str(c).strip().upper() for c in value if str(c).strip()})
    return categories or None


# Request parameters


class ActivitySearchParams(RequestParams):
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    radius: int | None = Field(default=None, ge=0, le=20)
    north: float | None = Field(default=None, ge=-90, le=90)
    west: float | None = Field(default=None, ge=-180, le=180)
    south: float | None = Field(default=None, ge=-90, le=90)
    east: float | None = Field(default=None, ge=-180, le=180)

    @model_validator(mode="after")
    def check_area(self) -> "ActivitySearchParams":
        if not self.by_point and not self.by_square:
            raise ValueError(
                "Provide latitude and longitude, or north, west, south and east"
            )
        return self

    @property
    def by_point(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def by_square(self) -> bool:
        return all(
            v is not None for v in (self.north, self.west, self.south, self.east)
        )

    def to_query(self) -> dict[str, Any]:
        # A point search wins when both areas are given
        fields = POINT_FIELDS if self.by_point else SQUARE_FIELDS
        return self.model_dump(
            mode="json", by_alias=True, exclude_none=True, include=fields
        )

    def location_key(self) -> str:
        query = self.to_query()
        if self.by_point:
            return f"{query['latitude']},{query['longitude']}"
        return f"{query['north']},{query['west']},{query['south']},{query['east']}"


class _CategoryParams(RequestParams):
    categories: list[str] | None = None
    page_limit: int | None = Field(default=None, ge=1, le=100, alias="page[limit]")
    page_offset: int | None = Field(default=None, ge=0, alias="page[offset]")

    @field_validator("categories", mode="before")
    @classmethod
    def normalize(cls, value: Any) -> list[str] | None:
        return normalize_categories(value)

    def to_query(self) -> dict[str, Any]:
        query = super().to_query()
        if self.categories:
            query["categories"] = ",".join(self.categories)
        return query


class PointOfInterestParams(_CategoryParams):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius: int | None = Field(default=None, ge=0, le=20)


class PointOfInterestSquareParams(_CategoryParams):
    north: float = Field(ge=-90, le=90)
    west: float = Field(ge=-180, le=180)
    south: float = Field(ge=-90, le=90)
    east: float = Field(ge=-180, le=180)

    @model_validator(mode="after")
    def check_square(self) -> "PointOfInterestSquareParams":
        if self.north < self.south:
            raise ValueError("north must not be less than south")
        return self


# Upstream payloads


class ActivityPrice(AmadeusModel):
    amount: float | None = None
    currency_code: str | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def blank_amount(cls, value: Any) -> Any:
        return None if value == "" else value


class Activity(AmadeusModel):
    id: str
    type: str | None = None
    name: str | None = None
    short_description: str | None = None
    description: str | None = None
    geo_code: GeoCode | None = None
    rating: float | None = None
    pictures: list[str] = Field(default_factory=list)
    booking_link: str | None = None
    price: ActivityPrice | None = None
    minimum_duration: str | None = None
    maximum_duration: str | None = None

    @field_validator("rating", mode="before")
    @classmethod
    def blank_rating(cls, value: Any) -> Any:
        return None if value == "" else value


class ActivitiesResponse(AmadeusModel):
    data: list[Activity] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class ActivityResponse(AmadeusModel):
    data: Activity


class PointOfInterest(AmadeusModel):
    id: str
    type: str | None = None
    name: str | None = None
    category: str | None = None
    sub_category: list[str] = Field(default_factory=list)
    geo_code: GeoCode | None = None
    tags: list[str] = Field(default_factory=list)
    rank: int | None = None
    address: dict[str, Any] | None = None
    wikipedia: dict[str, Any] | None = None


class PointsOfInterestResponse(AmadeusModel):
    data: list[PointOfInterest] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class PointOfInterestResponse(AmadeusModel):
    data: PointOfInterest


# Transforms


def _coordinates(geo: GeoCode | None) -> dict[str, float | None]:
    return {
        "latitude": geo.latitude if geo else None,
        "longitude": geo.longitude if geo else None,
    }


def transform_activity(
    activity: Activity,
    fx_rate: float = DEFAULT_FX_RATE,
    currency: str = DEFAULT_CURRENCY,
) -> dict[str, Any]:
    price = None
    if activity.price is not None and activity.price.amount is not None:
        price = {
            "amount": round(activity.price.amount * fx_rate, 2),
            "currency": currency,
        }
    return {
        "id": activity.id,
        "name": activity.name,
        "shortDescription": activity.short_description,
        "description": activity.description,
        "location": _coordinates(activity.geo_code),
        "rating": activity.rating,
        "images": activity.pictures,
        "bookingLink": activity.booking_link,
        "price": price,
        "duration": {
            "minimum": activity.minimum_duration,
            "maximum": activity.maximum_duration,
        },
    }


def transform_activities(
    activities: Iterable[Activity],
    fx_rate: float = DEFAULT_FX_RATE,
    currency: str = DEFAULT_CURRENCY,
) -> list[dict[str, Any]]:
    """Shape activities for clients, converting prices into ``currency``."""
    return [transform_activity(a, fx_rate, currency) for a in activities]


def transform_point_of_interest(poi: PointOfInterest) -> dict[str, Any]:
    return {
        "id": poi.id,
        "name": poi.name,
        "category": poi.category,
        "subCategory": poi.sub_category,
        "location": _coordinates(poi.geo_code),
        "address": poi.address,
        "tags": poi.tags,
        "rank": poi.rank,
        "wikipedia": (poi.wikipedia or {}).get("link"),
    }


def transform_points_of_interest(pois: Iterable[PointOfInterest]) -> list[dict[str, Any]]:
    return [transform_point_of_interest(poi) for poi in pois]


def filter_activities(
    activities: Iterable[Mapping[str, Any]],
    min_price: float | None = None,
    max_price: float | None = None,
    min_rating: float | None = None,
    categories: Iterable[str] | None = None,
    has_images: bool | None = None,
) -> list[Mapping[str, Any]]:
    """
    Filter shaped activities or points of interest.

    Records without a price or rating are not excluded by price or rating
    bounds. The category filter only applies to records that carry a
    ``category`` or ``categories`` field, such as shaped points of interest;
    those must share at least one category with it. Amadeus activities have
    no category data, so shaped activities always pass it.
    """
    wanted = set(normalize_categories(categories) or [])
    kept = []
    for activity in activities:
        amount = (activity.get("price") or {}).get("amount")
        if amount is not None:
            if min_price is not None and amount < min_price:
                continue
            if max_price is not None and amount > max_price:
                continue

        rating = activity.get("rating")
        if min_rating is not None and rating is not None and rating < min_rating:
            continue

        if has_images and not activity.get("images"):
            continue

        if wanted:
            own = activity.get("categories") or activity.get("category")
            own = set(normalize_categories(own) or [])
            if own and not own & wanted:
                continue

        kept.append(activity)
    return kept


class ActivityService(BaseAmadeusService):
    """Activity and point-of-interest searches with persisted caching."""

    SERVICE_ID = "activities"

    def __init__(
        self,
        client: AmadeusClient,
        store: PersistentStore | None = None,
        cache_ttl: timedelta = timedelta(minutes=60),
        max_cache_size: int = 400,
        persist_ttl: timedelta = timedelta(hours=12),
        currency: str = DEFAULT_CURRENCY,
        fx_rate: float = DEFAULT_FX_RATE,
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
        self.currency = currency
        self.fx_rate = fx_rate

    async def search_activities(
        self, params: ActivitySearchParams | Mapping[str, Any]
    ) -> SearchResult:
        """Activities around a point, or inside a bounding box."""
        search = self.parse_params(ActivitySearchParams, params)
        query = search.to_query()
        endpoint = (
            "/v1/shopping/activities"
            if search.by_point
            else "/v1/shopping/activities/by-square"
        )
        return await self._cached_fetch(
            "activity search",
            "search",
            query,
            self._get(endpoint, query),
            self._shape_activities,
            lookup=PersistedLookup(f"activities:{search.location_key()}", query),
        )

    async def get_activity_details(self, activity_id: str) -> SearchResult:
        activity_id = self._resource_id(activity_id, "activity")
        return await self._cached_fetch(
            "activity details",
            "details",
            {"id": activity_id},
            self._get(f"/v1/shopping/activities/{activity_id}"),
            self._shape_activity,
            lookup=PersistedLookup(f"activity:{activity_id}", {"id": activity_id}),
        )

    async def search_points_of_interest(
        self, params: PointOfInterestParams | Mapping[str, Any]
    ) -> SearchResult:
        search = self.parse_params(PointOfInterestParams, params)
        query = search.to_query()
        return await self._cached_fetch(
            "points of interest",
            "pois",
            query,
            self._get("/v1/reference-data/locations/pois", query),
            _shape_pois,
            lookup=PersistedLookup(
                f"pois:{query['latitude']},{query['longitude']}", query
            ),
        )

    async def get_points_of_interest_by_square(
        self, params: PointOfInterestSquareParams | Mapping[str, Any]
    ) -> SearchResult:
        search = self.parse_params(PointOfInterestSquareParams, params)
        query = search.to_query()
        square = f"{query['north']},{query['west']},{query['south']},{query['east']}"
        return await self._cached_fetch(
            "points of interest by square",
            "pois-square",
            query,
            self._get("/v1/reference-data/locations/pois/by-square", query),
            _shape_pois,
            lookup=PersistedLookup(f"pois:{square}", query),
        )

    async def get_point_of_interest_details(self, poi_id: str) -> SearchResult:
        poi_id = self._resource_id(poi_id, "point of interest")
        return await self._cached_fetch(
            "point of interest details",
            "poi-details",
            {"id": poi_id},
            self._get(f"/v1/reference-data/locations/pois/{poi_id}"),
            _shape_poi,
            lookup=PersistedLookup(f"poi:{poi_id}", {"id": poi_id}),
        )

    def get_activity_categories(self) -> list[str]:
        return list(ACTIVITY_CATEGORIES)

    def filter_activities(self, activities, **filters) -> list[Mapping[str, Any]]:
        return filter_activities(activities, **filters)

    def _resource_id(self, value: str, kind: str) -> str:
        value = (value or "").strip()
        if not _RESOURCE_ID.match(value):
            raise ValidationError(
                f"Invalid {kind} id: {value!r}", service_id=self.service_id
            )
        return value

    def _shape_activities(self, raw: dict[str, Any]) -> Shaped:
        response = ActivitiesResponse.model_validate(raw)
        activities = transform_activities(response.data, self.fx_rate, self.currency)
        return activities, response.meta

    def _shape_activity(self, raw: dict[str, Any]) -> Shaped:
        response = ActivityResponse.model_validate(raw)
        return transform_activity(response.data, self.fx_rate, self.currency), {}


def _shape_pois(raw: dict[str, Any]) -> Shaped:
    response = PointsOfInterestResponse.model_validate(raw)
    return transform_points_of_interest(response.data), response.meta


def _shape_poi(raw: dict[str, Any]) -> Shaped:
    response = PointOfInterestResponse.model_validate(raw)
    return transform_point_of_interest(response.data), {}
