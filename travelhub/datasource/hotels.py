"""
Hotel lists, room offers and guest sentiment from the Amadeus hotel APIs.

Hotel lists change slowly; room offers are priced and expire quickly, so
offer searches and offer details are cached for shorter than the service
default. Everything lives in the session tier only.
"""

import re
from datetime import date, timedelta
from typing import Any, Iterable, Literal, Mapping

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
from travelhub.services.client import AmadeusClient
from travelhub.services.errors import ValidationError

OFFERS_TTL = timedelta(minutes=10)
OFFER_DETAILS_TTL = timedelta(minutes=5)
RATINGS_TTL = timedelta(hours=1)

_HOTEL_ID = re.compile(r"^[A-Za-z0-9]{8}$")
_OFFER_ID = re.compile(r"^[A-Za-z0-9]+$")

RadiusUnit = Literal["KM", "MILE"]


def _csv_list(value: Any) -> Any:
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return value


def _upper(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


def normalize_hotel_ids(value: Any) -> list[str]:
    """De-duplicate and sort hotel ids given as a list or CSV; case is kept."""
    ids = sorted({str(v).strip() for v in (_csv_list(value) or []) if str(v).strip()})
    bad = [i for i in ids if not _HOTEL_ID.match(i)]
    if bad:
        raise ValueError(f"invalid hotel ids: {', '.join(bad)}")
    if not ids:
        raise ValueError("at least one hotel id is required")
    return ids


# Request parameters


class _StayParams(RequestParams):
    """
    Stay details clients send along with a hotel list search.

    The hotel list endpoints do not take them, so they are checked here but
    never sent upstream and never part of the cache key.
    """

    check_in_date: date | None = None
    check_out_date: date | None = None
    adults: int | None = Field(default=None, ge=1, le=9)
    children: int | None = Field(default=None, ge=0, le=9)

    @model_validator(mode="after")
    def check_stay(self) -> "_StayParams":
        if (
            self.check_in_date is not None
            and self.check_out_date is not None
            and self.check_out_date <= self.check_in_date
        ):
            raise ValueError("checkOutDate must be after checkInDate")
        return self


class _HotelListParams(_StayParams):
    radius: int | None = Field(default=None, ge=1, le=300)
    radius_unit: RadiusUnit | None = None
    chain_codes: list[str] | None = None
    amenities: list[str] | None = None
    ratings: list[int] | None = None
    hotel_source: Literal["BEDBANK", "DIRECTCHAIN", "ALL"] | None = None

    @field_validator("radius_unit", "hotel_source", mode="before")
    @classmethod
    def uppercase(cls, value: Any) -> Any:
        return _upper(value)

    @field_validator("chain_codes", "amenities", mode="before")
    @classmethod
    def upper_csv(cls, value: Any) -> Any:
        value = _csv_list(value)
        if isinstance(value, list):
            return sorted({str(v).strip().upper() for v in value}) or None
        return value

    @field_validator("ratings", mode="before")
    @classmethod
    def ratings_csv(cls, value: Any) -> Any:
        return _csv_list(value)

    @field_validator("ratings")
    @classmethod
    def check_ratings(cls, value: list[int] | None) -> list[int] | None:
        if value is None:
            return None
        if any(r < 1 or r > 5 for r in value):
            raise ValueError("ratings must be between 1 and 5")
        return sorted(set(value)) or None

    def to_query(self) -> dict[str, Any]:
        query = self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude=set(_StayParams.model_fields),
        )
        for name in ("chainCodes", "amenities", "ratings"):
            if name in query:
                query[name] = ",".join(str(v) for v in query[name])
        return query


class HotelCitySearchParams(_HotelListParams):
    city_code: str = Field(min_length=3, max_length=3)

    @field_validator("city_code", mode="before")
    @classmethod
    def uppercase_city(cls, value: Any) -> Any:
        return _upper(value)


class HotelGeocodeSearchParams(_HotelListParams):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class HotelOfferSearchParams(RequestParams):
    hotel_ids: list[str]
    adults: int = Field(ge=1, le=9)
    check_in_date: date
    check_out_date: date
    country_of_residence: str | None = Field(default=None, min_length=2, max_length=2)
    room_quantity: int | None = Field(default=None, ge=1, le=9)
    price_range: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    payment_policy: Literal["GUARANTEE", "DEPOSIT", "NONE"] | None = None
    board_type: (
        Literal["ROOM_ONLY", "BREAKFAST", "HALF_BOARD", "FULL_BOARD", "ALL_INCLUSIVE"]
        | None
    ) = None

    @field_validator("hotel_ids", mode="before")
    @classmethod
    def split_ids(cls, value: Any) -> list[str]:
        return normalize_hotel_ids(value)

    @field_validator(
        "country_of_residence", "currency", "payment_policy", "board_type", mode="before"
    )
    @classmethod
    def uppercase_codes(cls, value: Any) -> Any:
        return _upper(value)

    @model_validator(mode="after")
    def check_stay(self) -> "HotelOfferSearchParams":
        if self.check_out_date <= self.check_in_date:
            raise ValueError("checkOutDate must be after checkInDate")
        return self

    def to_query(self) -> dict[str, Any]:
        query = super().to_query()
        query["hotelIds"] = ",".join(self.hotel_ids)
        return query


# Upstream payloads


class HotelAddress(AmadeusModel):
    lines: list[str] = Field(default_factory=list)
    postal_code: str | None = None
    city_name: str | None = None
    country_code: str | None = None
    state_code: str | None = None


class HotelDistance(AmadeusModel):
    value: float | None = None
    unit: str | None = None


class Hotel(AmadeusModel):
    hotel_id: str
    name: str | None = None
    chain_code: str | None = None
    iata_code: str | None = None
    dupe_id: int | None = None
    master_chain_code: str | None = None
    geo_code: GeoCode | None = None
    address: HotelAddress | None = None
    distance: HotelDistance | None = None
    rating: int | None = None
    amenities: list[str] = Field(default_factory=list)
    last_update: str | None = None


class HotelsResponse(AmadeusModel):
    data: list[Hotel] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class HotelPrice(AmadeusModel):
    currency: str | None = None
    base: str | None = None
    total: str | None = None
    taxes: list[dict[str, Any]] = Field(default_factory=list)


class RoomOffer(AmadeusModel):
    id: str
    check_in_date: str | None = None
    check_out_date: str | None = None
    room_quantity: int | None = None
    rate_code: str | None = None
    price: HotelPrice = Field(default_factory=HotelPrice)
    room: dict[str, Any] = Field(default_factory=dict)
    guests: dict[str, Any] | None = None
    policies: dict[str, Any] = Field(default_factory=dict)


class HotelOffers(AmadeusModel):
    type: str | None = None
    available: bool | None = None
    hotel: dict[str, Any] = Field(default_factory=dict)
    offers: list[RoomOffer] = Field(default_factory=list)


class HotelOffersResponse(AmadeusModel):
    data: list[HotelOffers] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class HotelOfferResponse(AmadeusModel):
    data: HotelOffers


# Transforms


def transform_hotel(hotel: Hotel) -> dict[str, Any]:
    address = hotel.address or HotelAddress()
    return {
        "id": hotel.hotel_id,
        "name": hotel.name,
        "chainCode": hotel.chain_code,
        "iataCode": hotel.iata_code,
        "dupeId": hotel.dupe_id,
        "masterChainCode": hotel.master_chain_code,
        "location": {
            "latitude": hotel.geo_code.latitude if hotel.geo_code else None,
            "longitude": hotel.geo_code.longitude if hotel.geo_code else None,
            "address": {
                "lines": address.lines,
                "postalCode": address.postal_code,
                "city": address.city_name,
                "country": address.country_code,
                "stateCode": address.state_code,
            },
        },
        "distance": hotel.distance.model_dump() if hotel.distance else None,
        "rating": hotel.rating,
        "amenities": hotel.amenities,
        "lastUpdate": hotel.last_update,
    }


def transform_hotels(hotels: Iterable[Hotel]) -> list[dict[str, Any]]:
    return [transform_hotel(h) for h in hotels]


def transform_room_offer(offer: RoomOffer) -> dict[str, Any]:
    description = offer.room.get("description") or {}
    return {
        "id": offer.id,
        "checkInDate": offer.check_in_date,
        "checkOutDate": offer.check_out_date,
        "roomQuantity": offer.room_quantity,
        "rateCode": offer.rate_code,
        "price": {
            "currency": offer.price.currency,
            "base": offer.price.base,
            "total": offer.price.total,
            "taxes": offer.price.taxes,
        },
        "room": {
            "type": offer.room.get("type"),
            "typeEstimated": offer.room.get("typeEstimated"),
            "description": description.get("text"),
        },
        "guests": offer.guests,
        "paymentPolicy": offer.policies.get("paymentType"),
        "cancellationPolicy": offer.policies.get("cancellations")
        or offer.policies.get("cancellation"),
    }


def transform_hotel_offer(hotel_offers: HotelOffers) -> dict[str, Any]:
    hotel = hotel_offers.hotel
    return {
        "type": hotel_offers.type,
        "available": hotel_offers.available,
        "hotel": {
            "id": hotel.get("hotelId"),
            "name": hotel.get("name"),
            "cityCode": hotel.get("cityCode"),
            "rating": hotel.get("rating"),
            "location": {
                "latitude": hotel.get("latitude"),
                "longitude": hotel.get("longitude"),
            },
        },
        "offers": [transform_room_offer(o) for o in hotel_offers.offers],
    }


def transform_hotel_offers(items: Iterable[HotelOffers]) -> list[dict[str, Any]]:
    """Shape per-hotel offer groups for clients."""
    return [transform_hotel_offer(item) for item in items]


class HotelService(BaseAmadeusService):
    """Hotel lists, priced room offers and hotel sentiment."""

    SERVICE_ID = "hotels"

    def __init__(
        self,
        client: AmadeusClient,
        cache_ttl: timedelta = timedelta(minutes=20),
        max_cache_size: int = 500,
        offers_ttl: timedelta = OFFERS_TTL,
        offer_details_ttl: timedelta = OFFER_DETAILS_TTL,
        ratings_ttl: timedelta = RATINGS_TTL,
        **kwargs: Any,
    ):
        super().__init__(client, cache_ttl, max_cache_size, **kwargs)
        self.offers_ttl = offers_ttl
        self.offer_details_ttl = offer_details_ttl
        self.ratings_ttl = ratings_ttl

    async def search_hotels_by_city(
        self, params: HotelCitySearchParams | Mapping[str, Any]
    ) -> SearchResult:
        search = self.parse_params(HotelCitySearchParams, params)
        query = search.to_query()
        return await self._cached_fetch(
            "hotel search by city",
            "city",
            query,
            self._get("/v1/reference-data/locations/hotels/by-city", query),
            _shape_hotels,
        )

    async def search_hotels_by_geocode(
        self, params: HotelGeocodeSearchParams | Mapping[str, Any]
    ) -> SearchResult:
        search = self.parse_params(HotelGeocodeSearchParams, params)
        query = search.to_query()
        return await self._cached_fetch(
            "hotel search by location",
            "geocode",
            query,
            self._get("/v1/reference-data/locations/hotels/by-geocode", query),
            _shape_hotels,
        )

    async def get_hotel_offers(
        self, params: HotelOfferSearchParams | Mapping[str, Any]
    ) -> SearchResult:
        """Priced room offers for up to a handful of hotels and one stay."""
        search = self.parse_params(HotelOfferSearchParams, params)
        query = search.to_query()
        return await self._cached_fetch(
            "hotel offers",
            "offers",
            query,
            self._get("/v3/shopping/hotel-offers", query),
            _shape_offers,
            ttl=self.offers_ttl,
        )

    async def get_hotel_offer(self, offer_id: str, lang: str | None = None) -> SearchResult:
        offer_id = (offer_id or "").strip()
        if not _OFFER_ID.match(offer_id):
            raise ValidationError(
                f"Invalid hotel offer id: {offer_id!r}", service_id=self.service_id
            )
        if lang is not None and not 2 <= len(lang.strip()) <= 5:
            raise ValidationError(
                "lang must be between 2 and 5 characters", service_id=self.service_id
            )
        query = {"lang": lang.strip()} if lang else {}
        return await self._cached_fetch(
            "hotel offer details",
            "offer",
            {"offerId": offer_id, **query},
            self._get(f"/v3/shopping/hotel-offers/{offer_id}", query),
            _shape_offer,
            ttl=self.offer_details_ttl,
        )

    async def get_hotel_ratings(self, hotel_ids: Iterable[str] | str) -> SearchResult:
        """Guest sentiment scores per hotel."""
        try:
            ids = normalize_hotel_ids(hotel_ids)
        except ValueError as e:
            raise ValidationError(str(e), service_id=self.service_id) from e
        query = {"hotelIds": ",".join(ids)}
        return await self._cached_fetch(
            "hotel ratings",
            "ratings",
            query,
            self._get("/v2/e-reputation/hotel-sentiments", query),
            shape_list,
            ttl=self.ratings_ttl,
        )


def _shape_hotels(raw: dict[str, Any]) -> Shaped:
    response = HotelsResponse.model_validate(raw)
    return transform_hotels(response.data), response.meta


def _shape_offers(raw: dict[str, Any]) -> Shaped:
    response = HotelOffersResponse.model_validate(raw)
    return transform_hotel_offers(response.data), response.meta


def _shape_offer(raw: dict[str, Any]) -> Shaped:
    response = HotelOfferResponse.model_validate(raw)
    return transform_hotel_offer(response.data), {}
