"""
Flight search, pricing and booking against the Amadeus Self-Service APIs.

Flight prices are volatile, so results live only in the session tier with a
short TTL. Offers are marked up before they are cached.
"""

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Literal, Mapping

from pydantic import Field, field_validator, model_validator

from travelhub.datasource.base import (
    AmadeusModel,
    BaseAmadeusService,
    RequestParams,
    SearchResult,
    Shaped,
    shape_item,
    shape_list,
)
from travelhub.services.client import AmadeusClient
from travelhub.services.errors import ValidationError

DEFAULT_MARKUP_PERCENT = 2.5

TravelClass = Literal["ECONOMY", "PREMIUM_ECONOMY", "BUSINESS", "FIRST"]


def _upper(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


# Request parameters


class FlightOfferSearchParams(RequestParams):
    origin_location_code: str = Field(min_length=3, max_length=3)
    destination_location_code: str = Field(min_length=3, max_length=3)
    departure_date: date
    return_date: date | None = None
    adults: int = Field(default=1, ge=1, le=9)
    children: int | None = Field(default=None, ge=0, le=9)
    infants: int | None = Field(default=None, ge=0, le=9)
    travel_class: TravelClass | None = None
    non_stop: bool | None = None
    currency_code: str | None = Field(default=None, min_length=3, max_length=3)
    max: int = Field(default=10, ge=1, le=250)

    @field_validator(
        "origin_location_code",
        "destination_location_code",
        "currency_code",
        "travel_class",
        mode="before",
    )
    @classmethod
    def uppercase_codes(cls, value: Any) -> Any:
        return _upper(value)

    @model_validator(mode="after")
    def check_dates(self) -> "FlightOfferSearchParams":
        if self.return_date is not None and self.return_date < self.departure_date:
            raise ValueError("returnDate must not be before departureDate")
        return self


class DestinationSearchParams(RequestParams):
    origin: str = Field(min_length=3, max_length=3)
    departure_date: str | None = None  # a date or a comma-separated range
    one_way: bool | None = None
    duration: str | None = None
    non_stop: bool | None = None
    max_price: int | None = Field(default=None, gt=0)
    view_by: Literal["COUNTRY", "DATE", "DESTINATION", "DURATION", "WEEK"] | None = None

    @field_validator("origin", "view_by", mode="before")
    @classmethod
    def uppercase_codes(cls, value: Any) -> Any:
        return _upper(value)


class FlightDatesParams(DestinationSearchParams):
    destination: str = Field(min_length=3, max_length=3)

    @field_validator("destination", mode="before")
    @classmethod
    def uppercase_destination(cls, value: Any) -> Any:
        return _upper(value)


# Upstream payloads


class Price(AmadeusModel):
    currency: str
    total: str
    base: str | None = None
    grand_total: str | None = None

    @field_validator("total")
    @classmethod
    def numeric_total(cls, value: str) -> str:
        try:
            amount = Decimal(value)
        except InvalidOperation:
            raise ValueError(f"not a number: {value!r}") from None
        if not amount.is_finite():
            raise ValueError(f"not a finite amount: {value!r}")
        return value


class SegmentEndpoint(AmadeusModel):
    iata_code: str
    at: str
    terminal: str | None = None


class Aircraft(AmadeusModel):
    code: str | None = None


class Segment(AmadeusModel):
    departure: SegmentEndpoint
    arrival: SegmentEndpoint
    carrier_code: str
    number: str
    aircraft: Aircraft = Field(default_factory=Aircraft)
    duration: str | None = None


class Itinerary(AmadeusModel):
    duration: str | None = None
    segments: list[Segment]


class FlightOffer(AmadeusModel):
    id: str
    one_way: bool = False
    number_of_bookable_seats: int | None = None
    price: Price
    itineraries: list[Itinerary]
    traveler_pricings: list[dict[str, Any]] = Field(default_factory=list)


class FlightOffersResponse(AmadeusModel):
    data: list[FlightOffer] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)
    dictionaries: dict[str, Any] = Field(default_factory=dict)


# Transforms


def apply_markup(
    price: str | float | Decimal, markup_percent: float = DEFAULT_MARKUP_PERCENT
) -> str:
    """Mark a price up by a percentage, rounded half-up to cents."""
    original = Decimal(str(price))
    factor = 1 + Decimal(str(markup_percent)) / 100
    return str((original * factor).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _endpoint(point: SegmentEndpoint) -> dict[str, Any]:
    return {"iataCode": point.iata_code, "at": point.at, "terminal": point.terminal}


def transform_flight_offers(
    offers: Iterable[FlightOffer], markup_percent: float = DEFAULT_MARKUP_PERCENT
) -> list[dict[str, Any]]:
    """Shape upstream offers for clients, applying the markup."""
    return [
        {
            "id": offer.id,
            "oneWay": offer.one_way,
            "numberOfBookableSeats": offer.number_of_bookable_seats,
            "price": {
                "total": apply_markup(offer.price.total, markup_percent),
                "currency": offer.price.currency,
                "originalPrice": offer.price.total,
                "markup": f"{markup_percent:g}%",
            },
            "itineraries": [
                {
                    "duration": itinerary.duration,
                    "segments": [
                        {
                            "departure": _endpoint(segment.departure),
                            "arrival": _endpoint(segment.arrival),
                            "carrierCode": segment.carrier_code,
                            "flightNumber": segment.number,
                            "aircraft": {"code": segment.aircraft.code},
                            "duration": segment.duration,
                        }
                        for segment in itinerary.segments
                    ],
                }
                for itinerary in offer.itineraries
            ],
            "travelerPricings": offer.traveler_pricings,
        }
        for offer in offers
    ]


class FlightService(BaseAmadeusService):
    """Flight offers, inspiration, airline reference data, pricing and orders."""

    SERVICE_ID = "flights"

    def __init__(
        self,
        client: AmadeusClient,
        markup_percent: float = DEFAULT_MARKUP_PERCENT,
        cache_ttl: timedelta = timedelta(minutes=5),
        max_cache_size: int = 100,
        **kwargs: Any,
    ):
        super().__init__(client, cache_ttl, max_cache_size, **kwargs)
        self.markup_percent = markup_percent

    async def search_flight_offers(
        self, params: FlightOfferSearchParams | Mapping[str, Any]
    ) -> SearchResult:
        search = self.parse_params(FlightOfferSearchParams, params)
        query = search.to_query()
        return await self._cached_fetch(
            "flight search",
            "offers",
            query,
            self._get("/v2/shopping/flight-offers", query),
            self._shape_offers,
        )

    async def search_destinations(
        self, params: DestinationSearchParams | Mapping[str, Any]
    ) -> SearchResult:
        search = self.parse_params(DestinationSearchParams, params)
        query = search.to_query()
        return await self._cached_fetch(
            "destination search",
            "destinations",
            query,
            self._get("/v1/shopping/flight-destinations", query),
            shape_list,
        )

    async def get_flight_dates(
        self, params: FlightDatesParams | Mapping[str, Any]
    ) -> SearchResult:
        search = self.parse_params(FlightDatesParams, params)
        query = search.to_query()
        return await self._cached_fetch(
            "flight dates",
            "dates",
            query,
            self._get("/v1/shopping/flight-dates", query),
            shape_list,
        )

    async def get_airline_info(self, airline_codes: Iterable[str]) -> SearchResult:
        codes = sorted({c.strip().upper() for c in airline_codes if c and c.strip()})
        if not codes:
            raise ValidationError(
                "At least one airline code is required", service_id=self.service_id
            )
        query = {"airlineCodes": ",".join(codes)}
        return await self._cached_fetch(
            "airline information",
            "airlines",
            query,
            self._get("/v1/reference-data/airlines", query),
            shape_list,
        )

    async def price_flight_offers(
        self, flight_offers: list[dict[str, Any]]
    ) -> SearchResult:
        """Confirm the price of offers returned by a search."""
        if not flight_offers:
            raise ValidationError(
                "At least one flight offer is required", service_id=self.service_id
            )
        body = {"data": {"type": "flight-offers-pricing", "flightOffers": flight_offers}}
        return await self._uncached_call(
            "flight pricing",
            self._post("/v1/shopping/flight-offers/pricing", body),
            shape_item,
        )

    async def create_flight_order(self, order: Mapping[str, Any]) -> SearchResult:
        """Book a priced offer. Bookings are never retried."""
        missing = [f for f in ("flightOffers", "travelers") if not order.get(f)]
        if missing:
            raise ValidationError(
                f"Flight order is missing: {', '.join(missing)}",
                service_id=self.service_id,
            )
        body = {"data": {"type": "flight-order", **order}}
        return await self._uncached_call(
            "flight order",
            self._post("/v1/booking/flight-orders", body),
            shape_item,
            retry=False,
        )

    def _shape_offers(self, raw: dict[str, Any]) -> Shaped:
        response = FlightOffersResponse.model_validate(raw)
        meta = dict(response.meta)
        if response.dictionaries:
            meta["dictionaries"] = response.dictionaries
        return transform_flight_offers(response.data, self.markup_percent), meta
