"""Tests for HotelService."""

import pytest

from conftest import FakeAmadeusClient, FakeClock, SleepRecorder
from payloads import hotel, hotel_offers
from travelhub.datasource.hotels import HotelCitySearchParams, HotelService
from travelhub.services.errors import (
    UpstreamError,
    UpstreamTransientError,
    ValidationError,
)

BY_CITY = "/v1/reference-data/locations/hotels/by-city"
BY_GEOCODE = "/v1/reference-data/locations/hotels/by-geocode"
OFFERS = "/v3/shopping/hotel-offers"
SENTIMENTS = "/v2/e-reputation/hotel-sentiments"

STAY = {"checkInDate": "2025-09-01", "checkOutDate": "2025-09-03", "adults": 2}


@pytest.fixture
def service(
    amadeus: FakeAmadeusClient, clock: FakeClock, sleeper: SleepRecorder
) -> HotelService:
    return HotelService(amadeus, clock=clock, sleep=sleeper)


class TestHotelSearch:
    @pytest.mark.asyncio
    async def test_search_by_city(
        self, service: HotelService, amadeus: FakeAmadeusClient
    ) -> None:
        amadeus.on("GET", BY_CITY, {"data": [hotel()], "meta": {"count": 1}})

        result = await service.search_hotels_by_city(
            {"cityCode": "par", "radius": "5", "radiusUnit": "km", "ratings": "5,4"}
        )

        assert amadeus.calls[0]["params"] == {
            "cityCode": "PAR",
            "radius": 5,
            "radiusUnit": "KM",
            "ratings": "4,5",
        }
        item = result.data[0]
        assert item["id"] == "RTPAR001"
        assert item["location"]["latitude"] == 48.87
        assert item["location"]["address"]["city"] == "PARIS"
        assert item["location"]["address"]["lines"] == ["1 RUE X"]
        assert result.meta == {"count": 1}

    @pytest.mark.asyncio
    async def test_stay_details_are_not_part_of_the_key(
        self, service: HotelService, amadeus: FakeAmadeusClient
    ) -> None:
        amadeus.on("GET", BY_CITY, {"data": [hotel()]})

        await service.search_hotels_by_city({"cityCode": "PAR", **STAY})
        second = await service.search_hotels_by_city(
            {"cityCode": "PAR", **STAY, "checkInDate": "2025-09-02"}
        )

        assert second.from_cache == "session"
        assert amadeus.calls[0]["params"] == {"cityCode": "PAR"}
        assert len(amadeus.calls) == 1

    @pytest.mark.parametrize(
        "params",
        [
            {"cityCode": "PAR", **STAY, "checkOutDate": "2025-09-01"},
            {"cityCode": "PAR", "ratings": "0,6"},
            {"cityCode": "PAR", "radiusUnit": "FURLONG"},
            {"cityCode": "PARIS"},
            {"cityCode": "PAR", "priceRange": "100-200"},
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_params(
        self, service: HotelService, amadeus: FakeAmadeusClient, params: dict
    ) -> None:
        with pytest.raises(ValidationError):
            await service.search_hotels_by_city(params)
        assert amadeus.calls == []

    @pytest.mark.asyncio
    async def test_search_by_geocode(
        self, service: HotelService, amadeus: FakeAmadeusClient
    ) -> None:
        amadeus.on("GET", BY_GEOCODE, {"data": [hotel()]})

        await service.search_hotels_by_geocode(
            {"latitude": "48.87", "longitude": "2.33", "radius": 5, "amenities": "spa,wifi"}
        )

        assert amadeus.calls[0]["params"] == {
            "latitude": 48.87,
            "longitude": 2.33,
            "radius": 5,
            "amenities": "SPA,WIFI",
        }

    @pytest.mark.asyncio
    async def test_malformed_payload(
        self, service: HotelService, amadeus: FakeAmadeusClient
    ) -> None:
        amadeus.on("GET", BY_CITY, {"data": [{"name": "no id"}]})

        with pytest.raises(UpstreamError, match="Malformed"):
            await service.search_hotels_by_city({"cityCode": "PAR"})
        assert len(service.cache) == 0

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(
        self, service: HotelService, amadeus: FakeAmadeusClient, sleeper: SleepRecorder
    ) -> None:
        amadeus.on(
            "GET", BY_CITY, [UpstreamTransientError("HTTP 500"), {"data": [hotel()]}]
        )

        result = await service.search_hotels_by_city({"cityCode": "PAR"})

        assert len(result.data) == 1
        assert len(sleeper.delays) == 1
        assert service.get_stats()["retries"] == 1

    def test_query_omits_stay_details(self) -> None:
        params = HotelCitySearchParams.model_validate(
            {"cityCode": "par", "chainCodes": "rt,mc", **STAY}
        )
        assert params.to_query() == {"cityCode": "PAR", "chainCodes": "MC,RT"}


class TestHotelOffers:
    @pytest.mark.asyncio
    async def test_offers(self, service: HotelService, amadeus: FakeAmadeusClient) -> None:
        amadeus.on("GET", OFFERS, {"data": [hotel_offers()]})

        result = await service.get_hotel_offers(
            {"hotelIds": "RTPAR001, MCLONGHM", "currency": "eur", **STAY}
        )

        assert amadeus.calls[0]["params"] == {
            "hotelIds": "MCLONGHM,RTPAR001",
            "adults": 2,
            "checkInDate": "2025-09-01",
            "checkOutDate": "2025-09-03",
            "currency": "EUR",
        }
        group = result.data[0]
        assert group["hotel"]["id"] == "RTPAR001"
        offer = group["offers"][0]
        assert offer["price"]["total"] == "340.00"
        assert offer["room"]["description"] == "Deluxe king room"
        assert offer["paymentPolicy"] == "deposit"

    @pytest.mark.asyncio
    async def test_offers_use_a_shorter_ttl(
        self, service: HotelService, amadeus: FakeAmadeusClient, clock: FakeClock
    ) -> None:
        amadeus.on("GET", OFFERS, {"data": [hotel_offers()]})
        params = {"hotelIds": "RTPAR001", **STAY}

        await service.get_hotel_offers(params)
        clock.advance(minutes=9)
        assert (await service.get_hotel_offers(params)).from_cache == "session"

        clock.advance(minutes=1)
        assert (await service.get_hotel_offers(params)).from_cache is None
        assert len(amadeus.calls) == 2

    @pytest.mark.parametrize(
        "params",
        [
            {"hotelIds": "BAD", **STAY},
            {"hotelIds": "", **STAY},
            {"hotelIds": "RTPAR001", **STAY, "checkOutDate": "2025-08-30"},
            {"hotelIds": "RTPAR001", **STAY, "boardType": "CONTINENTAL"},
            {"hotelIds": "RTPAR001", "adults": 1},
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_params(
        self, service: HotelService, amadeus: FakeAmadeusClient, params: dict
    ) -> None:
        with pytest.raises(ValidationError):
            await service.get_hotel_offers(params)
        assert amadeus.calls == []

    @pytest.mark.asyncio
    async def test_offer_details(
        self, service: HotelService, amadeus: FakeAmadeusClient, clock: FakeClock
    ) -> None:
        amadeus.on("GET", f"{OFFERS}/TSXOJ6LFQ2", {"data": hotel_offers()})

        result = await service.get_hotel_offer("TSXOJ6LFQ2", lang="EN")
        clock.advance(minutes=4)
        cached = await service.get_hotel_offer("TSXOJ6LFQ2", lang="EN")
        clock.advance(minutes=1)
        expired = await service.get_hotel_offer("TSXOJ6LFQ2", lang="EN")

        assert result.data["offers"][0]["id"] == "TSXOJ6LFQ2"
        assert amadeus.calls[0]["params"] == {"lang": "EN"}
        assert cached.from_cache == "session"
        assert expired.from_cache is None

    @pytest.mark.asyncio
    async def test_offer_ids_are_case_sensitive(
        self, service: HotelService, amadeus: FakeAmadeusClient
    ) -> None:
        amadeus.on("GET", f"{OFFERS}/ABC123", {"data": hotel_offers(offer_id="ABC123")})
        amadeus.on("GET", f"{OFFERS}/abc123", {"data": hotel_offers(offer_id="abc123")})

        await service.get_hotel_offer("ABC123")
        lower = await service.get_hotel_offer("abc123")

        assert lower.from_cache is None
        assert lower.data["offers"][0]["id"] == "abc123"

    @pytest.mark.parametrize("offer_id", ["", "ab/12", "../x"])
    @pytest.mark.asyncio
    async def test_invalid_offer_id(
        self, service: HotelService, amadeus: FakeAmadeusClient, offer_id: str
    ) -> None:
        with pytest.raises(ValidationError):
            await service.get_hotel_offer(offer_id)
        assert amadeus.calls == []


class TestHotelRatings:
    @pytest.mark.asyncio
    async def test_ratings_are_cached_for_an_hour(
        self, service: HotelService, amadeus: FakeAmadeusClient, clock: FakeClock
    ) -> None:
        sentiments = {"data": [{"hotelId": "RTPAR001", "overallRating": 87}]}
        amadeus.on("GET", SENTIMENTS, sentiments)

        first = await service.get_hotel_ratings(["RTPAR001", "MCLONGHM", "RTPAR001"])
        clock.advance(minutes=45)
        second = await service.get_hotel_ratings("MCLONGHM,RTPAR001")

        assert amadeus.calls[0]["params"] == {"hotelIds": "MCLONGHM,RTPAR001"}
        assert first.data == sentiments["data"]
        assert second.from_cache == "session"
        assert len(amadeus.calls) == 1

    @pytest.mark.parametrize("hotel_ids", ["", [], "RTPAR001,NOPE"])
    @pytest.mark.asyncio
    async def test_invalid_ids(
        self, service: HotelService, amadeus: FakeAmadeusClient, hotel_ids
    ) -> None:
        with pytest.raises(ValidationError):
            await service.get_hotel_ratings(hotel_ids)
        assert amadeus.calls == []


class TestStats:
    def test_stats_shape(self, service: HotelService) -> None:
        stats = service.get_stats()
        assert stats["service"] == "hotels"
        assert stats["max_session_cache_size"] == 500
        assert stats["cache_ttl_seconds"] == 20 * 60
        assert stats["deduplication"]["unique_requests"] == 0
