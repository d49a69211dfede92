"""Amadeus response payloads used across tests."""

from typing import Any


def segment_endpoint(iata: str, terminal: str, at: str) -> dict[str, Any]:
    return {"iataCode": iata, "terminal": terminal, "at": at}


def flight_offer(
    offer_id: str = "1", total: str = "200.00", seats: int | None = 4
) -> dict[str, Any]:
    offer = {
        "type": "flight-offer",
        "id": offer_id,
        "oneWay": False,
        "price": {"currency": "USD", "total": total, "base": "180.00"},
        "itineraries": [
            {
                "duration": "PT6H10M",
                "segments": [
                    {
                        "departure": segment_endpoint("JFK", "4", "2025-09-01T08:00:00"),
                        "arrival": segment_endpoint("LAX", "5", "2025-09-01T11:10:00"),
                        "carrierCode": "DL",
                        "number": "123",
                        "aircraft": {"code": "321"},
                        "duration": "PT6H10M",
                    }
                ],
            }
        ],
        "travelerPricings": [{"travelerId": "1", "fareOption": "STANDARD"}],
    }
    if seats is not None:
        offer["numberOfBookableSeats"] = seats
    return offer


def flight_offers_response(*offers: dict[str, Any]) -> dict[str, Any]:
    return {
        "meta": {"count": len(offers)},
        "data": list(offers),
        "dictionaries": {"carriers": {"DL": "DELTA AIR LINES"}},
    }


def location(
    iata: str,
    name: str,
    sub_type: str = "AIRPORT",
    lat: float = 40.64,
    lon: float = -73.78,
    distance: float | None = None,
) -> dict[str, Any]:
    loc = {
        "type": "location",
        "subType": sub_type,
        "id": f"A{iata}",
        "name": name,
        "detailedName": f"NEW YORK/NY/{name}",
        "iataCode": iata,
        "timeZoneOffset": "-04:00",
        "address": {
            "cityName": "NEW YORK",
            "cityCode": "NYC",
            "countryName": "UNITED STATES OF AMERICA",
            "countryCode": "US",
        },
        "geoCode": {"latitude": lat, "longitude": lon},
        "analytics": {"travelers": {"score": 27}},
    }
    if distance is not None:
        loc["distance"] = {"value": distance, "unit": "KM"}
    return loc


def locations_response(*locations: dict[str, Any]) -> dict[str, Any]:
    return {"meta": {"count": len(locations)}, "data": list(locations)}


def activity(
    activity_id: str = "4615",
    amount: str | None = "10.00",
    rating: str | None = "4.5",
    pictures: list[str] | None = None,
) -> dict[str, Any]:
    act = {
        "type": "activity",
        "id": activity_id,
        "name": "Skip-the-line tickets to the Prado Museum",
        "shortDescription": "Book your tickets",
        "geoCode": {"latitude": "40.414000", "longitude": "-3.691000"},
        "pictures": ["https://images.example/prado.jpg"] if pictures is None else pictures,
        "bookingLink": "https://b2c.example/c/QCejqyor",
        "minimumDuration": "2 hours",
    }
    if amount is not None:
        act["price"] = {"currencyCode": "EUR", "amount": amount}
    if rating is not None:
        act["rating"] = rating
    return act


def point_of_interest(poi_id: str = "9CB40CB5D0", category: str = "SIGHTS") -> dict[str, Any]:
    return {
        "type": "location",
        "subType": "POINT_OF_INTEREST",
        "id": poi_id,
        "name": "Casa Batlló",
        "category": category,
        "subCategory": ["MUSEUM"],
        "geoCode": {"latitude": 41.39165, "longitude": 2.164772},
        "rank": 5,
        "tags": ["sightseeing", "museum"],
    }


def hotel(hotel_id: str = "RTPAR001", name: str = "ROYAL PARIS") -> dict[str, Any]:
    return {
        "chainCode": "RT",
        "iataCode": "PAR",
        "dupeId": 700000001,
        "name": name,
        "hotelId": hotel_id,
        "geoCode": {"latitude": 48.87, "longitude": 2.33},
        "address": {"countryCode": "FR", "cityName": "PARIS", "lines": ["1 RUE X"]},
        "lastUpdate": "2023-06-15T10:09:39",
    }


def hotel_offers(hotel_id: str = "RTPAR001", offer_id: str = "TSXOJ6LFQ2") -> dict[str, Any]:
    return {
        "type": "hotel-offers",
        "available": True,
        "hotel": {
            "hotelId": hotel_id,
            "name": "ROYAL PARIS",
            "cityCode": "PAR",
            "latitude": 48.87,
            "longitude": 2.33,
        },
        "offers": [
            {
                "id": offer_id,
                "checkInDate": "2025-09-01",
                "checkOutDate": "2025-09-03",
                "rateCode": "RAC",
                "room": {
                    "type": "A2K",
                    "typeEstimated": {"beds": 1, "bedType": "KING"},
                    "description": {"text": "Deluxe king room", "lang": "EN"},
                },
                "guests": {"adults": 2},
                "price": {"currency": "EUR", "base": "300.00", "total": "340.00"},
                "policies": {"paymentType": "deposit"},
            }
        ],
    }
