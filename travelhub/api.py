"""
HTTP surface - thin FastAPI routes over the services.

Query parameters are handed to the services as-is; the services validate
them, so Amadeus names such as ``originLocationCode`` or ``page[limit]``
work unchanged.
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from travelhub import __version__
from travelhub.context import TravelContext
from travelhub.datasource.activities import filter_activities
from travelhub.datasource.base import SearchResult
from travelhub.exceptions import register_exception_handlers
from travelhub.services.errors import ValidationError
from travelhub.settings import Settings, load_settings

ACTIVITY_FILTERS = {
    "minPrice": ("min_price", float),
    "maxPrice": ("max_price", float),
    "minRating": ("min_rating", float),
    "hasImages": ("has_images", lambda v: v.lower() in ("1", "true", "yes")),
}

router = APIRouter()


class PricingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    flight_offers: list[dict[str, Any]] = Field(alias="flightOffers")


def get_context(request: Request) -> TravelContext:
    return request.app.state.context


def query_params(request: Request) -> dict[str, Any]:
    return dict(request.query_params)


def envelope(result: SearchResult) -> dict[str, Any]:
    meta = dict(result.meta)
    meta["fromCache"] = result.from_cache
    return {"success": True, "data": result.data, "meta": meta}


# ── Flights ───────────────────────────────────────────────────────────────────


@router.get("/flights/search")
async def search_flights(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.flights.search_flight_offers(params))


@router.get("/flights/destinations")
async def search_destinations(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.flights.search_destinations(params))


@router.get("/flights/dates")
async def flight_dates(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.flights.get_flight_dates(params))


@router.get("/flights/airlines")
async def airline_info(
    codes: str = "",
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.flights.get_airline_info(codes.split(",")))


@router.post("/flights/pricing")
async def price_offers(
    body: PricingRequest,
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.flights.price_flight_offers(body.flight_offers))


# ── Locations ─────────────────────────────────────────────────────────────────


@router.get("/locations/search")
async def search_locations(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.locations.search_locations(params))


@router.get("/locations/nearby-airports")
async def nearby_airports(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.locations.get_nearby_airports(params))


@router.get("/locations/popular-destinations")
async def popular_destinations(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.locations.get_popular_destinations(params))


@router.get("/locations/airports/{city_code}")
async def airports_by_city(
    city_code: str,
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.locations.get_airports_by_city(city_code))


@router.get("/locations/{location_id}")
async def location_details(
    location_id: str,
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.locations.get_location_details(location_id))


# ── Activities ────────────────────────────────────────────────────────────────


@router.get("/activities/search")
async def search_activities(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    filters = {}
    for name, (arg, convert) in ACTIVITY_FILTERS.items():
        if name in params:
            raw = params.pop(name)
            try:
                filters[arg] = convert(raw)
            except ValueError as e:
                raise ValidationError(f"{name}: invalid value {raw!r}") from e
    if "categories" in params:
        filters["categories"] = params.pop("categories").split(",")

    result = await context.activities.search_activities(params)
    if filters:
        result = result.model_copy(
            update={"data": filter_activities(result.data, **filters)}
        )
    return envelope(result)


@router.get("/activities/categories")
async def activity_categories(context: TravelContext = Depends(get_context)):
    return {"success": True, "data": context.activities.get_activity_categories()}


@router.get("/activities/pois")
async def points_of_interest(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.activities.search_points_of_interest(params))


@router.get("/activities/pois/by-square")
async def points_of_interest_by_square(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.activities.get_points_of_interest_by_square(params))


@router.get("/activities/pois/{poi_id}")
async def point_of_interest_details(
    poi_id: str,
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.activities.get_point_of_interest_details(poi_id))


@router.get("/activities/{activity_id}")
async def activity_details(
    activity_id: str,
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.activities.get_activity_details(activity_id))


# ── Hotels ────────────────────────────────────────────────────────────────────


@router.get("/hotels/search")
async def search_hotels(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.hotels.search_hotels_by_city(params))


@router.get("/hotels/search-by-location")
async def search_hotels_by_location(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.hotels.search_hotels_by_geocode(params))


@router.get("/hotels/offers")
async def hotel_offers(
    params: dict = Depends(query_params),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.hotels.get_hotel_offers(params))


@router.get("/hotels/offers/{offer_id}")
async def hotel_offer(
    offer_id: str,
    lang: str | None = None,
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.hotels.get_hotel_offer(offer_id, lang))


@router.get("/hotels/ratings")
async def hotel_ratings(
    hotel_ids: str = Query("", alias="hotelIds"),
    context: TravelContext = Depends(get_context),
):
    return envelope(await context.hotels.get_hotel_ratings(hotel_ids))


# ── Monitoring ────────────────────────────────────────────────────────────────


@router.get("/stats")
async def stats(context: TravelContext = Depends(get_context)):
    return {"success": True, "data": await context.get_stats()}


def create_app(
    settings: Settings | None = None,
    context: TravelContext | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Defaults to ``load_settings()``
        context: Pre-built context, mainly for tests; started and closed
            with the application
    """
    settings = settings or load_settings()
    context = context or TravelContext(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await context.start()
        app.state.context = context
        yield
        await context.close()

    app = FastAPI(title="TravelHub API", version=__version__, lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint. Degraded when no Amadeus token can be obtained."""
        configured = context.client.is_configured()
        reachable = configured and await context.client.health_check()
        return {
            "status": "ok" if reachable else "degraded",
            "service": "travelhub",
            "amadeus_configured": configured,
            "amadeus_reachable": reachable,
        }

    return app
