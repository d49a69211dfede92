"""
Amadeus-facing services and their maintenance scheduler.
"""

from travelhub.datasource.activities import ActivityService
from travelhub.datasource.base import BaseAmadeusService, SearchResult
from travelhub.datasource.flights import FlightService
from travelhub.datasource.hotels import HotelService
from travelhub.datasource.locations import POPULAR_DESTINATIONS, LocationService
from travelhub.datasource.scheduler import CacheScheduler

__all__ = [
    "ActivityService",
    "BaseAmadeusService",
    "CacheScheduler",
    "FlightService",
    "HotelService",
    "LocationService",
    "POPULAR_DESTINATIONS",
    "SearchResult",
]
