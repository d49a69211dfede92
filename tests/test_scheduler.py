"""Tests for CacheScheduler jobs and registration."""

from datetime import timedelta

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from conftest import FakeAmadeusClient, FakeClock, FakeStore, SleepRecorder
from payloads import location, locations_response
from travelhub.datasource.flights import FlightService
from travelhub.datasource.locations import LocationService
from travelhub.datasource.scheduler import CacheScheduler
from travelhub.settings import Settings

SEARCH = "/v1/reference-data/locations"


@pytest.fixture
def locations(
    amadeus: FakeAmadeusClient,
    store: FakeStore,
    clock: FakeClock,
    sleeper: SleepRecorder,
) -> LocationService:
    return LocationService(amadeus, store=store, clock=clock, sleep=sleeper)


@pytest.fixture
def flights(amadeus: FakeAmadeusClient, clock: FakeClock) -> FlightService:
    return FlightService(amadeus, clock=clock)


def make_scheduler(locations, flights, **settings) -> CacheScheduler:
    return CacheScheduler(Settings(**settings), locations, [flights, locations])


class TestJobs:
    @pytest.mark.asyncio
    async def test_warm_up_job_records_summary(
        self,
        locations: LocationService,
        flights: FlightService,
        amadeus: FakeAmadeusClient,
    ) -> None:
        amadeus.on("GET", SEARCH, locations_response(location("PAR", "PARIS", "CITY")))
        scheduler = make_scheduler(locations, flights)

        summary = await scheduler.warm_up_job()

        assert summary["cached"] > 0
        assert scheduler.last_warm_up == summary
        assert scheduler.get_status()["last_warm_up"] == summary

    @pytest.mark.asyncio
    async def test_cleanup_job(
        self,
        locations: LocationService,
        flights: FlightService,
        amadeus: FakeAmadeusClient,
        clock: FakeClock,
    ) -> None:
        amadeus.on("GET", SEARCH, locations_response(location("PAR", "PARIS", "CITY")))
        await locations.search_locations({"keyword": "Paris"})
        scheduler = make_scheduler(locations, flights)

        clock.advance(hours=25)
        removed = await scheduler.cleanup_job()

        assert removed == {"flights": 0, "locations": 2}
        assert len(locations.cache) == 0


class TestRegistration:
    @pytest.mark.asyncio
    async def test_development_schedules_one_delayed_warm_up(
        self, locations: LocationService, flights: FlightService
    ) -> None:
        scheduler = make_scheduler(
            locations, flights, ENVIRONMENT="development", CACHE_WARM_DEV_DELAY_MINUTES=10
        )
        scheduler.start()
        try:
            jobs = {job.id: job for job in scheduler.scheduler.get_jobs()}
            assert set(jobs) == {"cache_cleanup", "cache_warm_up"}
            assert isinstance(jobs["cache_warm_up"].trigger, DateTrigger)
            assert isinstance(jobs["cache_cleanup"].trigger, IntervalTrigger)
            assert jobs["cache_cleanup"].trigger.interval == timedelta(minutes=15)
            assert scheduler.is_running
            assert len(scheduler.get_status()["jobs"]) == 2
        finally:
            scheduler.stop()

        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_production_warms_up_daily(
        self, locations: LocationService, flights: FlightService
    ) -> None:
        scheduler = make_scheduler(
            locations, flights, ENVIRONMENT="production", CACHE_WARM_HOUR=4
        )
        scheduler.start()
        try:
            job = scheduler.scheduler.get_job("cache_warm_up")
            assert isinstance(job.trigger, CronTrigger)
            assert "hour='4'" in str(job.trigger)
        finally:
            scheduler.stop()

    @pytest.mark.asyncio
    async def test_warm_up_can_be_disabled(
        self, locations: LocationService, flights: FlightService
    ) -> None:
        scheduler = make_scheduler(locations, flights, CACHE_WARM_ENABLED=False)
        scheduler.start()
        try:
            assert scheduler.scheduler.get_job("cache_warm_up") is None
            assert scheduler.scheduler.get_job("cache_cleanup") is not None
        finally:
            scheduler.stop()

    def test_status_when_stopped(
        self, locations: LocationService, flights: FlightService
    ) -> None:
        scheduler = make_scheduler(locations, flights)
        assert scheduler.get_status() == {
            "running": False,
            "jobs": [],
            "last_warm_up": None,
        }
