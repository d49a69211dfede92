"""Tests for the SQLite-backed persisted cache."""

from datetime import timedelta

import pytest
import pytest_asyncio

from conftest import FakeClock
from travelhub.datastore import (
    CachedActivityDB,
    CachedLocationDB,
    CacheRepository,
    Database,
    SqlCacheStore,
)
from travelhub.services.cache import CacheEntry, serialize_params
from travelhub.services.errors import CachePersistenceError


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path}/cache.db")
    await db.init()
    yield db
    await db.close()


@pytest.fixture
def locations(database: Database, clock: FakeClock) -> SqlCacheStore:
    return SqlCacheStore(database.session_factory, CachedLocationDB, clock=clock)


def entry(clock: FakeClock, data, hours: float = 24) -> CacheEntry:
    return CacheEntry(
        data=data,
        meta={"count": len(data)},
        created_at=clock.now,
        expires_at=clock.now + timedelta(hours=hours),
    )


PARAMS = {"keyword": "Paris", "subType": "AIRPORT,CITY", "page[limit]": 10}


class TestSqlCacheStore:
    @pytest.mark.asyncio
    async def test_save_and_load(self, locations: SqlCacheStore, clock: FakeClock) -> None:
        await locations.save("Paris", PARAMS, entry(clock, [{"iataCode": "PAR"}]))

        loaded = await locations.load("paris", dict(reversed(PARAMS.items())))

        assert loaded.data == [{"iataCode": "PAR"}]
        assert loaded.meta == {"count": 1}
        assert loaded.expires_at == clock.now + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_params_are_part_of_the_key(
        self, locations: SqlCacheStore, clock: FakeClock
    ) -> None:
        await locations.save("Paris", PARAMS, entry(clock, [{"iataCode": "PAR"}]))

        assert await locations.load("Paris", {**PARAMS, "subType": "AIRPORT"}) is None

    @pytest.mark.asyncio
    async def test_save_replaces_existing_row(
        self, locations: SqlCacheStore, database: Database, clock: FakeClock
    ) -> None:
        await locations.save("Paris", PARAMS, entry(clock, [{"iataCode": "PAR"}]))
        await locations.save("PARIS", PARAMS, entry(clock, [{"iataCode": "CDG"}], hours=48))

        loaded = await locations.load("Paris", PARAMS)
        stats = await locations.get_stats()

        assert loaded.data == [{"iataCode": "CDG"}]
        assert loaded.expires_at == clock.now + timedelta(hours=48)
        assert stats["total_entries"] == 1

    @pytest.mark.asyncio
    async def test_expired_rows_are_not_loaded(
        self, locations: SqlCacheStore, clock: FakeClock
    ) -> None:
        await locations.save("Paris", PARAMS, entry(clock, [{"iataCode": "PAR"}], hours=1))

        clock.advance(hours=1)

        assert await locations.load("Paris", PARAMS) is None

    @pytest.mark.asyncio
    async def test_purge_expired(self, locations: SqlCacheStore, clock: FakeClock) -> None:
        await locations.save("Paris", PARAMS, entry(clock, [1], hours=1))
        await locations.save("London", PARAMS, entry(clock, [2], hours=24))

        clock.advance(hours=2)
        stats = await locations.get_stats()
        purged = await locations.purge_expired()

        assert stats == {"total_entries": 2, "expired_entries": 1, "active_entries": 1}
        assert purged == 1
        assert (await locations.get_stats())["total_entries"] == 1

    @pytest.mark.asyncio
    async def test_tables_are_separate(
        self, database: Database, locations: SqlCacheStore, clock: FakeClock
    ) -> None:
        activities = SqlCacheStore(database.session_factory, CachedActivityDB, clock=clock)
        await activities.save("activities:41.39,2.16", {}, entry(clock, [{"id": "1"}]))

        assert await locations.load("activities:41.39,2.16", {}) is None
        assert (await activities.load("activities:41.39,2.16", {})).data == [{"id": "1"}]

    @pytest.mark.asyncio
    async def test_unserializable_data_raises_persistence_error(
        self, locations: SqlCacheStore, clock: FakeClock
    ) -> None:
        with pytest.raises(CachePersistenceError):
            await locations.save("Paris", PARAMS, entry(clock, [object()]))

    @pytest.mark.asyncio
    async def test_closed_database_raises_persistence_error(
        self, database: Database, clock: FakeClock
    ) -> None:
        store = SqlCacheStore(database.session_factory, CachedLocationDB, clock=clock)
        async with database.engine.begin() as conn:
            await conn.run_sync(CachedLocationDB.__table__.drop)

        with pytest.raises(CachePersistenceError):
            await store.load("Paris", PARAMS)
        with pytest.raises(CachePersistenceError):
            await store.save("Paris", PARAMS, entry(clock, [1]))


class TestCacheRepository:
    @pytest.mark.asyncio
    async def test_upsert_and_get(self, database: Database, clock: FakeClock) -> None:
        params = serialize_params(PARAMS)
        async with database.session_factory() as session:
            repo = CacheRepository(session, CachedLocationDB)
            await repo.upsert("paris", params, [1], {}, clock.now + timedelta(hours=1))
            await session.commit()

            row = await repo.get("paris", params, clock.now)
            assert row is not None
            assert row.keyword == "paris"
            assert await repo.get("paris", params, clock.now + timedelta(hours=1)) is None
