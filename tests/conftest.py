"""Shared fakes for the service tests."""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

import pytest

from travelhub.services.cache import CacheEntry, serialize_params
from travelhub.services.errors import CachePersistenceError


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 9, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeAmadeusClient:
    """
    Stands in for ``AmadeusClient``.

    Responses are registered per (method, endpoint) as a dict, an exception,
    a list of either (consumed in order), or a callable taking the call.
    Setting ``gate`` holds every call until the event is set.
    """

    def __init__(self):
        self.responses: dict[tuple[str, str], Any] = {}
        self.calls: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False
        self.healthy = True

    def is_configured(self) -> bool:
        return True

    async def health_check(self) -> bool:
        return self.healthy

    def on(self, method: str, endpoint: str, response: Any) -> None:
        self.responses[(method, endpoint)] = response

    def calls_to(self, endpoint: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["endpoint"] == endpoint]

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        call = {
            "method": method,
            "endpoint": endpoint,
            "params": params,
            "json": json_data,
        }
        self.calls.append(call)

        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

        response = self.responses.get((method, endpoint))
        if response is None:
            raise AssertionError(f"Unexpected call: {method} {endpoint}")
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if callable(response) and not isinstance(response, type):
            response = response(call)
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


class FakeStore:
    """In-memory persisted tier."""

    def __init__(self, clock: Callable[[], datetime]):
        self.rows: dict[tuple[str, str], CacheEntry] = {}
        self.clock = clock
        self.fail_reads = False
        self.fail_writes = False
        self.loads = 0
        self.saves = 0

    @staticmethod
    def _key(lookup_key: str, search_params: Mapping[str, Any]) -> tuple[str, str]:
        return " ".join(lookup_key.split()).lower(), serialize_params(search_params)

    async def load(self, lookup_key, search_params):
        self.loads += 1
        await asyncio.sleep(0)
        if self.fail_reads:
            raise CachePersistenceError("database is locked")
        entry = self.rows.get(self._key(lookup_key, search_params))
        if entry is None or entry.is_expired(self.clock()):
            return None
        return entry

    async def save(self, lookup_key, search_params, entry):
        self.saves += 1
        await asyncio.sleep(0)
        if self.fail_writes:
            raise CachePersistenceError("disk I/O error")
        self.rows[self._key(lookup_key, search_params)] = entry

    async def purge_expired(self) -> int:
        now = self.clock()
        expired = [k for k, v in self.rows.items() if v.is_expired(now)]
        for key in expired:
            del self.rows[key]
        return len(expired)


class SleepRecorder:
    """Replacement for ``asyncio.sleep`` that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def amadeus() -> FakeAmadeusClient:
    return FakeAmadeusClient()


@pytest.fixture
def store(clock: FakeClock) -> FakeStore:
    return FakeStore(clock)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
