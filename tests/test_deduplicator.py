"""Tests for RequestDeduplicator."""

import asyncio

import pytest

from travelhub.services.deduplicator import RequestDeduplicator


class TestRequestDeduplicator:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_call(self) -> None:
        dedup = RequestDeduplicator()
        gate = asyncio.Event()
        calls = 0

        async def fetch() -> list[str]:
            nonlocal calls
            calls += 1
            await gate.wait()
            return ["JFK", "LGA"]

        waiters = [asyncio.create_task(dedup.dedupe("nyc", fetch)) for _ in range(5)]
        await asyncio.sleep(0)
        assert dedup.get_in_flight_count() == 1

        gate.set()
        results = await asyncio.gather(*waiters)

        assert calls == 1
        assert all(r == ["JFK", "LGA"] for r in results)
        stats = dedup.get_stats()
        assert stats.total == 1
        assert stats.deduplicated == 4
        assert stats.to_dict()["dedup_rate"] == "80.00%"

    @pytest.mark.asyncio
    async def test_failure_is_shared_by_all_waiters(self) -> None:
        dedup = RequestDeduplicator()
        calls = 0

        async def fetch() -> None:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)
            raise RuntimeError("upstream down")

        results = await asyncio.gather(
            *(dedup.dedupe("k", fetch) for _ in range(3)),
            return_exceptions=True,
        )

        assert calls == 1
        assert all(isinstance(r, RuntimeError) for r in results)
        assert dedup.get_in_flight_count() == 0

    @pytest.mark.asyncio
    async def test_key_released_after_completion(self) -> None:
        dedup = RequestDeduplicator()
        calls = 0

        async def fetch() -> int:
            nonlocal calls
            calls += 1
            return calls

        assert await dedup.dedupe("k", fetch) == 1
        assert dedup.get_in_flight_count() == 0
        assert await dedup.dedupe("k", fetch) == 2

    @pytest.mark.asyncio
    async def test_distinct_keys_run_separately(self) -> None:
        dedup = RequestDeduplicator()
        seen: list[str] = []

        def fetcher(key: str):
            async def fetch() -> str:
                seen.append(key)
                await asyncio.sleep(0)
                return key

            return fetch

        results = await asyncio.gather(
            dedup.dedupe("a", fetcher("a")), dedup.dedupe("b", fetcher("b"))
        )

        assert results == ["a", "b"]
        assert sorted(seen) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_shared_request(self) -> None:
        dedup = RequestDeduplicator()
        gate = asyncio.Event()

        async def fetch() -> str:
            await gate.wait()
            return "done"

        first = asyncio.create_task(dedup.dedupe("k", fetch))
        second = asyncio.create_task(dedup.dedupe("k", fetch))
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        gate.set()
        assert await second == "done"
        assert dedup.get_in_flight_count() == 0

    @pytest.mark.asyncio
    async def test_cancel_all(self) -> None:
        dedup = RequestDeduplicator()
        gate = asyncio.Event()

        async def fetch() -> None:
            await gate.wait()

        waiter = asyncio.create_task(dedup.dedupe("k", fetch))
        await asyncio.sleep(0)

        assert await dedup.cancel_all() == 1
        assert dedup.get_in_flight_count() == 0
        with pytest.raises(asyncio.CancelledError):
            await waiter
