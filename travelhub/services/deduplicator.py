"""
RequestDeduplicator - Prevents duplicate concurrent requests.

When multiple callers request the same resource simultaneously,
only one actual request is made and the result is shared.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class RequestDeduplicator:
    """
    Deduplicates concurrent async requests.

    The in-flight map is only touched between suspension points, so no lock
    is needed: a key is registered before the first ``await`` of the caller
    that starts the request, and removed by the shared task itself before
    its waiters are resumed.

    Usage:
        dedup = RequestDeduplicator()

        async def fetch_data(url: str):
            return await dedup.dedupe(
                key=url,
                request_fn=lambda: http_client.get(url)
            )
    """

    def __init__(self, name: str = "dedup", debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._name = name
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Execute request with deduplication.

        If a request with the same key is already in flight,
        wait for and return its result instead of making a new request.
        A caller that is cancelled while waiting does not cancel the
        shared request.

        Args:
            key: Unique identifier for this request
            request_fn: Async function to execute if no duplicate exists

        Returns:
            Result from request_fn (either fresh or from in-flight request)
        """
        task = self._in_flight.get(key)
        if task is not None:
            self._stats.deduplicated += 1
            self._log(f"DEDUPE: Waiting for in-flight request: {key[:50]}...")
        else:
            self._stats.total += 1
            self._log(f"NEW: Starting request: {key[:50]}...")
            task = asyncio.create_task(self._execute_and_cleanup(key, request_fn))
            task.add_done_callback(self._retrieve_exception)
            self._in_flight[key] = task

        return await asyncio.shield(task)

    async def _execute_and_cleanup(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute request and clean up when done."""
        try:
            return await request_fn()
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]
            self._log(f"DONE: Request completed: {key[:50]}...")

    def _retrieve_exception(self, task: asyncio.Task[Any]) -> None:
        """Mark the outcome as seen when every waiter has gone away."""
        if not task.cancelled() and task.exception() is not None:
            self._log(f"FAILED: {type(task.exception()).__name__}")

    async def cancel_all(self) -> int:
        """Cancel all in-flight requests."""
        count = len(self._in_flight)
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()
        if count:
            logger.info(f"[{self._name}] Cancelled {count} in-flight requests")
        return count

    def get_in_flight_count(self) -> int:
        """Get number of in-flight requests."""
        return len(self._in_flight)

    def get_stats(self) -> "DeduplicatorStats":
        """Get deduplication statistics."""
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[{self._name}] {message}")


@dataclass
class DeduplicatorStats:
    """Upstream calls started versus callers that joined one in flight."""

    total: int = 0  # shared requests started
    deduplicated: int = 0  # callers served by a request already in flight
    in_flight: int = 0

    @property
    def dedup_rate(self) -> float:
        """Share of callers that joined an in-flight request."""
        total = self.total + self.deduplicated
        if total == 0:
            return 0.0
        return self.deduplicated / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "unique_requests": self.total,
            "deduplicated": self.deduplicated,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }
