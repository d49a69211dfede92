"""
Exponential backoff for upstream calls.

Only transient failures are retried. The delay before retry ``i`` (1-indexed)
is ``base_delay * 2 ** (i - 1)`` plus a jitter drawn from
``[0, min(jitter, base_delay)]``, which keeps delays non-decreasing.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from travelhub.services.errors import RetryExhaustedError, UpstreamTransientError

T = TypeVar("T")

RetryCallback = Callable[[int, float, Exception], None]


def is_transient(error: Exception) -> bool:
    """Check whether an error is worth retrying."""
    return isinstance(error, UpstreamTransientError) and not isinstance(
        error, RetryExhaustedError
    )


@dataclass
class RetryPolicy:
    """Retry configuration shared by a service."""

    max_retries: int = 3
    base_delay: float = 1.0
    jitter: float = 0.0

    def delay_for(self, retry: int) -> float:
        """Delay in seconds before the given 1-indexed retry."""
        delay = self.base_delay * 2 ** (retry - 1)
        if self.jitter > 0:
            delay += random.uniform(0, min(self.jitter, self.base_delay))
        return delay


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    jitter: float = 0.0,
    on_retry: RetryCallback | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    operation_name: str = "upstream call",
) -> T:
    """
    Run ``operation``, retrying transient failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        max_retries: Retries allowed after the first attempt
        base_delay: Delay in seconds before the first retry
        jitter: Upper bound of the random delay added to each wait
        on_retry: Called with (retry number, delay, error) before each wait
        sleep: Awaitable sleep, replaceable in tests
        operation_name: Label used in log messages

    Returns:
        The first successful result

    Raises:
        RetryExhaustedError: Transient failures outlasted ``max_retries``
        Exception: Any non-transient error, on the attempt it occurred
    """
    policy = RetryPolicy(max_retries=max_retries, base_delay=base_delay, jitter=jitter)
    retry = 0

    while True:
        try:
            return await operation()
        except Exception as e:
            if not is_transient(e):
                raise

            if retry >= policy.max_retries:
                logger.error(
                    f"{operation_name} failed after {retry} retries: "
                    f"{type(e).__name__}: {e}"
                )
                raise RetryExhaustedError(e, retries=retry) from e

            retry += 1
            delay = policy.delay_for(retry)
            logger.warning(
                f"{operation_name} failed ({type(e).__name__}: {e}), "
                f"retrying in {delay:.2f}s (retry {retry}/{policy.max_retries})"
            )
            if on_retry is not None:
                on_retry(retry, delay, e)
            await sleep(delay)
