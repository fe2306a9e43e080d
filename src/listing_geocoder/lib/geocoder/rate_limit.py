"""Minimum-interval rate limiter for sequential provider calls."""

import asyncio
import time
from collections.abc import Awaitable, Callable


class MinIntervalLimiter:
    """Ensures at least ``min_interval`` seconds pass between consecutive calls.

    Not a concurrency primitive: the worker calls the provider strictly
    sequentially and uses this only to space those calls.

    Args:
        min_interval: Minimum seconds between two ``wait()`` returns.
        clock: Monotonic clock, injectable for tests.
        sleep: Async sleep function, injectable for tests.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            msg = f"min_interval must be >= 0, got {min_interval}"
            raise ValueError(msg)
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None

    async def wait(self) -> float:
        """Sleep until the next call is allowed, then record it.

        Returns:
            Seconds actually slept.
        """
        delay = 0.0
        if self._last_call is not None:
            elapsed = self._clock() - self._last_call
            delay = max(0.0, self.min_interval - elapsed)
            if delay > 0:
                await self._sleep(delay)
        self._last_call = self._clock()
        return delay
