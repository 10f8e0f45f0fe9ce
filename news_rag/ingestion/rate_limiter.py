"""
Fixed-interval rate limiter shared by bulk ingestion calls.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional


class FixedIntervalRateLimiter:
    """
    Enforces a minimum spacing between successive acquisitions.

    Callers are served one at a time in arrival order; each acquisition
    waits until at least ``min_interval`` seconds have passed since the
    previous one was granted.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Args:
            min_interval: Minimum seconds between two granted acquisitions
            clock: Monotonic time source
            sleep: Coroutine used to wait
        """
        if min_interval < 0:
            raise ValueError(f"min_interval cannot be negative, got {min_interval}")

        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_grant: Optional[float] = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> float:
        """
        Wait for the next slot.

        Returns:
            Seconds spent waiting
        """
        async with self._lock:
            waited = 0.0
            if self._last_grant is not None:
                remaining = self._last_grant + self.min_interval - self._clock()
                if remaining > 0:
                    await self._sleep(remaining)
                    waited = remaining
            self._last_grant = self._clock()
            return waited

    async def __aenter__(self) -> 'FixedIntervalRateLimiter':
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None
