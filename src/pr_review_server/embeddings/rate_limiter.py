"""
Rate Limiter

Token-bucket limiter for outbound embedding calls. One bucket is shared by
every indexing task in the process, so concurrent indexing runs together stay
under the provider's request rate instead of each sleeping independently.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, NamedTuple, Optional

from ..config import settings


class BucketStatus(NamedTuple):
    """Snapshot of the bucket after a refill."""
    tokens: float
    capacity: float
    rate: float


class TokenBucket:
    """
    Asynchronous token bucket.

    Tokens refill continuously at `rate` per second up to `capacity`.
    `acquire()` waits until one token is available and consumes it.
    Waiters are served in arrival order.
    """

    def __init__(
        self,
        rate: float,
        capacity: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Parameters
        ----------
        rate : float
            Tokens added per second. Must be positive.
        capacity : float
            Maximum burst size.
        clock, sleep
            Injectable time sources for tests.
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")

        self._rate = rate
        self._capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = capacity
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._updated = now

    async def acquire(self) -> float:
        """
        Wait for and consume one token.

        Returns
        -------
        float
            Seconds spent waiting.
        """
        waited = 0.0
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return waited
                delay = (1 - self._tokens) / self._rate
                waited += delay
                await self._sleep(delay)

    def status(self) -> BucketStatus:
        self._refill()
        return BucketStatus(tokens=self._tokens, capacity=self._capacity, rate=self._rate)


def bucket_from_interval(
    min_interval: Optional[float] = None,
    capacity: float = 1.0,
) -> TokenBucket:
    """
    Build a bucket that admits one call per `min_interval` seconds on average.
    """
    interval = settings.embedding_min_interval_seconds if min_interval is None else min_interval
    if interval <= 0:
        # Effectively unthrottled
        return TokenBucket(rate=1e9, capacity=max(capacity, 1.0))
    return TokenBucket(rate=1.0 / interval, capacity=capacity)
