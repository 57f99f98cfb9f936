"""
Reliability utilities for calls to external providers.

Includes the Circuit Breaker pattern and a fixed-delay rate limiter used to
pace geocoding requests.
"""

import time
import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional, TypeVar

logger = logging.getLogger("flora.reliability")

T = TypeVar("T")


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' consecutive failures occur, the circuit opens and
    rejects calls for 'reset_timeout' seconds, then lets one trial call through.
    """
    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN
        self._clock = clock

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if self._clock() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError("Circuit is OPEN")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise

        if self.state == "HALF_OPEN" or self.failures:
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = self._clock()
        if self.state == "HALF_OPEN" or self.failures >= self.failure_threshold:
            if self.state != "OPEN":
                logger.warning("Circuit opened after %d failures", self.failures)
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"


class FixedDelayRateLimiter:
    """
    Spaces successive acquisitions at least ``min_interval`` seconds apart.

    A single instance is shared process-wide so concurrent batches serialize
    on the same provider budget. The first acquisition never waits.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_acquired: Optional[float] = None

    async def acquire(self) -> float:
        """Wait for the next slot; returns the seconds spent waiting."""
        async with self._lock:
            waited = 0.0
            if self._last_acquired is not None:
                wait_for = self.min_interval - (self._clock() - self._last_acquired)
                if wait_for > 0:
                    await self._sleep(wait_for)
                    waited = wait_for
            self._last_acquired = self._clock()
            return waited


async def rate_limited(items: Iterable[T], limiter: FixedDelayRateLimiter) -> AsyncIterator[T]:
    """Yield each item only after the limiter grants a slot."""
    for item in items:
        await limiter.acquire()
        yield item
