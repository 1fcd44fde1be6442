"""
Sliding-window rate tracker for reelbatch parallel generation.

Keeps the timestamps of requests issued in the trailing minute and answers
how long the caller must wait before the next request is safe under a fixed
requests-per-minute (RPM) ceiling. The window slides continuously instead of
resetting on minute boundaries, so bursts are smoothed rather than allowed
in full at the start of each minute.

Concurrency:
    - Designed for a single asyncio event loop; mutation is synchronous, so
      no lock is required
    - No background task: the window is pruned when it is accessed

Typical ceilings:
    - Image generation: 20 RPM
    - Text generation: 60+ RPM depending on the account tier
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


@dataclass
class RateLimitStats:
    """Statistics for rate tracker monitoring.

    Attributes:
        total_requests: Number of requests recorded
        throttled_count: Number of times a caller had to wait
        total_wait_ms: Cumulative time spent waiting
    """

    total_requests: int = 0
    throttled_count: int = 0
    total_wait_ms: float = 0.0


class RateLimitTracker:
    """
    Sliding one-minute window of request timestamps.

    Example:
        >>> tracker = RateLimitTracker(requests_per_minute=20)
        >>> await tracker.wait_if_needed()
        >>> tracker.record_request()
        >>> result = await api_call()

        >>> # Or both steps at once
        >>> async with tracker:
        ...     result = await api_call()

    Instances are owned explicitly by whoever drives the requests; there is
    no shared module-level tracker.
    """

    def __init__(
        self,
        requests_per_minute: int = 20,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            requests_per_minute: RPM ceiling of the remote service
            clock: Monotonic clock in seconds
            sleep: Coroutine used to suspend the caller
        """
        if requests_per_minute < 1:
            raise ValueError(
                f"requests_per_minute must be at least 1, got {requests_per_minute}"
            )

        self._rpm = requests_per_minute
        # Even spacing between requests at the ceiling rate
        self._min_delay_ms = (WINDOW_SECONDS * 1000.0) / requests_per_minute
        self._timestamps: list[float] = []
        self._clock = clock
        self._sleep = sleep
        self._stats = RateLimitStats()

    @property
    def requests_per_minute(self) -> int:
        return self._rpm

    @property
    def min_delay_ms(self) -> float:
        return self._min_delay_ms

    @property
    def stats(self) -> RateLimitStats:
        """Get current tracker statistics."""
        return self._stats

    def _active(self, now: float) -> list[float]:
        cutoff = now - WINDOW_SECONDS
        return [ts for ts in self._timestamps if ts > cutoff]

    def record_request(self) -> None:
        """Record a request issued now and drop entries older than the window."""
        now = self._clock()
        self._timestamps.append(now)
        self._timestamps = self._active(now)
        self._stats.total_requests += 1

    def get_required_delay_ms(self) -> float:
        """
        Delay in milliseconds before the next request respects the ceiling.

        Returns 0 while fewer than RPM requests fall inside the trailing
        window. Otherwise waits until the oldest request leaves the window,
        but never less than the even-spacing interval, so a freed slot is
        not immediately consumed by a burst.
        """
        now = self._clock()
        active = self._active(now)
        if len(active) < self._rpm:
            return 0.0

        since_oldest_ms = (now - min(active)) * 1000.0
        wait_ms = WINDOW_SECONDS * 1000.0 - since_oldest_ms
        return max(wait_ms, self._min_delay_ms)

    async def wait_if_needed(self) -> float:
        """
        Suspend the caller until the next request is safe.

        Returns:
            The delay waited in milliseconds (0 when no wait was needed)
        """
        delay_ms = self.get_required_delay_ms()
        if delay_ms <= 0:
            return 0.0

        self._stats.throttled_count += 1
        self._stats.total_wait_ms += delay_ms
        logger.info(
            "Rate limit: waiting %.0fms before next request (%d in window, limit %d RPM)",
            delay_ms,
            self.get_current_count(),
            self._rpm,
        )
        await self._sleep(delay_ms / 1000.0)
        return delay_ms

    def get_current_count(self) -> int:
        """Number of requests recorded in the trailing minute."""
        return len(self._active(self._clock()))

    async def acquire(self) -> None:
        """Wait for a free slot, then record the request."""
        await self.wait_if_needed()
        self.record_request()

    async def __aenter__(self) -> "RateLimitTracker":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        pass

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self._stats = RateLimitStats()
