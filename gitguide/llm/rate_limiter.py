"""Minimum-interval gate for outbound generation calls."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

MIN_CALL_INTERVAL = 1.0


class RateLimiter:
    """Grants one turn at a time, at least ``min_interval`` seconds apart.

    Build one per process and hand it to every GeminiClient so all call
    sites share the same last-grant timestamp. Waiting callers queue on a
    lock; a turn is delayed, never refused.
    """

    def __init__(
        self,
        min_interval: float = MIN_CALL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_grant: float | None = None
        self._lock = asyncio.Lock()

    @property
    def last_grant(self) -> float | None:
        return self._last_grant

    async def wait_turn(self) -> float:
        """Suspend until the interval has elapsed, then return the grant time."""
        async with self._lock:
            if self._last_grant is not None:
                elapsed = self._clock() - self._last_grant
                if elapsed < self.min_interval:
                    wait = self.min_interval - elapsed
                    logger.debug("Rate limiting: waiting %.0fms", wait * 1000)
                    await self._sleep(wait)
            self._last_grant = self._clock()
            return self._last_grant
