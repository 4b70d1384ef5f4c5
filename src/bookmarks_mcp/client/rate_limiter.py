"""Adaptive client-side rate limiting for tool calls against the bookmark API."""

import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class AdaptiveRateLimiter:
    """Spaces requests to ``rate`` per second and adapts to 429 responses.

    Each rate-limit signal halves the rate (down to ``min_rate``) and pauses all
    callers for ``retry_after`` seconds; each success recovers 10% of the rate
    (up to ``max_rate``).
    """

    def __init__(self, initial_rate: float = 10.0, min_rate: float = 1.0, max_rate: float = 100.0):
        if not 0 < min_rate <= initial_rate <= max_rate:
            raise ValueError("Expected 0 < min_rate <= initial_rate <= max_rate")
        self.rate = initial_rate
        self.min_rate = min_rate
        self.max_rate = max_rate
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until the next request slot."""
        async with self._lock:
            now = time.monotonic()
            wait = self._next_slot - now
            if wait > 0:
                await asyncio.sleep(wait)
                now = time.monotonic()
            self._next_slot = now + 1.0 / self.rate

    def on_success(self) -> None:
        self.rate = min(self.max_rate, self.rate * 1.1)

    def on_rate_limit(self, retry_after: float | None = None) -> None:
        previous = self.rate
        self.rate = max(self.min_rate, self.rate / 2)
        pause = retry_after if retry_after else 1.0 / self.rate
        self._next_slot = max(self._next_slot, time.monotonic() + pause)
        logger.warning(f"Rate limited: {previous:.1f} -> {self.rate:.1f} req/s, pausing {pause:.2f}s")
