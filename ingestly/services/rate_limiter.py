import asyncio
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token bucket gating how many operations may *start* per second.

    Holds at most ``burst`` tokens (defaults to ``max(1, rate_per_second)``)
    and refills continuously.  A non-positive rate disables limiting.
    """

    def __init__(self, rate_per_second: float, burst: Optional[float] = None):
        self.rate = rate_per_second
        self.capacity = burst if burst is not None else max(1.0, rate_per_second)
        self._tokens = self.capacity
        self._updated = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self, now: float) -> None:
        elapsed = now - self._updated
        self._updated = now
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)

    async def acquire(self) -> None:
        if self.rate <= 0:
            return
        while True:
            async with self._lock:
                self._refill(time.monotonic())
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait = (1 - self._tokens) / self.rate

            # never sleep while holding the lock
            await asyncio.sleep(wait)
