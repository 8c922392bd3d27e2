"""Tests for the token-bucket RateLimiter."""

import asyncio
import time

from ingestly.services.rate_limiter import RateLimiter


class TestRateLimiter:
    async def test_burst_is_immediate(self):
        limiter = RateLimiter(rate_per_second=5)
        started = time.monotonic()
        for _ in range(5):
            await limiter.acquire()
        assert time.monotonic() - started < 0.1

    async def test_waits_once_bucket_is_empty(self):
        limiter = RateLimiter(rate_per_second=10, burst=1)
        await limiter.acquire()
        started = time.monotonic()
        await limiter.acquire()
        assert time.monotonic() - started >= 0.08

    async def test_zero_rate_disables_limiting(self):
        limiter = RateLimiter(rate_per_second=0)
        started = time.monotonic()
        await asyncio.gather(*(limiter.acquire() for _ in range(100)))
        assert time.monotonic() - started < 0.1

    async def test_concurrent_waiters_are_spaced(self):
        limiter = RateLimiter(rate_per_second=20, burst=1)
        started = time.monotonic()
        await asyncio.gather(*(limiter.acquire() for _ in range(4)))
        # one token up front, three more at 50 ms intervals
        assert time.monotonic() - started >= 0.13

    def test_capacity_defaults(self):
        assert RateLimiter(0.5).capacity == 1.0
        assert RateLimiter(4).capacity == 4
