"""Tests for the outbound rate limiter."""

import asyncio

import pytest

from deepcrawl.core.rate_limiter import RateLimiter
from deepcrawl.foundation.errors import RateLimitError


def test_invalid_max_concurrent():
    with pytest.raises(ValueError):
        RateLimiter(max_concurrent=0)


@pytest.mark.asyncio
class TestRateLimiter:
    """Test suite for RateLimiter."""

    async def test_runs_coroutines_and_plain_callables(self):
        limiter = RateLimiter(min_time=0)

        async def double(value):
            return value * 2

        assert await limiter.schedule(double, 21) == 42
        assert await limiter.schedule(lambda: "sync") == "sync"
        assert limiter.running == 0

    async def test_max_concurrent(self):
        limiter = RateLimiter(min_time=0, max_concurrent=2)
        in_flight = 0
        peak = 0

        async def work(value):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return value

        results = await asyncio.gather(*(limiter.schedule(work, i) for i in range(6)))

        assert results == list(range(6))
        assert peak == 2
        assert limiter.running == 0

    async def test_min_time_between_starts(self):
        limiter = RateLimiter(min_time=0.05, max_concurrent=5)
        loop = asyncio.get_running_loop()
        starts = []

        await asyncio.gather(*(limiter.schedule(lambda: starts.append(loop.time())) for _ in range(3)))

        assert len(starts) == 3
        gaps = [later - earlier for earlier, later in zip(starts, starts[1:])]
        assert all(gap >= 0.04 for gap in gaps)

    async def test_reservoir_limits_starts_until_refresh(self):
        limiter = RateLimiter(
            min_time=0,
            max_concurrent=5,
            reservoir=2,
            reservoir_refresh_amount=2,
            reservoir_refresh_interval=0.2,
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        starts = []

        await asyncio.gather(*(limiter.schedule(lambda: starts.append(loop.time())) for _ in range(3)))

        assert starts[1] - started < 0.1
        assert starts[2] - started >= 0.15
        assert limiter.reservoir == 1

    async def test_exception_releases_slot(self):
        limiter = RateLimiter(min_time=0, max_concurrent=1)

        async def fail():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await limiter.schedule(fail)

        assert limiter.running == 0
        assert await limiter.schedule(lambda: "ok") == "ok"

    async def test_clear_drops_queued_work(self):
        limiter = RateLimiter(min_time=0, max_concurrent=1)
        release = asyncio.Event()

        async def blocker():
            await release.wait()
            return "first"

        first = asyncio.create_task(limiter.schedule(blocker))
        queued = [asyncio.create_task(limiter.schedule(lambda: "never")) for _ in range(2)]
        await asyncio.sleep(0.01)

        assert limiter.running == 1
        assert limiter.queued == 2
        assert limiter.clear() == 2

        for task in queued:
            with pytest.raises(RateLimitError):
                await task

        release.set()
        assert await first == "first"
        assert limiter.get_status()["running"] == 0

    async def test_cancelled_waiter_leaves_queue(self):
        limiter = RateLimiter(min_time=0, max_concurrent=1)
        release = asyncio.Event()

        first = asyncio.create_task(limiter.schedule(release.wait))
        waiting = asyncio.create_task(limiter.schedule(lambda: None))
        await asyncio.sleep(0.01)

        waiting.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiting

        assert limiter.queued == 0
        release.set()
        await first
        assert limiter.running == 0

    async def test_closed_limiter_rejects_work(self):
        limiter = RateLimiter(min_time=0)
        limiter.close()

        with pytest.raises(RateLimitError):
            await limiter.schedule(lambda: None)

    async def test_status(self):
        limiter = RateLimiter(min_time=0, reservoir=10)
        await limiter.schedule(lambda: None)

        assert limiter.get_status() == {"running": 0, "queued": 0, "reservoir": 9}
