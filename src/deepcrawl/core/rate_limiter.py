"""Global outbound request rate limiting.

Start slots are granted in FIFO order subject to three limits: a minimum
spacing between starts, a cap on in-flight calls and a token reservoir
that is reset to a fixed amount on a fixed interval.
"""

import asyncio
import inspect
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, TypeVar, Union

from ..foundation.errors import RateLimitError
from ..foundation.logging import get_logger


T = TypeVar("T")

logger = get_logger(__name__)


class RateLimiter:
    """Schedules callables under spacing, concurrency and reservoir limits.

    All bookkeeping happens on the event loop thread, so no lock is
    needed around the counters.
    """

    def __init__(
        self,
        min_time: float = 1.0,
        max_concurrent: int = 5,
        reservoir: Optional[int] = 100,
        reservoir_refresh_amount: Optional[int] = 100,
        reservoir_refresh_interval: Optional[float] = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.min_time = max(0.0, min_time)
        self.max_concurrent = max_concurrent
        self.reservoir_refresh_amount = reservoir_refresh_amount
        self.reservoir_refresh_interval = reservoir_refresh_interval
        self._clock = clock

        self._reservoir = reservoir
        self._last_refresh = clock()
        self._next_start = 0.0
        self._running = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._timer_when = 0.0
        self._closed = False

        logger.info(
            f"Rate limiter initialized (min_time={self.min_time}s, max_concurrent={max_concurrent})"
        )

    @property
    def running(self) -> int:
        return self._running

    @property
    def queued(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    @property
    def reservoir(self) -> Optional[int]:
        self._refresh_reservoir(self._clock())
        return self._reservoir

    def get_status(self) -> Dict[str, Any]:
        return {"running": self.running, "queued": self.queued, "reservoir": self.reservoir}

    async def schedule(self, fn: Callable[..., Union[T, Awaitable[T]]], *args: Any, **kwargs: Any) -> T:
        """Run ``fn(*args, **kwargs)`` once a start slot is granted.

        Coroutine functions are awaited. The slot is released when the
        call finishes, whether it succeeds or raises.

        Raises:
            RateLimitError: If the limiter is closed or the queued call is
                dropped by :meth:`clear`
        """
        await self._acquire()
        try:
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._closed:
            raise RateLimitError("Rate limiter is closed")

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._dispatch()

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # Granted just before cancellation
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def _release(self) -> None:
        self._running -= 1
        self._dispatch()

    def _refresh_reservoir(self, now: float) -> None:
        if self._reservoir is None or not self.reservoir_refresh_interval:
            return
        elapsed = now - self._last_refresh
        if elapsed >= self.reservoir_refresh_interval:
            periods = int(elapsed // self.reservoir_refresh_interval)
            self._last_refresh += periods * self.reservoir_refresh_interval
            if self.reservoir_refresh_amount is not None:
                self._reservoir = self.reservoir_refresh_amount

    def _dispatch(self) -> None:
        while self._waiters:
            if self._waiters[0].done():
                self._waiters.popleft()
                continue
            if self._running >= self.max_concurrent:
                return

            now = self._clock()
            self._refresh_reservoir(now)

            if self._reservoir is not None and self._reservoir <= 0:
                if self.reservoir_refresh_interval:
                    self._wake_at(self._last_refresh + self.reservoir_refresh_interval, now)
                return

            if now < self._next_start:
                self._wake_at(self._next_start, now)
                return

            waiter = self._waiters.popleft()
            self._running += 1
            if self._reservoir is not None:
                self._reservoir -= 1
            self._next_start = now + self.min_time
            waiter.set_result(None)

    def _wake_at(self, when: float, now: float) -> None:
        if self._timer is not None and not self._timer.cancelled() and self._timer_when <= when:
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer_when = when
        self._timer = asyncio.get_running_loop().call_later(max(0.0, when - now), self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._dispatch()

    def clear(self) -> int:
        """Drop every queued call; returns how many were dropped.

        Calls already running are not affected.
        """
        dropped = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(RateLimitError("Rate limiter cleared; queued request dropped"))
                dropped += 1

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if dropped:
            logger.info(f"Rate limiter dropped {dropped} queued requests")
        return dropped

    def close(self) -> None:
        """Stop accepting work and drop anything queued."""
        self._closed = True
        self.clear()
