"""Auto-refresh scheduler: owns the single recurring refresh timer."""

import asyncio
from typing import Awaitable, Callable, Optional, Set, Tuple
from loguru import logger

from ..config import MIN_REFRESH_INTERVAL_MS
from .filters import parse_interval

FetchFn = Callable[[], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


class RefreshScheduler:
    """Periodically triggers a fetch while auto-refresh is enabled.

    There is at most one live timer task. Every (re)start cancels the
    previous timer, fires one fetch immediately and then one fetch per
    interval, so changing the interval always restarts the full wait.
    Ticks run at a fixed rate and do not wait for the fetch they trigger.

    A tick that fires while the fetch from the previous tick is still in
    flight is skipped when ``skip_overlapping_ticks`` is set. Manual
    refreshes are never skipped and never touch the timer.

    Must be driven from a running event loop.
    """

    def __init__(
        self,
        fetch: FetchFn,
        min_interval_ms: int = MIN_REFRESH_INTERVAL_MS,
        skip_overlapping_ticks: bool = True,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._fetch = fetch
        self.min_interval_ms = max(MIN_REFRESH_INTERVAL_MS, min_interval_ms)
        self.skip_overlapping_ticks = skip_overlapping_ticks
        self._sleep = sleep

        self._timer: Optional[asyncio.Task] = None
        self._interval_ms: Optional[int] = None
        self._applied: Optional[Tuple[bool, object]] = None
        self._tick_fetch: Optional[asyncio.Future] = None
        self._pending: Set[asyncio.Future] = set()
        self._cancelled_timers: Set[asyncio.Task] = set()

        # Stats
        self.ticks = 0
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self._timer is not None

    @property
    def interval_ms(self) -> Optional[int]:
        """Clamped interval of the live timer, None when idle."""
        return self._interval_ms

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def clamp_interval(self, interval_ms) -> int:
        return parse_interval(interval_ms, self.min_interval_ms)

    def configure(self, enabled: bool, interval_ms) -> None:
        """Apply the auto-refresh inputs; repeating the current inputs does nothing."""
        if self._applied == (bool(enabled), interval_ms):
            return
        if enabled:
            self.start(interval_ms)
        else:
            self.stop()
        self._applied = (bool(enabled), interval_ms)

    def start(self, interval_ms) -> None:
        """Enter RUNNING: cancel any live timer, fetch now and arm a new timer."""
        self._cancel_timer()
        ms = self.clamp_interval(interval_ms)
        if ms != interval_ms:
            logger.debug(f"Refresh interval {interval_ms} clamped to {ms} ms")

        self._applied = (True, interval_ms)
        self._interval_ms = ms
        self._tick_fetch = self._spawn()
        self._timer = asyncio.get_running_loop().create_task(self._run(ms / 1000))
        logger.info(f"Auto-refresh started: every {ms} ms")

    def stop(self) -> None:
        """Enter IDLE. In-flight fetches are left to finish."""
        if self._applied is not None:
            self._applied = (False, self._applied[1])
        if self._cancel_timer():
            logger.info("Auto-refresh stopped")

    def refresh_now(self) -> asyncio.Future:
        """Trigger one fetch immediately without touching the timer."""
        return self._spawn()

    async def wait_idle(self) -> None:
        """Wait until every fetch started so far has completed."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        """Stop the timer, wait for it to unwind and let in-flight fetches complete."""
        self.stop()
        if self._cancelled_timers:
            await asyncio.gather(*list(self._cancelled_timers), return_exceptions=True)
        await self.wait_idle()

    async def __aenter__(self) -> "RefreshScheduler":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _cancel_timer(self) -> bool:
        timer, self._timer = self._timer, None
        self._interval_ms = None
        if timer is None:
            return False
        timer.cancel()
        self._cancelled_timers.add(timer)
        timer.add_done_callback(self._cancelled_timers.discard)
        return True

    async def _run(self, delay: float) -> None:
        while True:
            await self._sleep(delay)
            self._on_tick()

    def _on_tick(self) -> None:
        self.ticks += 1
        previous = self._tick_fetch
        if self.skip_overlapping_ticks and previous is not None and not previous.done():
            self.skipped_ticks += 1
            logger.debug("Skipping refresh tick: previous fetch still in flight")
            return
        self._tick_fetch = self._spawn()

    def _spawn(self) -> asyncio.Future:
        task = asyncio.ensure_future(self._fetch())
        self._pending.add(task)
        task.add_done_callback(self._on_fetch_done)
        return task

    def _on_fetch_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error(f"Refresh task failed: {error}")
