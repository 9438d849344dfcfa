"""Shared fixtures for the dashboard core tests."""

import asyncio
from typing import List

import pytest


class ManualClock:
    """Stand-in for ``asyncio.sleep`` whose sleeps end only when the test says so."""

    def __init__(self):
        self.delays: List[float] = []
        self._waiters: List[asyncio.Future] = []

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        await future

    @property
    def sleeping(self) -> int:
        return sum(1 for f in self._waiters if not f.done())

    async def advance(self) -> None:
        """End every pending sleep, then let the woken tasks run."""
        waiters, self._waiters = self._waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(None)
        await settle()


async def settle(rounds: int = 10) -> None:
    """Give scheduled tasks a few loop iterations to run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeFetch:
    """Counts fetches; optionally blocks them until ``release()``."""

    def __init__(self, blocking: bool = False, error: Exception = None):
        self.calls = 0
        self.completed = 0
        self.error = error
        self._gate = asyncio.Event()
        if not blocking:
            self._gate.set()

    def release(self) -> None:
        self._gate.set()

    async def __call__(self) -> None:
        self.calls += 1
        await self._gate.wait()
        if self.error is not None:
            raise self.error
        self.completed += 1


@pytest.fixture
def clock():
    return ManualClock()
