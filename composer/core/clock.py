"""
Clocks for the cooperative scheduler.
WallClock paces in real time; SyntheticClock jumps straight to the next due
time so live-mode logic can run deterministically without waiting.
"""
import asyncio
import time


class WallClock:
    def __init__(self):
        self._origin = time.monotonic()

    def now(self) -> float:
        """Seconds since the clock was created."""
        return time.monotonic() - self._origin

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class SyntheticClock:
    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += max(0.0, seconds)

    async def sleep(self, seconds: float) -> None:
        self.advance(seconds)
        # Yield so other tasks (e.g. a stop request) get a turn
        await asyncio.sleep(0)
