"""
Single-threaded cooperative tick scheduler.
Jobs run to completion in registration order each cycle, so two periodic
concerns (audio tick, frame tick) never interleave mid-callback.
"""
import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

_EPS = 1e-9


@dataclass
class Job:
    name: str
    period: float
    callback: Callable[[float], None]
    first_due: Optional[float] = None
    runs: int = 0
    cancelled: bool = False

    @property
    def next_due(self) -> float:
        return (self.first_due or 0.0) + self.runs * self.period


class TickScheduler:
    def __init__(self, clock):
        self.clock = clock
        self._jobs: List[Job] = []
        self._stopped = False
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> List[Job]:
        return [j for j in self._jobs if not j.cancelled]

    def every(self, period: float, callback: Callable[[float], None], name: str = "") -> Job:
        """Register callback(now) to run every period seconds, first run at scheduler start."""
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        job = Job(name=name or getattr(callback, "__name__", "job"), period=float(period), callback=callback)
        self._jobs.append(job)
        return job

    def cancel(self, job: Job) -> None:
        job.cancelled = True

    def stop(self) -> None:
        """Stop after the current callback returns. Safe to call repeatedly."""
        if not self._stopped:
            logger.debug("Scheduler stop requested")
        self._stopped = True

    async def run(self) -> None:
        start = self.clock.now()
        for job in self._jobs:
            if job.first_due is None:
                job.first_due = start
        self._running = True
        try:
            while not self._stopped and self.jobs:
                now = self.clock.now()
                for job in self.jobs:
                    if self._stopped:
                        break
                    if now + _EPS >= job.next_due:
                        job.callback(now)
                        # Missed ticks are skipped, not replayed in a burst
                        elapsed_periods = math.floor((now - job.first_due) / job.period + _EPS)
                        job.runs = max(job.runs + 1, elapsed_periods + 1)
                if self._stopped or not self.jobs:
                    break
                next_due = min(job.next_due for job in self.jobs)
                await self.clock.sleep(next_due - self.clock.now())
        finally:
            self._running = False
            self._jobs.clear()
