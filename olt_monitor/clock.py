"""
Clock abstraction used by the scheduler, pollers and watchdog.

Timers sleep and timestamps are taken through a clock object so that tests
can drive time by hand instead of waiting.
"""
import asyncio
from datetime import datetime, timezone


class Clock:
    """Base clock interface."""

    def now(self) -> datetime:
        raise NotImplementedError

    async def sleep(self, seconds: float) -> None:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock in UTC backed by asyncio.sleep."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
