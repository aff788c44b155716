"""
Day-rollover helpers for the notification refresh.

Buckets change purely because the calendar moves on ("upcoming" becomes
"due tomorrow" at midnight), so a refresh is due on the first session of
each day and again at every local midnight.
"""

import asyncio
import logging
from contextlib import suppress
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def local_now(tz_name: str) -> datetime:
    return datetime.now(ZoneInfo(tz_name))


def local_today(tz_name: str) -> date:
    return local_now(tz_name).date()


def is_first_session_of_day(last_check: date | None, today: date) -> bool:
    """True when the client's watermark is missing or from another day."""
    return last_check is None or last_check != today


def next_midnight(now: datetime) -> datetime:
    tomorrow = now.date() + timedelta(days=1)
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=now.tzinfo)


def seconds_until_next_midnight(now: datetime) -> float:
    # wall-clock difference, so DST days are 23 or 25 hours long
    midnight = next_midnight(now)
    if now.tzinfo is not None:
        delta = midnight.astimezone(ZoneInfo("UTC")) - now.astimezone(ZoneInfo("UTC"))
    else:
        delta = midnight - now
    return max(delta.total_seconds(), 0.0)


class MidnightRefresher:
    """
    Background task that runs `callback` at every local midnight.

    The timer is rescheduled after each run; a failing run is logged and the
    next midnight is still scheduled. `stop()` cancels the pending sleep, a
    run already in progress is not interrupted.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        tz_name: str = "UTC",
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.callback = callback
        self.tz_name = tz_name
        self._clock = clock or (lambda: local_now(tz_name))
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._running = False
        self._stopping = False

    def start(self):
        self._stopping = False
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="midnight-refresher")

    async def stop(self):
        if self._task is None:
            return
        self._stopping = True
        if not self._running:
            self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def run_once(self):
        delay = seconds_until_next_midnight(self._clock())
        logger.info(f"Next notification refresh in {delay:.0f}s")
        await self._sleep(delay)

        self._running = True
        try:
            await self.callback()
        except Exception:
            logger.exception("Midnight notification refresh failed")
        finally:
            self._running = False

    async def _run(self):
        while not self._stopping:
            await self.run_once()
