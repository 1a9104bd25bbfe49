from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .render import schedule_label

log = logging.getLogger("pricebot")

class DailyScheduler:
    """
    Fires a single coroutine callback once a day at a fixed wall-clock time.

    The cron trigger carries the timezone, so DST shifts are handled by the
    scheduler. Overlapping fires may run side by side; runs share nothing.
    """
    JOB_ID = "daily-report"

    def __init__(self, callback: Callable[[], Awaitable[Any]], hour: int, minute: int,
                 tz: str = "Australia/Brisbane", max_instances: int = 3):
        self.callback = callback
        self.tz = ZoneInfo(tz)
        self.label = schedule_label(f"{hour:02d}:{minute:02d}", tz)
        self.trigger = CronTrigger(hour=hour, minute=minute, timezone=self.tz)
        self._sched = AsyncIOScheduler(timezone=self.tz)
        self._sched.add_job(self._fire, self.trigger, id=self.JOB_ID, name="daily crypto price report",
                            max_instances=max_instances, coalesce=False, misfire_grace_time=300)

    async def _fire(self) -> None:
        log.info("Running scheduled crypto price update...")
        await self.callback()

    @property
    def running(self) -> bool:
        return self._sched.running

    def start(self) -> None:
        self._sched.start()
        log.info("Scheduled to run daily at %s", self.label)

    def shutdown(self) -> None:
        if self._sched.running:
            self._sched.shutdown(wait=False)

    def next_run_time(self, now: datetime | None = None) -> datetime | None:
        now = now or datetime.now(self.tz)
        return self.trigger.get_next_fire_time(None, now)

    def describe(self) -> str:
        return f"{self.label} daily"
