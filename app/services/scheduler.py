"""
services/scheduler.py
---------------------
In-process scheduled jobs, started from the application lifespan.

  - Monthly budget seeding at 00:00 UTC on the 1st.
  - Daily notification cleanup at 03:00 UTC.

Jobs run in tasks created at startup, outside any request, so no tenant
context is present and BudgetLedger.seed_monthly sees every company.
A failed run is logged and the loop waits for the next slot.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from app.core.config import settings
from app.core.logging import get_logger
from app.db.base import utcnow
from app.db.session import AsyncSessionLocal
from app.services.budget_service import BudgetLedger, current_period
from app.services.notification_service import NotificationService

logger = get_logger(__name__)

CLEANUP_HOUR_UTC = 3


def next_month_start(now: datetime) -> datetime:
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)


def next_daily_run(now: datetime, hour: int = CLEANUP_HOUR_UTC) -> datetime:
    run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if run <= now:
        run += timedelta(days=1)
    return run


class Scheduler:

    def __init__(self, session_factory=AsyncSessionLocal) -> None:
        self.session_factory = session_factory
        self._tasks: list[asyncio.Task] = []

    async def seed_current_month(self) -> int:
        year, month = current_period()
        async with self.session_factory() as db:
            return await BudgetLedger.seed_monthly(db, year, month)

    async def cleanup_notifications(self) -> int:
        async with self.session_factory() as db:
            return await NotificationService.cleanup_old_notifications(
                db, settings.NOTIFICATION_RETENTION_DAYS
            )

    async def _loop(
        self,
        name: str,
        next_run: Callable[[datetime], datetime],
        job: Callable[[], Awaitable[int]],
    ) -> None:
        while True:
            now = utcnow()
            wait = (next_run(now) - now).total_seconds()
            logger.info("Job scheduled", job=name, in_seconds=int(wait))
            await asyncio.sleep(wait)
            try:
                result = await job()
                logger.info("Job finished", job=name, result=result)
            except Exception:
                logger.error("Job failed", job=name, exc_info=True)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(
                self._loop("budget-seed", next_month_start, self.seed_current_month)
            ),
            asyncio.create_task(
                self._loop("notification-cleanup", next_daily_run, self.cleanup_notifications)
            ),
        ]

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []


scheduler = Scheduler()
