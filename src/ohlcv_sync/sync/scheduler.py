"""Recurring incremental sync on a cron schedule.

The API server owns one ``SyncScheduler``. It fires on the event loop the
server already runs, so a scheduled run shares the store, the provider
chain and the rate budgets with on-demand jobs.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ohlcv_sync.core.config import ScheduleConfig

logger = logging.getLogger(__name__)

JOB_ID = "scheduled_sync"


class SyncScheduler:
    """Runs ``job`` whenever ``config.cron`` fires.

    Parameters
    ----------
    config : ScheduleConfig
        Toggle, crontab expression and timezone.
    job : Callable[[], Awaitable[object]]
        Called with no arguments on every fire.
    """

    def __init__(self, config: ScheduleConfig, job: Callable[[], Awaitable[object]]) -> None:
        self._config = config
        self._job = job
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def config(self) -> ScheduleConfig:
        return self._config

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def job(self) -> Job | None:
        if not self.running:
            return None
        return self._scheduler.get_job(JOB_ID)

    @property
    def next_run_time(self) -> datetime | None:
        job = self.job
        return job.next_run_time if job else None

    def start(self) -> bool:
        """Start firing on the running event loop.

        Returns False when scheduling is disabled or already started.
        """
        if not self._config.enabled:
            logger.info("Scheduled sync is disabled")
            return False
        if self.running:
            return False

        scheduler = AsyncIOScheduler(
            timezone=self._config.timezone,
            job_defaults={
                "coalesce": True,  # Collapse missed fires into one run
                "max_instances": 1,
                "misfire_grace_time": 60 * 60,
            },
        )
        scheduler.add_job(
            self._run,
            trigger=CronTrigger.from_crontab(self._config.cron, timezone=self._config.timezone),
            id=JOB_ID,
            name="Incremental sync of stored symbols",
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "Scheduled sync enabled (cron=%r, tz=%s), next run %s",
            self._config.cron,
            self._config.timezone,
            self.next_run_time,
        )
        return True

    def shutdown(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduled sync stopped")
        self._scheduler = None

    async def _run(self) -> None:
        logger.info("Starting scheduled sync")
        await self._job()
