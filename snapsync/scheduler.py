# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync Scheduler - backup timer and reconciliation ticker.

Both timers are APScheduler jobs on one AsyncIOScheduler:

- the backup timer is a one-shot DateTrigger job; every call to
  reset_backup_timer() replaces it with a freshly computed run date, and the
  job re-arms itself after each run whether the backup succeeded or not;
- the sync ticker is an IntervalTrigger job firing every `sync_interval`
  seconds.

Delays are computed against the injected Clock so time_until_next_backup()
follows the same notion of "now" as the engine.
"""

import asyncio
from datetime import datetime, timedelta, UTC
from typing import Awaitable, Callable, Set

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from snapsync.clock import Clock

logger = structlog.get_logger()

MIN_BACKUP_DELAY = timedelta(seconds=1)

BACKUP_JOB_ID = "snapsync_backup"
SYNC_JOB_ID = "snapsync_sync"

Callback = Callable[[], Awaitable[None]]


class Scheduler:
    """Owns the backup timer and the sync ticker."""

    def __init__(
        self,
        clock: Clock,
        sync_interval: float,
        on_backup_due: Callback,
        on_sync_due: Callback,
        compute_backup_delay: Callable[[], timedelta],
    ):
        self.clock = clock
        self.sync_interval = sync_interval
        self._on_backup_due = on_backup_due
        self._on_sync_due = on_sync_due
        self._compute_backup_delay = compute_backup_delay

        self._scheduler: AsyncIOScheduler | None = None
        self._active: Set[asyncio.Task] = set()

        self._next_backup_in = MIN_BACKUP_DELAY
        self._calculated_at = clock.now()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def backup_job(self) -> Job | None:
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(BACKUP_JOB_ID)

    @property
    def sync_job(self) -> Job | None:
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(SYNC_JOB_ID)

    def start(self) -> None:
        if self.running:
            return

        self._scheduler = AsyncIOScheduler(timezone=UTC)
        self._scheduler.add_job(
            self.run_sync_job,
            trigger=IntervalTrigger(seconds=self.sync_interval),
            id=SYNC_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        self.reset_backup_timer()

        logger.info("scheduler_started", sync_interval=self.sync_interval)

    async def stop(self) -> None:
        """Stop firing new jobs, wait for running ones, then shut down."""
        if self.running:
            self._scheduler.pause()
            if self._active:
                await asyncio.gather(*self._active, return_exceptions=True)
            self._scheduler.shutdown(wait=False)

        self._scheduler = None
        logger.info("scheduler_stopped")

    def reset_backup_timer(self) -> timedelta:
        """
        Recompute the backup delay and re-arm the one-shot timer.

        The delay is never below one second. Before start() only the
        delay is recorded.
        """
        delay = max(self._compute_backup_delay(), MIN_BACKUP_DELAY)
        self._next_backup_in = delay
        self._calculated_at = self.clock.now()

        if self.running:
            self._scheduler.add_job(
                self.run_backup_job,
                trigger=DateTrigger(run_date=datetime.now(UTC) + delay),
                id=BACKUP_JOB_ID,
                replace_existing=True,
                misfire_grace_time=None,
            )

        logger.info("next_backup_scheduled", time_left=str(delay))
        return delay

    def set_sync_interval(self, seconds: float) -> None:
        self.sync_interval = seconds
        if self.running:
            self._scheduler.reschedule_job(
                SYNC_JOB_ID, trigger=IntervalTrigger(seconds=seconds)
            )
            logger.info("sync_interval_updated", seconds=seconds)

    def time_until_next_backup(self) -> timedelta:
        remaining = self._calculated_at + self._next_backup_in - self.clock.now()
        return max(remaining, timedelta(0))

    async def run_backup_job(self) -> None:
        """Body of the backup timer job; always re-arms the timer."""
        task = asyncio.current_task()
        self._active.add(task)
        try:
            logger.info("scheduled_backup_starting")
            try:
                await self._on_backup_due()
            except Exception as e:
                logger.error("scheduled_backup_failed", error=str(e))
            finally:
                self.reset_backup_timer()
        finally:
            self._active.discard(task)

    async def run_sync_job(self) -> None:
        """Body of the sync ticker job."""
        task = asyncio.current_task()
        self._active.add(task)
        try:
            logger.debug("scheduled_sync_starting")
            try:
                await self._on_sync_due()
            except Exception as e:
                logger.error("scheduled_sync_failed", error=str(e))
        finally:
            self._active.discard(task)
