# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Scheduler Tests.

Job registration and re-arming are checked on the APScheduler jobs
directly; two tests let the real scheduler fire on short intervals.
"""

import asyncio
from datetime import datetime, timedelta, UTC

import pytest
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from conftest import ManualClock, settle, wait_for
from snapsync.scheduler import MIN_BACKUP_DELAY, Scheduler


class Calls:
    def __init__(self):
        self.backups = 0
        self.syncs = 0
        self.delay = timedelta(hours=1)
        self.fail_backup = False
        self.fail_sync = False
        self.gate: asyncio.Event | None = None

    async def backup(self):
        self.backups += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_backup:
            raise RuntimeError("another backup is running")

    async def sync(self):
        self.syncs += 1
        if self.fail_sync:
            raise RuntimeError("listing failed")

    def compute_delay(self) -> timedelta:
        return self.delay


def make_scheduler(clock: ManualClock, calls: Calls, sync_interval: float = 60) -> Scheduler:
    return Scheduler(
        clock=clock,
        sync_interval=sync_interval,
        on_backup_due=calls.backup,
        on_sync_due=calls.sync,
        compute_backup_delay=calls.compute_delay,
    )


def seconds_until(run_date: datetime) -> float:
    return (run_date - datetime.now(UTC)).total_seconds()


@pytest.mark.asyncio
async def test_start_registers_backup_and_sync_jobs(clock):
    calls = Calls()
    scheduler = make_scheduler(clock, calls)
    scheduler.start()

    backup_job = scheduler.backup_job
    assert isinstance(backup_job.trigger, DateTrigger)
    assert 3500 < seconds_until(backup_job.trigger.run_date) <= 3600

    sync_job = scheduler.sync_job
    assert isinstance(sync_job.trigger, IntervalTrigger)
    assert sync_job.trigger.interval == timedelta(seconds=60)

    assert scheduler.time_until_next_backup() == timedelta(hours=1)

    await scheduler.stop()


@pytest.mark.asyncio
async def test_time_until_next_backup_follows_clock(clock):
    calls = Calls()
    scheduler = make_scheduler(clock, calls)
    scheduler.start()

    clock.advance(1800)
    assert scheduler.time_until_next_backup() == timedelta(minutes=30)

    clock.advance(7200)
    assert scheduler.time_until_next_backup() == timedelta(0)

    await scheduler.stop()


@pytest.mark.asyncio
async def test_backup_job_rearms_after_success(clock):
    calls = Calls()
    scheduler = make_scheduler(clock, calls)
    scheduler.start()

    calls.delay = timedelta(hours=2)
    await scheduler.run_backup_job()

    assert calls.backups == 1
    assert scheduler.time_until_next_backup() == timedelta(hours=2)
    assert 7100 < seconds_until(scheduler.backup_job.trigger.run_date) <= 7200

    await scheduler.stop()


@pytest.mark.asyncio
async def test_backup_job_rearms_after_failure(clock):
    """A refused backup must not leave the timer idle."""
    calls = Calls()
    calls.fail_backup = True
    calls.delay = timedelta(days=-30)
    scheduler = make_scheduler(clock, calls)
    scheduler.start()

    await scheduler.run_backup_job()

    assert calls.backups == 1
    assert scheduler.backup_job is not None
    assert scheduler.time_until_next_backup() == MIN_BACKUP_DELAY

    await scheduler.stop()


@pytest.mark.asyncio
async def test_reset_replaces_pending_job(clock):
    calls = Calls()
    scheduler = make_scheduler(clock, calls)
    scheduler.start()

    calls.delay = timedelta(hours=3)
    scheduler.reset_backup_timer()

    jobs = scheduler._scheduler.get_jobs()
    assert sorted(job.id for job in jobs) == ["snapsync_backup", "snapsync_sync"]
    assert 10700 < seconds_until(scheduler.backup_job.trigger.run_date) <= 10800

    await scheduler.stop()


@pytest.mark.asyncio
async def test_backup_delay_has_a_floor(clock):
    calls = Calls()
    calls.delay = timedelta(days=-2)
    scheduler = make_scheduler(clock, calls)

    assert scheduler.reset_backup_timer() == MIN_BACKUP_DELAY

    calls.delay = timedelta(0)
    assert scheduler.reset_backup_timer() == MIN_BACKUP_DELAY


@pytest.mark.asyncio
async def test_reset_before_start_only_records_delay(clock):
    calls = Calls()
    scheduler = make_scheduler(clock, calls)

    scheduler.reset_backup_timer()

    assert not scheduler.running
    assert scheduler.backup_job is None
    assert scheduler.time_until_next_backup() == timedelta(hours=1)


@pytest.mark.asyncio
async def test_failing_sync_does_not_stop_ticker(clock):
    calls = Calls()
    calls.fail_sync = True
    scheduler = make_scheduler(clock, calls)
    scheduler.start()

    await scheduler.run_sync_job()
    await scheduler.run_sync_job()

    assert calls.syncs == 2
    assert scheduler.running
    assert scheduler.sync_job is not None

    await scheduler.stop()


@pytest.mark.asyncio
async def test_sync_ticker_fires_on_its_interval(clock):
    calls = Calls()
    scheduler = make_scheduler(clock, calls, sync_interval=0.05)
    scheduler.start()

    await wait_for(lambda: calls.syncs >= 2)

    await scheduler.stop()


@pytest.mark.asyncio
async def test_backup_timer_fires_and_rearms(clock):
    calls = Calls()
    calls.delay = timedelta(0)
    scheduler = make_scheduler(clock, calls)
    scheduler.start()

    await wait_for(lambda: calls.backups >= 1)
    await wait_for(lambda: scheduler.backup_job is not None)

    await scheduler.stop()


@pytest.mark.asyncio
async def test_stop_waits_for_running_job(clock):
    calls = Calls()
    calls.gate = asyncio.Event()
    scheduler = make_scheduler(clock, calls)
    scheduler.start()

    job = asyncio.create_task(scheduler.run_backup_job())
    await settle()
    stopping = asyncio.create_task(scheduler.stop())
    await settle()

    assert not stopping.done()

    calls.gate.set()
    await stopping
    await job

    assert not scheduler.running
    assert scheduler.backup_job is None
    assert scheduler.sync_job is None


@pytest.mark.asyncio
async def test_sync_interval_change_reschedules_ticker(clock):
    calls = Calls()
    scheduler = make_scheduler(clock, calls)
    scheduler.start()

    scheduler.set_sync_interval(10)

    assert scheduler.sync_interval == 10
    assert scheduler.sync_job.trigger.interval == timedelta(seconds=10)

    await scheduler.stop()
