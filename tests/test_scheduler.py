"""Tests for scheduled jobs: repeat arithmetic, wake handling and restore."""

import pytest

from sceneflow.clock import VirtualClock
from sceneflow.jobs.models import DAY_MS, HOUR_MS, JobStatus, RepeatInterval, ScheduledJob, next_firing_time
from sceneflow.jobs.scheduler import JobScheduler
from sceneflow.jobs.timer import ClockTimer
from sceneflow.store import SCHEDULED_JOBS, MemoryKeyValueStore

from conftest import ManualTimer

TASKS = [{"id": "SF_TXT_1_0", "sequence_index": 1, "kind": "text", "text": "a boat"}]


def _scheduler(store, timer, clock, executed):
    async def execute(job):
        executed.append(job.id)

    return JobScheduler(store, timer, clock, execute=execute)


def test_next_firing_time():
    job = ScheduledJob(firing_time=1000, repeat_interval=RepeatInterval.WEEKLY)
    assert next_firing_time(job) == 1000 + 7 * DAY_MS
    assert next_firing_time(ScheduledJob(firing_time=1000)) is None


@pytest.mark.asyncio
async def test_daily_job_fires_once_and_reschedules(store, clock, manual_timer):
    executed = []
    scheduler = _scheduler(store, manual_timer, clock, executed)
    now = clock.now_ms()
    job = scheduler.create(now + HOUR_MS, TASKS, {"batch_size": 2}, repeat="daily", name="morning run")
    assert manual_timer.wakes == {job.id: now + HOUR_MS}

    await clock.advance(3600)
    await manual_timer.fire(job.id)

    stored = scheduler.get(job.id)
    assert executed == [job.id]
    assert stored.firing_time == now + 25 * HOUR_MS
    assert stored.status == JobStatus.SCHEDULED
    assert stored.fire_count == 1
    assert stored.last_fired_at == now + HOUR_MS
    assert manual_timer.wakes == {job.id: now + 25 * HOUR_MS}


@pytest.mark.asyncio
async def test_one_shot_job_completes(store, clock, manual_timer):
    executed = []
    scheduler = _scheduler(store, manual_timer, clock, executed)
    job = scheduler.create(clock.now_ms(), TASKS, {})
    await manual_timer.fire(job.id)

    assert executed == [job.id]
    assert scheduler.get(job.id).status == JobStatus.COMPLETED
    assert manual_timer.wakes == {}

    # A stray second wake does nothing
    await manual_timer.fire(job.id)
    assert executed == [job.id]


@pytest.mark.asyncio
async def test_missed_occurrences_are_skipped(store, clock, manual_timer):
    executed = []
    scheduler = _scheduler(store, manual_timer, clock, executed)
    now = clock.now_ms()
    job = scheduler.create(now - 3 * DAY_MS - HOUR_MS, TASKS, {}, repeat=RepeatInterval.DAILY)
    await manual_timer.fire(job.id)

    assert executed == [job.id]
    assert scheduler.get(job.id).firing_time == now + DAY_MS - HOUR_MS


@pytest.mark.asyncio
async def test_wake_rereads_persisted_jobs(store, clock, manual_timer):
    executed = []
    first = _scheduler(store, manual_timer, clock, executed)
    job = first.create(clock.now_ms() + HOUR_MS, TASKS, {})

    # Another process cancels the job through the shared store
    other = JobScheduler(store, ManualTimer(), clock)
    assert other.cancel(job.id)

    await manual_timer.fire(job.id)
    assert executed == []


def test_cancel_unknown_job(store, clock, manual_timer):
    scheduler = JobScheduler(store, manual_timer, clock)
    assert not scheduler.cancel("job_missing")


def test_restore_after_restart(store, clock, manual_timer):
    scheduler = JobScheduler(store, manual_timer, clock)
    pending = scheduler.create(clock.now_ms() + HOUR_MS, TASKS, {})
    done = scheduler.create(clock.now_ms() + 2 * HOUR_MS, TASKS, {})
    jobs = store.get(SCHEDULED_JOBS)
    for item in jobs:
        if item["id"] == done.id:
            item["status"] = "completed"
    store.set(SCHEDULED_JOBS, jobs)

    timer = ManualTimer()
    restarted = JobScheduler(store, timer, clock)
    assert restarted.restore() == 1
    assert timer.wakes == {pending.id: pending.firing_time}
    assert [j.id for j in restarted.list_jobs()] == [pending.id, done.id]


@pytest.mark.asyncio
async def test_clock_timer_drives_hourly_job():
    clock = VirtualClock(start_ms=0)
    store = MemoryKeyValueStore()
    executed = []
    scheduler = _scheduler(store, ClockTimer(clock), clock, executed)
    scheduler.create(HOUR_MS, TASKS, {}, repeat="hourly")

    await clock.advance(3599)
    assert executed == []
    await clock.advance(1)
    assert len(executed) == 1
    await clock.advance(2 * 3600)
    assert len(executed) == 3


@pytest.mark.asyncio
async def test_executor_errors_are_contained(store, clock, manual_timer):
    async def explode(job):
        raise RuntimeError("browser gone")

    scheduler = JobScheduler(store, manual_timer, clock, execute=explode)
    job = scheduler.create(clock.now_ms(), TASKS, {})
    await manual_timer.fire(job.id)
    assert scheduler.get(job.id).status == JobStatus.COMPLETED
