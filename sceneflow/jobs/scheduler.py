"""
Alarm-driven job scheduler.

The persisted job list is the source of truth: every wake-up re-reads it, and
``restore`` re-registers wake-ups after a restart. In-memory state only
covers store outages.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from pydantic import ValidationError

from sceneflow.clock import Clock
from sceneflow.jobs.models import JobStatus, RepeatInterval, ScheduledJob, next_firing_time
from sceneflow.jobs.timer import Timer
from sceneflow.store import SCHEDULED_JOBS, KeyValueStore, load_or_default, save_quietly

logger = logging.getLogger(__name__)

JobExecutor = Callable[[ScheduledJob], Any]


class JobScheduler:
    def __init__(
        self,
        store: KeyValueStore,
        timer: Timer,
        clock: Clock,
        execute: JobExecutor | None = None,
    ):
        self.store = store
        self.timer = timer
        self.clock = clock
        self.execute = execute
        self._jobs: dict[str, ScheduledJob] = {}
        self.timer.on_wake(self.on_wake)

    # -- persistence ----------------------------------------------------------

    def _load(self) -> dict[str, ScheduledJob]:
        raw = load_or_default(self.store, SCHEDULED_JOBS, None)
        if raw is None:
            return self._jobs
        jobs: dict[str, ScheduledJob] = {}
        for item in raw:
            try:
                job = ScheduledJob.model_validate(item)
            except ValidationError as e:
                logger.warning("Skipping unreadable scheduled job: %s", e)
                continue
            jobs[job.id] = job
        self._jobs = jobs
        return jobs

    def _persist(self) -> None:
        save_quietly(self.store, SCHEDULED_JOBS, [j.model_dump(mode="json") for j in self._jobs.values()])

    # -- operations -------------------------------------------------------------

    def schedule(self, job: ScheduledJob) -> ScheduledJob:
        """Persist ``job`` and register its wake-up."""
        self._load()
        if not job.created_at:
            job.created_at = self.clock.now_ms()
        job.status = JobStatus.SCHEDULED
        self._jobs[job.id] = job
        self._persist()
        self.timer.schedule_wake(job.id, job.firing_time)
        logger.info(
            "Scheduled job %s at %d (repeat=%s, %d tasks)",
            job.id, job.firing_time, job.repeat_interval.value, len(job.task_snapshot),
        )
        return job

    def create(
        self,
        firing_time: int,
        tasks: list[dict[str, Any]],
        settings: dict[str, Any],
        repeat: RepeatInterval | str = RepeatInterval.NONE,
        name: str = "",
    ) -> ScheduledJob:
        job = ScheduledJob(
            name=name,
            firing_time=firing_time,
            repeat_interval=RepeatInterval(repeat),
            task_snapshot=tasks,
            settings_snapshot=settings,
        )
        return self.schedule(job)

    def cancel(self, job_id: str) -> bool:
        """Remove the persisted job and its pending wake-up."""
        self._load()
        self.timer.cancel_wake(job_id)
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        self._persist()
        logger.info("Cancelled job %s", job_id)
        return True

    def get(self, job_id: str) -> ScheduledJob | None:
        return self._load().get(job_id)

    def list_jobs(self) -> list[ScheduledJob]:
        return sorted(self._load().values(), key=lambda j: j.firing_time)

    def restore(self) -> int:
        """Re-register wake-ups for every persisted Scheduled job. Returns how many."""
        count = 0
        for job in self._load().values():
            if job.status == JobStatus.SCHEDULED:
                self.timer.schedule_wake(job.id, job.firing_time)
                count += 1
        if count:
            logger.info("Restored %d scheduled jobs", count)
        return count

    async def on_wake(self, job_id: str) -> None:
        job = self._load().get(job_id)
        if job is None or job.status != JobStatus.SCHEDULED:
            logger.info("Wake for unknown or finished job %s ignored", job_id)
            return

        now = self.clock.now_ms()
        job.last_fired_at = now
        job.fire_count += 1
        upcoming = next_firing_time(job)
        if upcoming is not None:
            # Skip occurrences missed while the process was down
            while upcoming <= now:
                upcoming += job.repeat_interval.delta_ms
            job.firing_time = upcoming
            self.timer.schedule_wake(job.id, upcoming)
            logger.info("Job %s fired; next run at %d", job.id, upcoming)
        else:
            job.status = JobStatus.COMPLETED
            logger.info("Job %s fired and completed", job.id)
        self._persist()

        if self.execute is None:
            return
        try:
            result = self.execute(job)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Scheduled job %s execution failed", job.id)
