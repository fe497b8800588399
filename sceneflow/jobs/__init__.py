"""Scheduled (alarm-driven) queue execution."""

from sceneflow.jobs.models import JobStatus, RepeatInterval, ScheduledJob, next_firing_time
from sceneflow.jobs.scheduler import JobScheduler
from sceneflow.jobs.timer import ClockTimer, Timer

__all__ = [
    "ClockTimer",
    "JobScheduler",
    "JobStatus",
    "RepeatInterval",
    "ScheduledJob",
    "Timer",
    "next_firing_time",
]
