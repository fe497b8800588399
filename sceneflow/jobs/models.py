"""Scheduled job schema and repeat arithmetic."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

HOUR_MS = 3_600_000
DAY_MS = 24 * HOUR_MS
WEEK_MS = 7 * DAY_MS


class RepeatInterval(str, Enum):
    NONE = "none"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def delta_ms(self) -> int:
        return {
            RepeatInterval.NONE: 0,
            RepeatInterval.HOURLY: HOUR_MS,
            RepeatInterval.DAILY: DAY_MS,
            RepeatInterval.WEEKLY: WEEK_MS,
        }[self]


class JobStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"


class ScheduledJob(BaseModel):
    """Deferred (optionally repeating) queue execution, persisted until it fires."""

    id: str = Field(default_factory=lambda: f"job_{uuid.uuid4().hex[:12]}")
    name: str = ""
    firing_time: int  # epoch ms
    repeat_interval: RepeatInterval = RepeatInterval.NONE
    task_snapshot: list[dict[str, Any]] = Field(default_factory=list)
    settings_snapshot: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.SCHEDULED
    created_at: int = 0
    last_fired_at: int | None = None
    fire_count: int = 0

    @property
    def is_repeating(self) -> bool:
        return self.repeat_interval is not RepeatInterval.NONE


def next_firing_time(job: ScheduledJob) -> int | None:
    """Next firing time counted from the current ``firing_time``; None when not repeating."""
    if not job.is_repeating:
        return None
    return job.firing_time + job.repeat_interval.delta_ms
