"""Sliding-window admission control for submissions (per minute and per hour)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from sceneflow.clock import Clock
from sceneflow.errors import RateLimitWait

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000
HOUR_MS = 3_600_000


@dataclass
class RateStats:
    last_minute: int
    last_hour: int

    def to_dict(self) -> dict[str, int]:
        return {"lastMinute": self.last_minute, "lastHour": self.last_hour}


class RateLimiter:
    """
    Gate invoked right before each submission.

    ``acquire`` suspends while the last 60 s hold ``per_minute`` submissions or
    the last hour holds ``per_hour``; ``record`` appends a timestamp once the
    submission went out.
    """

    def __init__(
        self,
        clock: Clock,
        per_minute: int = 12,
        per_hour: int = 120,
        safety_margin: float = 1.0,
        on_wait: Callable[[RateLimitWait], None] | None = None,
    ):
        self.clock = clock
        self.per_minute = per_minute
        self.per_hour = per_hour
        self.safety_margin = safety_margin
        self.on_wait = on_wait
        self._timestamps: list[int] = []

    def prune(self, now_ms: int | None = None) -> None:
        now_ms = self.clock.now_ms() if now_ms is None else now_ms
        self._timestamps = [t for t in self._timestamps if now_ms - t < HOUR_MS]

    def _in_window(self, now_ms: int, window_ms: int) -> list[int]:
        return [t for t in self._timestamps if now_ms - t < window_ms]

    async def acquire(self) -> float:
        """Wait until both windows have room. Returns the total seconds waited."""
        waited = 0.0

        now = self.clock.now_ms()
        self.prune(now)
        minute = self._in_window(now, MINUTE_MS)
        if len(minute) >= self.per_minute:
            seconds = (MINUTE_MS - (now - minute[0])) / 1000 + self.safety_margin
            waited += await self._wait(RateLimitWait(seconds, "minute", len(minute), self.per_minute))

        # Re-read the clock: the minute wait may already have freed the hour window
        now = self.clock.now_ms()
        self.prune(now)
        if len(self._timestamps) >= self.per_hour:
            seconds = (HOUR_MS - (now - self._timestamps[0])) / 1000 + self.safety_margin
            waited += await self._wait(RateLimitWait(seconds, "hour", len(self._timestamps), self.per_hour))

        return waited

    async def _wait(self, event: RateLimitWait) -> float:
        logger.warning(
            "Rate limit reached (%d/%d per %s). Waiting %.0fs...",
            event.in_window, event.limit, event.window, event.seconds,
        )
        if self.on_wait is not None:
            self.on_wait(event)
        await self.clock.sleep(event.seconds)
        return event.seconds

    def record(self) -> None:
        self._timestamps.append(self.clock.now_ms())

    def stats(self) -> RateStats:
        now = self.clock.now_ms()
        return RateStats(
            last_minute=len(self._in_window(now, MINUTE_MS)),
            last_hour=len(self._in_window(now, HOUR_MS)),
        )

    def configure(self, per_minute: int, per_hour: int) -> None:
        self.per_minute = per_minute
        self.per_hour = per_hour
