"""Clock port: wall time, cooperative sleep and timer primitives.

All pacing in the queue (dispatch delays, batch rests, rate-limit waits,
monitor ticks, scheduled wake-ups) goes through a ``Clock`` so tests can swap
in ``VirtualClock`` and assert on timing without waiting.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

Callback = Callable[[], Any]


class Handle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    """Time source plus ``after``/``every`` scheduling."""

    def now_ms(self) -> int: ...
    async def sleep(self, seconds: float) -> None: ...
    def after(self, delay: float, callback: Callback) -> Handle: ...
    def every(self, interval: float, callback: Callback) -> Handle: ...


async def run_callback(callback: Callback) -> None:
    """Invoke a sync or async callback; log and swallow anything it raises."""
    try:
        result = callback()
        if inspect.isawaitable(result):
            await result
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Unhandled error in scheduled callback %r", callback)


# ---------------------------------------------------------------------------
# asyncio implementation
# ---------------------------------------------------------------------------

class _TaskHandle:
    def __init__(self, task: asyncio.Task):
        self._task = task

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()


class SystemClock:
    """Real time on the running asyncio loop."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))

    def after(self, delay: float, callback: Callback) -> Handle:
        async def _fire() -> None:
            await asyncio.sleep(max(0.0, delay))
            await run_callback(callback)

        return _TaskHandle(asyncio.get_running_loop().create_task(_fire()))

    def every(self, interval: float, callback: Callback) -> Handle:
        if interval <= 0:
            raise ValueError("interval must be positive")

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval)
                await run_callback(callback)

        return _TaskHandle(asyncio.get_running_loop().create_task(_loop()))


# ---------------------------------------------------------------------------
# Deterministic implementation
# ---------------------------------------------------------------------------

@dataclass
class _VirtualTimer:
    due_ms: float
    seq: int
    callback: Callback
    interval: float | None = None
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True


class VirtualClock:
    """Time moves only when someone sleeps or calls ``advance``.

    Timers registered with ``after``/``every`` fire in due order while time is
    advanced past them. Every ``sleep`` duration is recorded in ``sleeps``.
    """

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self._now = float(start_ms)
        self._timers: list[_VirtualTimer] = []
        self._seq = itertools.count()
        self.sleeps: list[float] = []

    def now_ms(self) -> int:
        return int(self._now)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        await self.advance(seconds)

    def after(self, delay: float, callback: Callback) -> Handle:
        timer = _VirtualTimer(self._now + max(0.0, delay) * 1000, next(self._seq), callback)
        self._timers.append(timer)
        return timer

    def every(self, interval: float, callback: Callback) -> Handle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        timer = _VirtualTimer(self._now + interval * 1000, next(self._seq), callback, interval)
        self._timers.append(timer)
        return timer

    async def advance(self, seconds: float) -> None:
        target = self._now + max(0.0, seconds) * 1000
        while True:
            self._timers = [t for t in self._timers if not t.cancelled]
            due = [t for t in self._timers if t.due_ms <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due_ms, t.seq))
            self._now = max(self._now, timer.due_ms)
            if timer.interval is None:
                timer.cancelled = True
            else:
                timer.due_ms += timer.interval * 1000
            await run_callback(timer.callback)
        self._now = max(self._now, target)
        await asyncio.sleep(0)

    @property
    def pending_timers(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)
