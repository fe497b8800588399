"""Timer boundary: named wake-ups at absolute epoch times."""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from sceneflow.clock import Clock, Handle

logger = logging.getLogger(__name__)

WakeHandler = Callable[[str], Any]


class Timer(Protocol):
    def schedule_wake(self, wake_id: str, at_ms: int) -> None: ...
    def cancel_wake(self, wake_id: str) -> None: ...
    def on_wake(self, handler: WakeHandler) -> None: ...


class ClockTimer:
    """Realise wake-ups as one-shot ``Clock.after`` callbacks. Past times fire immediately."""

    def __init__(self, clock: Clock):
        self.clock = clock
        self._handles: dict[str, Handle] = {}
        self._handler: WakeHandler | None = None

    def on_wake(self, handler: WakeHandler) -> None:
        self._handler = handler

    def schedule_wake(self, wake_id: str, at_ms: int) -> None:
        self.cancel_wake(wake_id)
        delay = max(0.0, (at_ms - self.clock.now_ms()) / 1000)
        self._handles[wake_id] = self.clock.after(delay, lambda: self._fire(wake_id))
        logger.debug("Wake %s scheduled in %.0fs", wake_id, delay)

    def cancel_wake(self, wake_id: str) -> None:
        handle = self._handles.pop(wake_id, None)
        if handle is not None:
            handle.cancel()

    def pending(self) -> list[str]:
        return list(self._handles)

    def _fire(self, wake_id: str) -> Any:
        self._handles.pop(wake_id, None)
        if self._handler is None:
            logger.warning("Wake %s fired with no handler", wake_id)
            return None
        return self._handler(wake_id)
