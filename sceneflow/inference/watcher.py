"""Passive path: debounced page mutations turned into progress and completion events."""

from __future__ import annotations

import inspect
import logging
import re
from typing import Any, Callable

from sceneflow.clock import Clock, Handle
from sceneflow.host.base import HostPage

logger = logging.getLogger(__name__)

COMPLETION_PHRASES = ("Hoàn tất", "Complete", "Done")

_PERCENT_IN_TEXT = re.compile(r"(\d+)\s*%")


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class DomWatcher:
    """
    Watch the page for new completed media and percentage changes.

    Mutations are debounced; each flush checks the mutated texts for progress
    and completion phrases and then rescans media. Media sources are remembered
    so each one is reported once. A periodic media scan covers completions that
    arrive without a text mutation.
    """

    def __init__(
        self,
        host: HostPage,
        clock: Clock,
        on_progress: Callable[[int], Any],
        on_media: Callable[[str], Any],
        debounce: float = 0.5,
        scan_interval: float = 3.0,
    ):
        self.host = host
        self.clock = clock
        self.on_progress = on_progress
        self.on_media = on_media
        self.debounce = debounce
        self.scan_interval = scan_interval

        self.known_media: set[str] = set()
        self.last_progress = -1
        self.active = False
        self._pending: list[str] = []
        self._debounce_handle: Handle | None = None
        self._scan_handle: Handle | None = None

    async def start(self) -> None:
        if self.active:
            await self.stop()
        self.active = True
        # Media already on the page is not a new completion
        snapshot = await self.host.snapshot()
        self.known_media.update(s for s in snapshot.media_sources if s)
        await self.host.observe(self.handle_mutations)
        if self.scan_interval > 0:
            self._scan_handle = self.clock.every(self.scan_interval, self.scan_media)
        logger.info("DOM watcher started (%d known media)", len(self.known_media))

    async def stop(self) -> None:
        self.active = False
        for handle in (self._debounce_handle, self._scan_handle):
            if handle is not None:
                handle.cancel()
        self._debounce_handle = None
        self._scan_handle = None
        self._pending = []
        self.known_media.clear()
        self.last_progress = -1
        try:
            await self.host.disconnect()
        except Exception as e:
            logger.warning("Failed to disconnect page observer: %s", e)
        logger.info("DOM watcher disconnected")

    def handle_mutations(self, texts: list[str]) -> None:
        if not self.active:
            return
        self._pending.extend(texts)
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = self.clock.after(self.debounce, self.flush)

    async def flush(self) -> None:
        self._debounce_handle = None
        if not self.active:
            return
        texts, self._pending = self._pending, []
        try:
            await self.check_progress(texts)
            await self.scan_media()
        except Exception:
            logger.exception("DOM mutation handling error")

    async def check_progress(self, texts: list[str]) -> None:
        for text in texts:
            match = _PERCENT_IN_TEXT.search(text)
            if match:
                value = int(match.group(1))
                if value != self.last_progress and 0 <= value <= 100:
                    self.last_progress = value
                    await _call(self.on_progress, value)
            if any(phrase in text for phrase in COMPLETION_PHRASES):
                await _call(self.on_progress, 100)

    async def scan_media(self) -> list[str]:
        if not self.active:
            return []
        snapshot = await self.host.snapshot()
        fresh = []
        for src in snapshot.media_sources:
            if not src or src in self.known_media:
                continue
            if not (src.startswith("http") or src.startswith("blob:")):
                continue
            self.known_media.add(src)
            fresh.append(src)
            logger.info("New video detected: %s", src[:50])
            await _call(self.on_media, src)
        return fresh
