"""
Element locator: semantic element names resolved through ordered match patterns.

Lookup order is: the last pattern that worked (cache), learned patterns, then
the built-in table. Patterns starting with ``//`` are XPath, everything else CSS.
"""

from __future__ import annotations

import logging

from sceneflow.clock import Clock
from sceneflow.errors import LocatorNotFound
from sceneflow.host.base import ElementRef, HostPage
from sceneflow.retry import with_retry
from sceneflow.store import SELECTOR_PATTERNS, KeyValueStore, load_or_default, save_quietly

logger = logging.getLogger(__name__)

DEFAULT_PATTERNS: dict[str, list[str]] = {
    "generateButton": [
        "//button[.//span[contains(text(), 'Generate')]]",
        "//button[.//span[contains(text(), 'Tạo')]]",
        "//button[contains(@aria-label, 'Send prompt')]",
        "//button[contains(@aria-label, 'Gửi')]",
        "//button[.//i[contains(text(), 'arrow_forward')]]",
        "//button[.//span[contains(text(), 'arrow_forward')]]",
        "//button[.//i[contains(text(), 'send')]]",
        "//button[.//span[contains(text(), 'send')]]",
        "//button[contains(@class, 'mat-mdc-fab')]",
        "button.generate-button",
    ],
    "promptInput": [
        "textarea",
        "div[contenteditable='true']",
        "[data-testid='prompt-input']",
        ".prompt-textarea",
    ],
    "tuneButton": [
        "//button[contains(@aria-label, 'Settings')]",
        "//button[.//span[contains(text(), 'Tune')]]",
        "//button[.//i[contains(text(), 'tune')]]",
        "//button[.//span[contains(text(), 'tune')]]",
    ],
    "textTab": [
        "//button[.//span[contains(text(), 'Text')]]",
        "//div[contains(text(), 'Text to Video')]",
        "//span[contains(text(), 'Từ văn bản sang video')]",
        "//div[contains(text(), 'Từ văn bản sang video')]",
        "//button[contains(., 'Text')]",
        "//div[@role='tab'][contains(., 'Text')]",
        "//div[contains(@class, 'tab')][contains(., 'Text')]",
        "//span[contains(text(), 'Text to video')]",
        "[data-tab='text']",
        ".text-tab",
    ],
    "imageTab": [
        "//button[.//span[contains(text(), 'Image')]]",
        "//div[contains(text(), 'Image to Video')]",
        "//span[contains(text(), 'Tạo video từ các khung hình')]",
        "//div[contains(text(), 'Tạo video từ các khung hình')]",
    ],
    "uploadButton": [
        "//span[contains(text(), 'Tải lên')]",
        "//div[contains(text(), 'Tải lên')]",
        "//li[contains(., 'Tải lên')]",
        "//button[contains(., 'Tải lên')]",
        "//span[contains(text(), 'Upload')]",
        "//button[contains(., 'Upload')]",
    ],
    "addButton": [
        "//button[.//span[contains(@class, 'material-icons') and contains(text(), 'add')]]",
        "//div[@role='button'][.//span[contains(text(), '+')]]",
        "//button[contains(@aria-label, 'Add')]",
        ".add-button",
        "//div[contains(@class, 'placeholder')][.//span[contains(text(), '+')]]",
    ],
    "cropSaveButton": [
        "//span[contains(text(), 'Cắt và lưu')]",
        "//button[contains(., 'Cắt và lưu')]",
        "//span[contains(text(), 'Crop and save')]",
        "//button[contains(., 'Crop and save')]",
    ],
    "downloadButton": [
        "//button[contains(@aria-label, 'Download')]",
        "//button[contains(@aria-label, 'Tải xuống')]",
        "//button[.//i[contains(text(), 'download')]]",
        "//button[.//span[contains(text(), 'download')]]",
    ],
    "retryButton": [
        "//button[@title='Sử dụng lại câu lệnh']",
        "//button[@aria-label='Sử dụng lại câu lệnh']",
        "//button[@title='Use prompt again']",
        "//button[@aria-label='Use prompt again']",
        "//button[.//span[contains(text(), 'reuse')]]",
    ],
}


class SelectorEngine:
    def __init__(
        self,
        host: HostPage,
        clock: Clock,
        store: KeyValueStore | None = None,
        patterns: dict[str, list[str]] | None = None,
    ):
        self.host = host
        self.clock = clock
        self.store = store
        source = DEFAULT_PATTERNS if patterns is None else patterns
        self._patterns: dict[str, list[str]] = {k: list(v) for k, v in source.items()}
        self._learned: dict[str, list[str]] = {}
        self._cache: dict[str, str] = {}

    def patterns_for(self, name: str) -> list[str]:
        return list(self._patterns.get(name, []))

    # -- learning -------------------------------------------------------------

    def learn(self, name: str, pattern: str) -> None:
        """Put ``pattern`` first for ``name`` and persist it."""
        self._prepend(name, [pattern])
        learned = self._learned.setdefault(name, [])
        if pattern in learned:
            learned.remove(pattern)
        learned.insert(0, pattern)
        self._cache.pop(name, None)
        logger.info("Learned new selector for %s: %s", name, pattern)
        if self.store is not None:
            save_quietly(self.store, SELECTOR_PATTERNS, self._learned)

    def load_patterns(self) -> int:
        """Merge persisted learned patterns in front of the built-ins."""
        if self.store is None:
            return 0
        stored = load_or_default(self.store, SELECTOR_PATTERNS, {})
        count = 0
        for name, patterns in stored.items():
            if not isinstance(patterns, list):
                continue
            self._prepend(name, patterns)
            self._learned[name] = list(patterns)
            count += len(patterns)
        if count:
            logger.info("Loaded %d learned selector patterns", count)
        return count

    def _prepend(self, name: str, patterns: list[str]) -> None:
        existing = [p for p in self._patterns.get(name, []) if p not in patterns]
        self._patterns[name] = list(patterns) + existing

    # -- lookup ---------------------------------------------------------------

    async def _try_patterns(self, name: str) -> ElementRef:
        cached = self._cache.get(name)
        if cached is not None:
            element = await self.host.query(cached)
            if element is not None:
                return element
            self._cache.pop(name, None)

        for pattern in self._patterns.get(name, []):
            element = await self.host.query(pattern)
            if element is not None:
                self._cache[name] = pattern
                logger.debug("Found %s using: %s", name, pattern)
                return element
        raise LocatorNotFound(name)

    async def locate(self, name: str, timeout_ms: int = 5000, retries: int = 3) -> ElementRef:
        """Resolve ``name`` or raise LocatorNotFound after ``retries`` full passes."""
        retries = max(1, retries)
        try:
            return await with_retry(
                lambda: self._try_patterns(name),
                clock=self.clock,
                max_attempts=retries,
                base_delay=timeout_ms / retries / 1000,
                backoff_factor=1.0,
                retry_on=(LocatorNotFound,),
                label=f"locate {name}",
            )
        except LocatorNotFound:
            logger.warning("Element not found: %s", name)
            raise LocatorNotFound(name, attempts=retries) from None

    async def find(self, name: str, timeout_ms: int = 5000, retries: int = 3) -> ElementRef | None:
        """Like ``locate`` but returns None for optional controls."""
        try:
            return await self.locate(name, timeout_ms=timeout_ms, retries=retries)
        except LocatorNotFound:
            return None
