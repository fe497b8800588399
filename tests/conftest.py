"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json

import httpx
import pytest

from sceneflow.clock import VirtualClock
from sceneflow.config import QueueSettings, Settings
from sceneflow.delivery.webhook import WebhookConfig, WebhookSender
from sceneflow.host.base import PageSnapshot
from sceneflow.locator import DEFAULT_PATTERNS
from sceneflow.store import MemoryKeyValueStore


PROMPT_INPUT = DEFAULT_PATTERNS["promptInput"][0]
GENERATE_BUTTON = DEFAULT_PATTERNS["generateButton"][0]
TEXT_TAB = DEFAULT_PATTERNS["textTab"][0]


# ---------------------------------------------------------------------------
# Fake host page
# ---------------------------------------------------------------------------

class FakeElement:
    """Scriptable ElementRef. ``disabled`` may be a list consumed one state per check."""

    def __init__(self, key: str, text: str = "", disabled=False, attributes: dict | None = None, tag: str = "div"):
        self._key = key
        self._text = text
        self.disabled = disabled
        self.attributes = attributes or {}
        self.tag = tag
        self.children: dict[str, list["FakeElement"]] = {}
        self.clicks = 0
        self.value: str | None = None
        self.events: list[str] = []
        self.files: list[tuple[str, str, bytes]] = []
        self.on_click = None
        self.fail_click: Exception | None = None

    @property
    def key(self) -> str:
        return self._key

    async def click(self) -> None:
        if self.fail_click is not None:
            raise self.fail_click
        self.clicks += 1
        if self.on_click is not None:
            self.on_click()

    async def set_text(self, text: str) -> None:
        self.value = text
        self.events.extend(["input", "change"])

    async def set_files(self, name: str, mime_type: str, data: bytes) -> None:
        self.files.append((name, mime_type, data))

    async def is_disabled(self) -> bool:
        if isinstance(self.disabled, list):
            return self.disabled.pop(0) if len(self.disabled) > 1 else self.disabled[0]
        return bool(self.disabled)

    async def text(self) -> str:
        return self._text

    async def tag_name(self) -> str:
        return self.tag

    async def attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    async def query_all(self, pattern: str) -> list["FakeElement"]:
        return list(self.children.get(pattern, []))


class FakeHostPage:
    """In-memory HostPage: patterns map to elements, snapshots are set directly."""

    def __init__(self):
        self.elements: dict[str, FakeElement] = {}
        self.lists: dict[str, list[FakeElement]] = {}
        self.inputs: list[FakeElement] = []
        self.page = PageSnapshot()
        self.queries: list[str] = []
        self.zoom: float | None = None
        self.dismissed = 0
        self.callback = None
        self.disconnected = False
        self.fail_snapshot = False

    async def query(self, pattern: str) -> FakeElement | None:
        self.queries.append(pattern)
        return self.elements.get(pattern)

    async def query_all(self, pattern: str) -> list[FakeElement]:
        return list(self.lists.get(pattern, []))

    async def file_inputs(self) -> list[FakeElement]:
        return list(self.inputs)

    async def set_zoom(self, factor: float) -> None:
        self.zoom = factor

    async def dismiss(self) -> None:
        self.dismissed += 1

    async def snapshot(self) -> PageSnapshot:
        if self.fail_snapshot:
            raise RuntimeError("page closed")
        return self.page

    async def observe(self, callback) -> None:
        self.callback = callback

    async def disconnect(self) -> None:
        self.disconnected = True
        self.callback = None

    # -- scripting helpers ----------------------------------------------------

    def add(self, pattern: str, element: FakeElement | None = None) -> FakeElement:
        element = element or FakeElement(key=pattern)
        self.elements[pattern] = element
        return element

    def show(self, media: list[str] | None = None, percents: list[str] | None = None,
             alerts: list[str] | None = None, main: str = "") -> None:
        self.page = PageSnapshot(
            media_sources=list(media or []),
            percent_texts=list(percents or []),
            alert_texts=list(alerts or []),
            main_text=main,
        )


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []

    def notify(self, title: str, message: str, severity: str = "info") -> None:
        self.sent.append((title, message, severity))


class ManualTimer:
    """Timer whose wake-ups fire only when a test calls ``fire``."""

    def __init__(self):
        self.wakes: dict[str, int] = {}
        self._handler = None

    def on_wake(self, handler) -> None:
        self._handler = handler

    def schedule_wake(self, wake_id: str, at_ms: int) -> None:
        self.wakes[wake_id] = at_ms

    def cancel_wake(self, wake_id: str) -> None:
        self.wakes.pop(wake_id, None)

    async def fire(self, wake_id: str) -> None:
        self.wakes.pop(wake_id, None)
        await self._handler(wake_id)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def host():
    return FakeHostPage()


@pytest.fixture
def ready_host(host):
    """Host page exposing the text tab, prompt field and an enabled generate button."""
    host.add(TEXT_TAB)
    host.add(PROMPT_INPUT, FakeElement(key="prompt", tag="textarea"))
    host.add(GENERATE_BUTTON, FakeElement(key="generate", tag="button"))
    return host


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def webhook_calls():
    return []


@pytest.fixture
def webhook(webhook_calls):
    """WebhookSender subscribed to every event, recording payloads via httpx.MockTransport."""

    def handler(request: httpx.Request) -> httpx.Response:
        webhook_calls.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    config = WebhookConfig(url="https://hooks.example.test/sceneflow", events=["task_complete", "queue_complete", "error"])
    return WebhookSender(config, transport=httpx.MockTransport(handler))


@pytest.fixture
def manual_timer():
    return ManualTimer()


@pytest.fixture
def fast_settings():
    """Queue settings with pacing reduced to whole seconds for readable timing assertions."""
    return QueueSettings(
        batch_size=4,
        rest_time=60,
        dispatch_delay=8,
        failure_delay=3,
        defer_delay=5,
        monitor_interval=3,
        max_retries=2,
        auto_download=False,
    )


@pytest.fixture
def app_settings(tmp_path):
    return Settings(sceneflow_data_dir=str(tmp_path / "data"), cors_origins="http://localhost:3000")
