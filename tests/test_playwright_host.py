"""Tests for the browser session lifecycle (driver replaced with fakes)."""

import pytest

from sceneflow.host import playwright_host
from sceneflow.host.playwright_host import BrowserSession


class _Closable:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


class _Page:
    async def goto(self, url, wait_until="load"):
        raise RuntimeError(f"net::ERR_CONNECTION_REFUSED at {url}")


class _Context(_Closable):
    def __init__(self):
        super().__init__()
        self.pages = [_Page()]


class _Browser(_Closable):
    def __init__(self):
        super().__init__()
        self.context = _Context()

    async def new_context(self):
        return self.context


class _Chromium:
    def __init__(self):
        self.browser = _Browser()

    async def launch(self, headless=False):
        return self.browser


class _Driver:
    def __init__(self):
        self.chromium = _Chromium()
        self.stopped = False

    async def stop(self):
        self.stopped = True


class _Starter:
    def __init__(self, driver):
        self.driver = driver

    async def start(self):
        return self.driver


@pytest.mark.asyncio
async def test_failed_open_releases_driver_and_browser(monkeypatch):
    driver = _Driver()
    monkeypatch.setattr(playwright_host, "async_playwright", lambda: _Starter(driver))
    session = BrowserSession("http://127.0.0.1:9/", headless=True)

    with pytest.raises(RuntimeError, match="CONNECTION_REFUSED"):
        await session.open()

    assert driver.stopped
    assert driver.chromium.browser.closed
    assert driver.chromium.browser.context.closed
    assert session.host is None
