"""Playwright (async API) implementation of the host UI boundary."""

from __future__ import annotations

import inspect
import itertools
import logging
from pathlib import Path

from playwright.async_api import Browser, BrowserContext, ElementHandle, Page, Playwright, async_playwright

from sceneflow.host.base import MutationCallback, PageSnapshot

logger = logging.getLogger(__name__)

_BINDING = "__sceneflowMutations"

_SET_TEXT_JS = """
(el, value) => {
    el.focus();
    if (el.tagName === 'TEXTAREA' || el.tagName === 'INPUT') {
        const proto = el.tagName === 'TEXTAREA' ? HTMLTextAreaElement.prototype : HTMLInputElement.prototype;
        const setter = Object.getOwnPropertyDescriptor(proto, 'value').set;
        if (setter) { setter.call(el, value); } else { el.value = value; }
    } else {
        el.textContent = value;
    }
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
}
"""

_TAG_KEY_JS = """
(el, key) => {
    if (!el.dataset.sfKey) { el.dataset.sfKey = key; }
    return el.dataset.sfKey;
}
"""

_SNAPSHOT_JS = """
() => {
    const media = [];
    document.querySelectorAll('video').forEach(v => {
        const source = v.querySelector('source');
        const src = v.src || (source ? source.src : '');
        if (src && (src.startsWith('http') || src.startsWith('blob:'))) { media.push(src); }
    });
    const percents = [];
    document.querySelectorAll('body *').forEach(el => {
        if (el.children.length !== 0) return;
        const text = (el.textContent || '').trim();
        if (/^\\d+%$/.test(text)) { percents.push(text); }
    });
    const alerts = [];
    document.querySelectorAll('[role="alert"], .error, .toast, .snackbar').forEach(el => {
        alerts.push(el.textContent || '');
    });
    const main = document.querySelector('main, [role="main"], .content');
    return { media, percents, alerts, main: main ? (main.textContent || '') : '' };
}
"""

_OBSERVE_JS = """
(binding) => {
    if (window.__sceneflowObserver) { window.__sceneflowObserver.disconnect(); }
    const observer = new MutationObserver(mutations => {
        const texts = [];
        for (const m of mutations) {
            const text = m.target && m.target.textContent ? m.target.textContent : '';
            if (text) { texts.push(text.slice(0, 500)); }
        }
        if (texts.length) { window[binding](texts); }
    });
    observer.observe(document.body, { childList: true, subtree: true, characterData: true });
    window.__sceneflowObserver = observer;
}
"""

_DISCONNECT_JS = """
() => {
    if (window.__sceneflowObserver) {
        window.__sceneflowObserver.disconnect();
        window.__sceneflowObserver = null;
    }
}
"""

_key_counter = itertools.count(1)


def _selector(pattern: str) -> str:
    return f"xpath={pattern}" if pattern.startswith("//") else pattern


class PlaywrightElement:
    def __init__(self, handle: ElementHandle, key: str | None = None):
        self._handle = handle
        self._key = key or f"el-{next(_key_counter)}"

    @property
    def key(self) -> str:
        return self._key

    async def click(self) -> None:
        await self._handle.click()

    async def set_text(self, text: str) -> None:
        await self._handle.evaluate(_SET_TEXT_JS, text)

    async def set_files(self, name: str, mime_type: str, data: bytes) -> None:
        # Playwright raises input and change itself
        await self._handle.set_input_files({"name": name, "mimeType": mime_type, "buffer": data})

    async def is_disabled(self) -> bool:
        return await self._handle.is_disabled()

    async def text(self) -> str:
        return (await self._handle.text_content()) or ""

    async def tag_name(self) -> str:
        return await self._handle.evaluate("el => el.tagName")

    async def attribute(self, name: str) -> str | None:
        return await self._handle.get_attribute(name)

    async def query_all(self, pattern: str) -> list[PlaywrightElement]:
        handles = await self._handle.query_selector_all(_selector(pattern))
        return [PlaywrightElement(h) for h in handles]


class PlaywrightHostPage:
    """Drive one Playwright page."""

    def __init__(self, page: Page):
        self.page = page
        self._callback: MutationCallback | None = None
        self._binding_installed = False

    async def query(self, pattern: str) -> PlaywrightElement | None:
        try:
            handle = await self.page.query_selector(_selector(pattern))
        except Exception as e:
            # Malformed learned patterns must not break the lookup loop
            logger.debug("Pattern %s failed: %s", pattern, e)
            return None
        return PlaywrightElement(handle) if handle else None

    async def query_all(self, pattern: str) -> list[PlaywrightElement]:
        try:
            handles = await self.page.query_selector_all(_selector(pattern))
        except Exception as e:
            logger.debug("Pattern %s failed: %s", pattern, e)
            return []
        return [PlaywrightElement(h) for h in handles]

    async def file_inputs(self) -> list[PlaywrightElement]:
        elements = []
        for handle in await self.page.query_selector_all('input[type="file"]'):
            key = await handle.evaluate(_TAG_KEY_JS, f"sf-{next(_key_counter)}")
            elements.append(PlaywrightElement(handle, key=key))
        return elements

    async def set_zoom(self, factor: float) -> None:
        await self.page.evaluate("f => { document.body.style.zoom = String(f); }", factor)
        logger.info("Zoom set to %d%%", int(factor * 100))

    async def dismiss(self) -> None:
        await self.page.keyboard.press("Escape")

    async def snapshot(self) -> PageSnapshot:
        data = await self.page.evaluate(_SNAPSHOT_JS)
        return PageSnapshot(
            media_sources=list(data.get("media") or []),
            percent_texts=list(data.get("percents") or []),
            alert_texts=list(data.get("alerts") or []),
            main_text=data.get("main") or "",
        )

    async def observe(self, callback: MutationCallback) -> None:
        self._callback = callback
        if not self._binding_installed:
            await self.page.expose_function(_BINDING, self._on_mutations)
            self._binding_installed = True
        await self.page.evaluate(_OBSERVE_JS, _BINDING)

    async def _on_mutations(self, texts: list[str]) -> None:
        if self._callback is None:
            return
        result = self._callback(texts)
        if inspect.isawaitable(result):
            await result

    async def disconnect(self) -> None:
        self._callback = None
        await self.page.evaluate(_DISCONNECT_JS)


class BrowserSession:
    """Own the Playwright driver and one persistent Chromium context."""

    def __init__(self, target_url: str, headless: bool = False, profile_dir: Path | None = None):
        self.target_url = target_url
        self.headless = headless
        self.profile_dir = profile_dir
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self.host: PlaywrightHostPage | None = None

    async def __aenter__(self) -> PlaywrightHostPage:
        return await self.open()

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def open(self) -> PlaywrightHostPage:
        try:
            return await self._open()
        except Exception:
            await self.close()
            raise

    async def _open(self) -> PlaywrightHostPage:
        self._playwright = await async_playwright().start()
        if self.profile_dir is not None:
            self.profile_dir.mkdir(parents=True, exist_ok=True)
            self._context = await self._playwright.chromium.launch_persistent_context(
                user_data_dir=str(self.profile_dir.resolve()),
                headless=self.headless,
            )
        else:
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self._context = await self._browser.new_context()
        page = self._context.pages[0] if self._context.pages else await self._context.new_page()
        logger.info("Opening %s", self.target_url)
        await page.goto(self.target_url, wait_until="load")
        self.host = PlaywrightHostPage(page)
        return self.host

    async def close(self) -> None:
        try:
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._context = None
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
            self.host = None
