"""
Per-task submission protocols against the host UI.

Text: text tab -> prompt field -> set text (input + change) -> submit button.
Image: zoom -> image tab -> add/upload -> new file input -> inject bytes ->
crop/save -> settle delay -> text protocol for the associated prompt.

Each protocol is wrapped in ``with_retry``; exhaustion surfaces as
``SubmissionFailed``.
"""

from __future__ import annotations

import logging

from sceneflow.clock import Clock
from sceneflow.config import QueueSettings
from sceneflow.errors import SubmissionFailed
from sceneflow.host.base import ElementRef, HostPage
from sceneflow.locator import SelectorEngine
from sceneflow.retry import with_retry
from sceneflow.tasks.models import ImagePayload, Task

logger = logging.getLogger(__name__)

LABEL_VARIATIONS: dict[str, list[str]] = {
    "Model": ["Model", "Mô hình", "model"],
    "Aspect ratio": ["Aspect ratio", "Tỷ lệ khung hình", "Tỷ lệ", "ratio"],
    "Duration": ["Duration", "Thời lượng", "Number", "Số lượng", "Count"],
}

OPTION_VARIATIONS: dict[str, list[str]] = {
    "Veo 3.1 fast": ["Veo 3.1", "fast", "3.1 fast", "Veo 3.1 (Fast)"],
    "Veo 3.1 Quality": ["Quality", "3.1 Quality", "Veo 3.1 (Quality)"],
    "Ngang": ["Ngang", "16:9", "Landscape", "Horizontal"],
    "Dọc": ["Dọc", "9:16", "Portrait", "Vertical"],
    "Vuông": ["Vuông", "1:1", "Square"],
}

RESULT_CONTAINERS = [
    ".job-container",
    "[data-prompt-container]",
    ".generation-card",
    ".video-generation-item",
    ".prompt-result-container",
    'div[class*="generation"]',
    'div[class*="result-card"]',
]

DOWNLOAD_WORDS = ("download", "tải xuống")
QUALITY_OPTIONS = ("720p", "kích thước gốc", "original", "1080p")

IMAGE_ZOOM = 0.5


def xpath_literal(value: str) -> str:
    """Quote ``value`` for use inside an XPath expression."""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{p}'" for p in parts) + ")"


class Submitter:
    def __init__(
        self,
        host: HostPage,
        locator: SelectorEngine,
        clock: Clock,
        image_settle_delay: float = 30.0,
    ):
        self.host = host
        self.locator = locator
        self.clock = clock
        self.image_settle_delay = image_settle_delay

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    async def submit_text(self, payload: str) -> None:
        logger.info("Submitting prompt", extra={"data": {"text": payload[:100]}})
        await self._with_retry(lambda: self._text_steps(payload), attempts=3, delay=2.0, label="submit prompt")
        logger.info("Prompt submitted")

    async def _text_steps(self, payload: str) -> None:
        tab = await self.locator.find("textTab", timeout_ms=3000, retries=2)
        if tab is not None:
            await tab.click()
            await self.clock.sleep(1.0)

        field = await self.locator.locate("promptInput", timeout_ms=5000, retries=3)
        await field.set_text(payload)
        await self.clock.sleep(0.5)

        button = await self.locator.locate("generateButton", timeout_ms=5000, retries=3)
        for _ in range(10):
            if not await button.is_disabled():
                break
            logger.info("Generate button disabled, waiting...")
            await self.clock.sleep(0.5)
        else:
            raise SubmissionFailed("Generate button stayed disabled")
        await button.click()

    # ------------------------------------------------------------------
    # Image
    # ------------------------------------------------------------------

    async def submit_image(self, image: ImagePayload, payload: str) -> None:
        logger.info("Submitting image task", extra={"data": {"image": image.name}})
        if not image.reattach():
            raise SubmissionFailed(f"Image data missing for {image.name}")
        await self._with_retry(
            lambda: self._image_steps(image, payload), attempts=2, delay=5.0, label="submit image"
        )
        logger.info("Image task submitted")

    async def _image_steps(self, image: ImagePayload, payload: str) -> None:
        await self.host.set_zoom(IMAGE_ZOOM)
        await self.clock.sleep(1.5)

        tab = await self.locator.find("imageTab", timeout_ms=5000, retries=3)
        if tab is not None:
            await tab.click()
            await self.clock.sleep(1.0)
        else:
            logger.warning("Image tab not found, attempting to continue")

        existing = {el.key for el in await self.host.file_inputs()}

        add = await self.locator.find("addButton", timeout_ms=3000, retries=3)
        if add is not None:
            await add.click()
            await self.clock.sleep(1.0)
        else:
            logger.warning("Add button not found, trying upload directly")

        upload = await self.locator.find("uploadButton", timeout_ms=3000, retries=3)
        if upload is not None:
            await upload.click()
            await self.clock.sleep(1.0)
        else:
            logger.warning("Upload menu item not found")

        file_input = await self._find_file_input(existing)
        await file_input.set_files(image.name, image.mime_type, image.data or b"")

        await self.clock.sleep(3.0)
        await self._confirm_crop()

        logger.info("Waiting %.0fs before generating...", self.image_settle_delay)
        await self.clock.sleep(self.image_settle_delay)

        await self._text_steps(payload or " ")

    async def _find_file_input(self, existing: set[str]) -> ElementRef:
        for _ in range(10):
            inputs = await self.host.file_inputs()
            fresh = [el for el in inputs if el.key not in existing]
            if fresh:
                return fresh[0]
            for el in inputs:
                accept = (await el.attribute("accept")) or ""
                if "image" in accept or ".png" in accept or ".jpg" in accept:
                    return el
            await self.clock.sleep(0.5)

        for el in await self.host.file_inputs():
            accept = (await el.attribute("accept")) or ""
            if ".txt" not in accept:
                return el
        raise SubmissionFailed("File input for image not found")

    async def _confirm_crop(self) -> bool:
        for _ in range(15):
            button = await self.locator.find("cropSaveButton", timeout_ms=500, retries=1)
            if button is not None:
                await button.click()
                await self.clock.sleep(1.0)
                return True
            await self.clock.sleep(0.5)
        logger.warning("Crop button not found or skipped")
        return False

    # ------------------------------------------------------------------
    # Generation settings
    # ------------------------------------------------------------------

    async def configure_generation_settings(self, settings: QueueSettings) -> bool:
        """Set model, ratio and count in the host UI. Best-effort: never raises."""
        logger.info("Configuring settings: model=%s ratio=%s count=%s", settings.model, settings.ratio, settings.count)
        try:
            tune = await self.locator.find("tuneButton", timeout_ms=3000, retries=2)
            if tune is not None:
                await tune.click()
                await self.clock.sleep(1.0)
            else:
                logger.warning("Tune button not found, panel might be open")

            ok = True
            if settings.model:
                ok &= await self.select_dropdown_option("Model", settings.model)
            if settings.ratio:
                ok &= await self.select_dropdown_option("Aspect ratio", settings.ratio)
            if settings.count:
                count = "4" if str(settings.count) == "100" else str(settings.count)
                ok &= await self.select_dropdown_option("Duration", count)
        except Exception as e:
            logger.error("Failed to configure settings: %s", e)
            return False
        return ok

    async def select_dropdown_option(self, label: str, option: str) -> bool:
        label_el = None
        for text in LABEL_VARIATIONS.get(label, [label]):
            for tag in ("span", "div", "label"):
                label_el = await self.host.query(f"//{tag}[contains(., {xpath_literal(text)})]")
                if label_el is not None:
                    break
            if label_el is not None:
                break
        if label_el is None:
            logger.warning('Label "%s" not found', label)
            return False

        await label_el.click()
        await self.clock.sleep(0.6)

        for text in OPTION_VARIATIONS.get(option, [option]):
            literal = xpath_literal(text)
            for pattern in (
                f"//li[contains(., {literal})]",
                f"//div[@role='option'][contains(., {literal})]",
                f"//mat-option[contains(., {literal})]",
                f"//*[@role='menuitem'][contains(., {literal})]",
            ):
                choice = await self.host.query(pattern)
                if choice is not None:
                    await choice.click()
                    await self.clock.sleep(0.4)
                    logger.info("Set %s to %s", label, option)
                    return True

        await self.host.dismiss()
        logger.warning('Option "%s" not found for %s', option, label)
        return False

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    async def trigger_download(self, task: Task) -> str:
        """
        Press the download control of the result card showing ``task``.

        Returns ``clicked`` (quality picked), ``direct_download``,
        ``container_not_found`` or ``button_not_found``.
        """
        containers: list[ElementRef] = []
        for css in RESULT_CONTAINERS:
            containers = await self.host.query_all(css)
            if containers:
                break

        container = None
        for candidate in containers:
            text = await candidate.text()
            if task.id in text or (task.text and task.text in text):
                container = candidate
                break
        if container is None:
            logger.warning("Container not found for download", extra={"data": {"task": task.id}})
            return "container_not_found"

        button = None
        for candidate in await container.query_all("button"):
            label = ((await candidate.attribute("aria-label")) or "").lower()
            text = (await candidate.text()).lower()
            if any(w in label or w in text for w in DOWNLOAD_WORDS) or "tải" in label:
                button = candidate
                break
        if button is None:
            logger.warning("Download button not found for %s", task.label)
            return "button_not_found"

        await button.click()
        await self.clock.sleep(1.0)

        for option in await self.host.query_all("li, div[role='menuitem'], span, button"):
            text = (await option.text()).lower()
            if any(q in text for q in QUALITY_OPTIONS):
                await option.click()
                logger.info("Download triggered for %s", task.label)
                return "clicked"
        logger.info("No quality menu found, might be direct download")
        return "direct_download"

    # ------------------------------------------------------------------

    async def _with_retry(self, operation, *, attempts: int, delay: float, label: str) -> None:
        try:
            await with_retry(
                operation,
                clock=self.clock,
                max_attempts=attempts,
                base_delay=delay,
                backoff_factor=1.5,
                label=label,
            )
        except SubmissionFailed:
            raise
        except Exception as e:
            raise SubmissionFailed(f"{label}: {e}") from e
