"""Wire the long-lived objects shared by the CLI and the HTTP API."""

from __future__ import annotations

import logging
from pathlib import Path

from sceneflow.clock import Clock, SystemClock
from sceneflow.config import Settings
from sceneflow.delivery.notify import LogNotifier, Notifier
from sceneflow.delivery.webhook import WebhookConfig, WebhookSender
from sceneflow.host.base import HostPage
from sceneflow.inference.scan import ProgressInference
from sceneflow.inference.watcher import DomWatcher
from sceneflow.jobs.models import ScheduledJob
from sceneflow.jobs.scheduler import JobScheduler
from sceneflow.jobs.timer import ClockTimer
from sceneflow.locator import SelectorEngine
from sceneflow.logging_utils import get_log_buffer
from sceneflow.ratelimit import RateLimiter
from sceneflow.session.session import QueueSession
from sceneflow.store import RUN_LOGS, WEBHOOK_CONFIG, KeyValueStore, get_store, load_or_default, save_quietly
from sceneflow.submission import Submitter

logger = logging.getLogger(__name__)


class Runtime:
    def __init__(
        self,
        settings: Settings,
        clock: Clock | None = None,
        store: KeyValueStore | None = None,
        notifier: Notifier | None = None,
    ):
        self.settings = settings
        self.clock = clock or SystemClock()
        self.store = store or get_store(settings)
        self.notifier = notifier or LogNotifier()
        self.webhook = WebhookSender(self.load_webhook_config())
        self.rate_limiter = RateLimiter(self.clock)
        self.session = QueueSession(
            clock=self.clock,
            rate_limiter=self.rate_limiter,
            store=self.store,
            notifier=self.notifier,
            webhook=self.webhook,
        )
        self.session.load_state()
        self.timer = ClockTimer(self.clock)
        self.scheduler = JobScheduler(self.store, self.timer, self.clock, execute=self.execute_job)
        self.locator: SelectorEngine | None = None
        self._browser = None

    # -- webhook config -------------------------------------------------------

    def load_webhook_config(self) -> WebhookConfig:
        data = load_or_default(self.store, WEBHOOK_CONFIG, {})
        return WebhookConfig.model_validate(data)

    def save_webhook_config(self, config: WebhookConfig) -> None:
        self.webhook.config = config
        save_quietly(self.store, WEBHOOK_CONFIG, config.model_dump(mode="json"))

    # -- host page --------------------------------------------------------------

    def attach_host(self, host: HostPage) -> None:
        """Point the session at ``host``: locator, submitter, inference and watcher."""
        self.locator = SelectorEngine(host, self.clock, store=self.store)
        self.locator.load_patterns()
        self.session.submitter = Submitter(
            host, self.locator, self.clock, image_settle_delay=self.session.settings.image_settle_delay
        )
        self.session.inference = ProgressInference(host)
        self.session.watcher = DomWatcher(
            host,
            self.clock,
            on_progress=self.session.on_progress_signal,
            on_media=self.session.on_media_signal,
        )

    async def attach_browser(self) -> HostPage:
        # Imported here so commands that never open a browser don't load Playwright
        from sceneflow.host.playwright_host import BrowserSession

        if self._browser is not None and self._browser.host is not None:
            return self._browser.host
        profile = Path(self.settings.sceneflow_browser_profile) if self.settings.sceneflow_browser_profile else None
        self._browser = BrowserSession(
            self.settings.sceneflow_target_url,
            headless=self.settings.sceneflow_headless,
            profile_dir=profile,
        )
        host = await self._browser.open()
        self.attach_host(host)
        return host

    async def close(self) -> None:
        if self.session.running:
            await self.session.stop()
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        save_quietly(self.store, RUN_LOGS, get_log_buffer().export())

    def last_run_logs(self) -> list[dict]:
        return load_or_default(self.store, RUN_LOGS, [])

    # -- scheduled execution -------------------------------------------------------

    async def execute_job(self, job: ScheduledJob) -> None:
        """Queue-execution entry point for a fired job."""
        if self.session.running:
            logger.warning("Queue busy; scheduled job %s skipped", job.id)
            return
        logger.info("Executing scheduled job %s (%d tasks)", job.id, len(job.task_snapshot))
        self.session.load_snapshot(job.task_snapshot, job.settings_snapshot)
        if self.session.submitter is None:
            await self.attach_browser()
        await self.session.start()
