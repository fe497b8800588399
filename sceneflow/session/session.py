"""
QueueSession: the aggregate that owns one queue run.

Two loops share the task list:

- the dispatch chain (``tick``): pick the next task, rest at batch
  boundaries, pass the rate limiter, run the submission protocol, then
  schedule the next tick after a fixed delay;
- the monitor (``monitor``): every few seconds, scan the page and merge
  inference results into task state.

A DOM watcher can feed the same merge path between monitor ticks. Both
loops run on the session's ``Clock``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sceneflow.clock import Clock, Handle
from sceneflow.config import QueueSettings
from sceneflow.delivery.notify import Notifier, safe_notify
from sceneflow.delivery.webhook import WebhookSender
from sceneflow.enhance import SceneContext, build_payload, enhance, sanitize
from sceneflow.errors import InferenceAmbiguous, SubmissionFailed
from sceneflow.inference.scan import InferenceResult, ProgressInference
from sceneflow.inference.watcher import DomWatcher
from sceneflow.ratelimit import RateLimiter
from sceneflow.session.dispatch import needs_batch_rest, select_next, verify_scene_order
from sceneflow.store import QUEUE_SNAPSHOT, SETTINGS, KeyValueStore, load_or_default, save_quietly
from sceneflow.submission import Submitter
from sceneflow.tasks.models import Task, TaskKind, TaskStatus
from sceneflow.tasks.queue import SceneQueue

logger = logging.getLogger(__name__)

DEFAULT_TASK_MS = 120_000
MAX_COMPLETION_SAMPLES = 20
DOWNLOAD_SPACING = 2.0

APP_TITLE = "SceneFlow"


class QueueSession:
    def __init__(
        self,
        *,
        clock: Clock,
        queue: SceneQueue | None = None,
        settings: QueueSettings | None = None,
        context: SceneContext | None = None,
        submitter: Submitter | None = None,
        inference: ProgressInference | None = None,
        watcher: DomWatcher | None = None,
        rate_limiter: RateLimiter | None = None,
        store: KeyValueStore | None = None,
        notifier: Notifier | None = None,
        webhook: WebhookSender | None = None,
    ):
        self.clock = clock
        self.queue = queue or SceneQueue()
        self.settings = settings or QueueSettings()
        self.context = context or SceneContext()
        self.submitter = submitter
        self.inference = inference
        self.watcher = watcher
        self.rate_limiter = rate_limiter or RateLimiter(clock)
        self.rate_limiter.configure(self.settings.rate_per_minute, self.settings.rate_per_hour)
        self.store = store
        self.notifier = notifier
        self.webhook = webhook

        self.running = False
        self.paused = False
        self.status_message = "Idle"
        self.completion_times: list[int] = []

        self._tick_handle: Handle | None = None
        self._rest_until_ms: int | None = None
        self._rest_remaining: float | None = None
        self._carried_done: set[str] = set()
        self._monitor_handle: Handle | None = None
        self._dispatching = False
        self._finished = asyncio.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def has_work(self) -> bool:
        return any(t.status != TaskStatus.DONE for t in self.queue.tasks)

    async def start(self, configure: bool = True) -> bool:
        """Begin dispatching. Returns False when already running or nothing is left to do."""
        if self.running:
            logger.warning("Queue already running")
            return False
        if not self.has_work():
            logger.warning("Queue is empty or already complete")
            return False

        self.running = True
        self.paused = False
        self._finished.clear()
        self._set_status("Starting...")
        logger.info("Starting queue execution (%d tasks)", len(self.queue))

        if configure and self.submitter is not None:
            await self.submitter.configure_generation_settings(self.settings)

        # Scenes finished in an earlier run keep their results out of position counting
        self._carried_done = {t.id for t in self.queue.by_status(TaskStatus.DONE)}
        if self.inference is not None:
            try:
                known = await self.inference.mark_baseline()
                logger.info("Ignoring %d media already on the page", known)
            except Exception as e:
                logger.warning("Could not sample existing media: %s", e)
            self._monitor_handle = self.clock.every(self.settings.monitor_interval, self.monitor)
        if self.watcher is not None:
            try:
                await self.watcher.start()
            except Exception as e:
                logger.warning("DOM watcher unavailable, relying on polling: %s", e)

        self._set_status("Running")
        self._schedule_tick(0)
        return True

    async def run(self) -> None:
        """Start and wait until the queue drains or is stopped."""
        if await self.start():
            await self._finished.wait()

    async def stop(self) -> None:
        """Halt future dispatch and monitoring. Tasks already submitted keep generating."""
        was_running = self.running
        self.running = False
        self.paused = False
        self._cancel_tick()
        self._rest_until_ms = None
        self._rest_remaining = None
        if self._monitor_handle is not None:
            self._monitor_handle.cancel()
            self._monitor_handle = None
        if self.watcher is not None and self.watcher.active:
            await self.watcher.stop()
        self.save_state()
        if was_running:
            self._set_status("Stopped")
            logger.info("Queue stopped")
        self._finished.set()

    def pause(self) -> None:
        if not self.running or self.paused:
            return
        self.paused = True
        self._cancel_tick()
        if self._rest_until_ms is not None:
            self._rest_remaining = max(0.0, (self._rest_until_ms - self.clock.now_ms()) / 1000)
        self._set_status("Paused")
        logger.info("Queue paused")

    def resume(self) -> None:
        if not self.running or not self.paused:
            return
        self.paused = False
        delay = self._rest_remaining or 0
        self._rest_remaining = None
        if delay > 0:
            self._rest_until_ms = self.clock.now_ms() + int(delay * 1000)
            self._set_status(f"Resting {delay:.0f}s")
        else:
            self._rest_until_ms = None
            self._set_status("Running")
        logger.info("Queue resumed")
        self._schedule_tick(delay)

    def _schedule_tick(self, delay: float) -> None:
        self._cancel_tick()
        self._tick_handle = self.clock.after(delay, self.tick)

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _set_status(self, message: str) -> None:
        self.status_message = message

    # ------------------------------------------------------------------
    # Dispatch chain
    # ------------------------------------------------------------------

    async def tick(self) -> None:
        self._tick_handle = None
        if not self.running or self.paused or self._dispatching:
            return
        self._rest_until_ms = None
        try:
            await self._tick()
        except Exception:
            logger.exception("Unhandled error in queue tick")
            if self.running:
                self._schedule_tick(self.settings.failure_delay)

    async def _tick(self) -> None:
        tasks = self.queue.tasks
        task = select_next(tasks, self.settings.max_retries)

        if task is None:
            generating = self.queue.by_status(TaskStatus.GENERATING)
            if generating:
                self._set_status(f"Waiting for {len(generating)} generating scene(s)")
                self._schedule_tick(self.settings.defer_delay)
                return
            await self._complete()
            return

        if task.status == TaskStatus.FAILED:
            task.retry_count += 1
            task.status = TaskStatus.PENDING
            task.progress = 0
            logger.info("Retrying scene %s (attempt %d)", task.label, task.retry_count)

        if needs_batch_rest(tasks, task, self.settings.batch_size):
            task.has_rested_batch = True
            logger.info("Batch limit reached. Resting %ds...", self.settings.rest_time)
            self._set_status(f"Resting {self.settings.rest_time}s")
            self._rest_until_ms = self.clock.now_ms() + self.settings.rest_time * 1000
            self.save_state()
            self._schedule_tick(self.settings.rest_time)
            return

        await self._dispatch(task)

    async def _dispatch(self, task: Task) -> None:
        self._dispatching = True
        try:
            await self.rate_limiter.acquire()
            if not self.running:
                return

            now = self.clock.now_ms()
            task.status = TaskStatus.GENERATING
            task.progress = 0
            task.error_message = None
            task.started_at = now
            self._set_status(f"Processing scene {task.sequence_index}...")
            self.save_state()

            try:
                await self._submit(task)
            except Exception as e:
                await self._submission_failed(task, e)
                if self.running:
                    self._schedule_tick(self.settings.failure_delay)
                return

            self.rate_limiter.record()
            self.save_state()
            if self.running:
                self._schedule_tick(self.settings.dispatch_delay)
        finally:
            self._dispatching = False

    async def _submit(self, task: Task) -> None:
        if self.submitter is None:
            raise SubmissionFailed("No host page attached")
        if task.kind is TaskKind.TEXT:
            text = enhance(task.text, self.settings.prompt_style, self.context)
            logger.info("Scene %d: %s...", task.sequence_index, text[:50])
            await self.submitter.submit_text(build_payload(task.id, text))
        else:
            if task.image is None:
                raise SubmissionFailed(f"Image task {task.id} has no image")
            prompt = sanitize(task.text)
            self.submitter.image_settle_delay = self.settings.image_settle_delay
            logger.info("Scene %d: image task %s", task.sequence_index, task.image.name)
            await self.submitter.submit_image(task.image, build_payload(task.id, prompt).rstrip())

    async def _submission_failed(self, task: Task, error: Exception) -> None:
        logger.error("Scene %d failed: %s", task.sequence_index, error)
        await self._mark_failed(task, str(error))

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _assigned_artifacts(self) -> set[str]:
        return {a for t in self.queue.tasks for a in t.result_artifacts}

    async def _mark_done(self, task: Task, artifacts: list[str]) -> None:
        now = self.clock.now_ms()
        taken = self._assigned_artifacts()
        for artifact in artifacts:
            if artifact not in taken:
                task.result_artifacts.append(artifact)
                taken.add(artifact)
        task.status = TaskStatus.DONE
        task.progress = 100
        task.error_message = None
        task.completed_at = now
        if task.started_at:
            self.completion_times.append(now - task.started_at)
            self.completion_times = self.completion_times[-MAX_COMPLETION_SAMPLES:]
        logger.info("Task completed: %s %s...", task.label, task.text[:30])
        if self.webhook is not None:
            await self.webhook.send(
                "task_complete",
                {"taskId": task.id, "prompt": task.text, "resultUrls": list(task.result_artifacts)},
            )

    async def _mark_failed(self, task: Task, message: str) -> None:
        task.status = TaskStatus.FAILED
        task.error_message = message
        if task.can_retry(self.settings.max_retries):
            logger.info(
                "Scene %d will be retried (%d/%d)",
                task.sequence_index, task.retry_count, self.settings.max_retries,
            )
        else:
            logger.error(
                "Scene %d permanently failed after %d retries",
                task.sequence_index, self.settings.max_retries,
            )
            if self.settings.notify_error:
                safe_notify(self.notifier, f"{APP_TITLE} - Error", f"Scene {task.sequence_index} failed", "error")
            if self.webhook is not None:
                await self.webhook.send(
                    "error",
                    {"taskId": task.id, "scene": task.sequence_index, "error": message},
                )
        self.save_state()

    async def apply_results(self, results: list[InferenceResult]) -> bool:
        """Merge inference results into task state. Returns True if anything changed."""
        changed = False
        for result in results:
            task = self.queue.get(result.task_id)
            # Only a submitted scene can progress, finish or fail
            if task is None or task.status != TaskStatus.GENERATING:
                continue
            if result.is_done:
                await self._mark_done(task, result.artifacts)
                changed = True
            elif result.is_error:
                await self._mark_failed(task, "Generation failed")
                changed = True
            elif result.progress > 0 and task.progress != result.progress:
                task.progress = result.progress
                changed = True
        return changed

    async def monitor(self) -> None:
        if self.inference is None or not self.queue.tasks:
            return
        ids = [t.id for t in self.queue.ordered() if t.id not in self._carried_done]
        try:
            results = await self.inference.scan(ids)
        except InferenceAmbiguous as e:
            logger.info("Progress scan inconclusive, retrying next tick: %s", e)
            return
        if await self.apply_results(results):
            self.save_state()

    # -- passive path -------------------------------------------------------

    def _current_generating(self) -> Task | None:
        generating = self.queue.by_status(TaskStatus.GENERATING)
        return min(generating, key=lambda t: t.sequence_index) if generating else None

    async def on_progress_signal(self, value: int) -> None:
        task = self._current_generating()
        if task is not None and 0 < value < 100:
            task.progress = value

    async def on_media_signal(self, source: str) -> None:
        if source in self._assigned_artifacts():
            return
        task = self._current_generating()
        if task is not None:
            await self._mark_done(task, [source])
            self.save_state()
        await self.monitor()

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    async def _complete(self) -> None:
        tasks = self.queue.tasks
        verification = verify_scene_order(tasks)
        if not verification.valid:
            logger.warning("Scene order verification: %s", verification.message)

        if self.settings.auto_download:
            await self.auto_download()

        done = len(self.queue.by_status(TaskStatus.DONE))
        failed = len(self.queue.by_status(TaskStatus.FAILED))
        await self.stop()
        self._set_status("Complete")
        logger.info("Queue completed! %d/%d scenes done", done, len(tasks))

        if self.settings.notify_complete:
            safe_notify(self.notifier, APP_TITLE, f"Queue complete: {done}/{len(tasks)} scenes done", "success")
        if self.webhook is not None:
            await self.webhook.send("queue_complete", {"total": len(tasks), "done": done, "failed": failed})

    async def auto_download(self) -> int:
        """Trigger downloads for Done tasks not yet downloaded. Returns how many succeeded."""
        if self.submitter is None:
            return 0
        count = 0
        for task in self.queue.ordered():
            if task.status != TaskStatus.DONE or task.downloaded:
                continue
            try:
                status = await self.submitter.trigger_download(task)
            except Exception as e:
                logger.error("Download failed for %s: %s", task.label, e)
                continue
            if status in ("clicked", "direct_download"):
                task.downloaded = True
                count += 1
                logger.info("Downloaded: %s", task.label)
            await self.clock.sleep(DOWNLOAD_SPACING)
        if count:
            self.save_state()
        return count

    # ------------------------------------------------------------------
    # Settings, persistence and stats
    # ------------------------------------------------------------------

    def update_settings(self, settings: QueueSettings) -> None:
        self.settings = settings
        self.queue.strategy = settings.queue_strategy
        self.rate_limiter.configure(settings.rate_per_minute, settings.rate_per_hour)
        if self.store is not None:
            save_quietly(self.store, SETTINGS, settings.model_dump(mode="json"))

    def load_snapshot(self, tasks: list[dict[str, Any]], settings: dict[str, Any] | None = None) -> None:
        """Replace the queue with a serialized task list reset to Pending (scheduled runs)."""
        if settings:
            self.update_settings(QueueSettings.model_validate(settings))
        restored = []
        for data in tasks:
            task = Task.model_validate(data)
            task.reset()
            task.result_artifacts = []
            if task.image is not None and not task.image.reattach():
                logger.warning("Image for %s could not be re-attached from %s", task.label, task.image.path)
            restored.append(task)
        restored.sort(key=lambda t: t.sequence_index)
        for i, task in enumerate(restored, start=1):
            task.sequence_index = i
        mode = restored[0].kind if restored else self.queue.mode
        self.queue = SceneQueue(mode=mode, strategy=self.settings.queue_strategy, tasks=restored)
        self.save_state()

    def snapshot(self) -> dict[str, Any]:
        return {
            "mode": self.queue.mode.value,
            "strategy": self.queue.strategy,
            "tasks": [t.snapshot() for t in self.queue.ordered()],
            "settings": self.settings.model_dump(mode="json"),
            "context": self.context.model_dump(mode="json"),
            "savedAt": self.clock.now_ms(),
        }

    def save_state(self) -> bool:
        if self.store is None:
            return False
        return save_quietly(self.store, QUEUE_SNAPSHOT, self.snapshot())

    def load_state(self) -> bool:
        """Restore queue, settings and context from the store. Returns True if a snapshot existed."""
        if self.store is None:
            return False
        data = load_or_default(self.store, QUEUE_SNAPSHOT, None)
        if not data:
            stored_settings = load_or_default(self.store, SETTINGS, None)
            if stored_settings:
                self.update_settings(QueueSettings.model_validate(stored_settings))
            return False
        if data.get("settings"):
            self.settings = QueueSettings.model_validate(data["settings"])
            self.rate_limiter.configure(self.settings.rate_per_minute, self.settings.rate_per_hour)
        if data.get("context"):
            self.context = SceneContext.model_validate(data["context"])
        tasks = [Task.model_validate(t) for t in data.get("tasks") or []]
        for task in tasks:
            if task.image is not None:
                task.image.reattach()
        self.queue = SceneQueue(
            mode=TaskKind(data.get("mode") or TaskKind.TEXT.value),
            strategy=data.get("strategy") or self.settings.queue_strategy,
            tasks=tasks,
        )
        logger.info("Restored queue state (%d tasks)", len(tasks))
        return True

    def average_completion_ms(self) -> int:
        if not self.completion_times:
            return DEFAULT_TASK_MS
        return int(sum(self.completion_times) / len(self.completion_times))

    def stats(self) -> dict[str, Any]:
        tasks = self.queue.tasks
        counts = {status.value: 0 for status in TaskStatus}
        for task in tasks:
            counts[task.status.value] += 1
        remaining = sum(
            1 for t in tasks
            if t.status in (TaskStatus.PENDING, TaskStatus.GENERATING) or t.can_retry(self.settings.max_retries)
        )
        average = self.average_completion_ms()
        return {
            "total": len(tasks),
            **counts,
            "percentComplete": round(100 * counts["done"] / len(tasks)) if tasks else 0,
            "averageTaskMs": average,
            "etaMs": remaining * average,
            "running": self.running,
            "paused": self.paused,
            "status": self.status_message,
            "rate": self.rate_limiter.stats().to_dict(),
        }
