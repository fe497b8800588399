"""Ordered, mode-scoped task collection with dense sequence numbering."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from pydantic import BaseModel, Field

from sceneflow.tasks.models import ImagePayload, Task, TaskKind, TaskStatus, new_task_id
from sceneflow.tasks.ordering import reorder

logger = logging.getLogger(__name__)


def split_lines(text: str) -> list[str]:
    """Line-delimited import: one prompt per non-blank line."""
    return [line.strip() for line in text.splitlines() if line.strip()]


class SceneQueue(BaseModel):
    """Tasks of one mode, kept sorted by ``sequence_index`` (1..n, no gaps)."""

    mode: TaskKind = TaskKind.TEXT
    strategy: str = "fifo"
    tasks: list[Task] = Field(default_factory=list)

    # -- lookup ---------------------------------------------------------------

    def get(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def require(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task is None:
            raise KeyError(task_id)
        return task

    def ordered(self) -> list[Task]:
        return sorted(self.tasks, key=lambda t: t.sequence_index)

    def display_order(self, strategy: str | None = None) -> list[Task]:
        return reorder(self.ordered(), strategy or self.strategy)

    def by_status(self, status: TaskStatus) -> list[Task]:
        return [t for t in self.tasks if t.status == status]

    def __len__(self) -> int:
        return len(self.tasks)

    # -- mutation ---------------------------------------------------------------

    def _renumber(self) -> None:
        for i, task in enumerate(self.tasks, start=1):
            task.sequence_index = i

    def next_sequence_index(self) -> int:
        return max((t.sequence_index for t in self.tasks), default=0) + 1

    def add_prompts(self, text: str, now_ms: int | None = None) -> list[Task]:
        """Append one text task per non-blank line, continuing the numbering."""
        if self.mode is not TaskKind.TEXT:
            raise ValueError("prompts can only be added to a text queue")
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        start = self.next_sequence_index()
        added = [
            Task(
                id=new_task_id(TaskKind.TEXT, now_ms),
                sequence_index=start + i,
                kind=TaskKind.TEXT,
                text=line,
                original_text=line,
                created_at=now_ms,
            )
            for i, line in enumerate(split_lines(text))
        ]
        self.tasks.extend(added)
        if added:
            logger.info("Added %d scenes (S%d - S%d)", len(added), start, start + len(added) - 1)
        return added

    def add_images(self, paths: list[str | Path], now_ms: int | None = None) -> list[Task]:
        if self.mode is not TaskKind.IMAGE:
            raise ValueError("images can only be added to an image queue")
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        start = self.next_sequence_index()
        added = []
        for i, path in enumerate(paths):
            payload = ImagePayload.from_file(path)
            added.append(
                Task(
                    id=new_task_id(TaskKind.IMAGE, now_ms),
                    sequence_index=start + i,
                    kind=TaskKind.IMAGE,
                    image=payload,
                    created_at=now_ms,
                )
            )
        self.tasks.extend(added)
        logger.info("Added %d images", len(added))
        return added

    def apply_prompts_to_images(self, text: str) -> int:
        """Assign prompt lines to image tasks in order, cycling when there are fewer lines."""
        lines = split_lines(text)
        if not lines:
            return 0
        if not self.tasks:
            raise ValueError("no images in the queue")
        for i, task in enumerate(self.ordered()):
            task.text = lines[i % len(lines)]
            task.original_text = task.text
        logger.info("Applied %d prompts to %d images", len(lines), len(self.tasks))
        return len(lines)

    def sort_images(self, criteria: str) -> None:
        if criteria not in ("name_asc", "name_desc"):
            raise ValueError(f"unknown sort criteria: {criteria}")
        self.tasks.sort(
            key=lambda t: (t.image.name if t.image else "").lower(),
            reverse=criteria == "name_desc",
        )
        self._renumber()

    def update(self, task_id: str, *, text: str | None = None, priority: int | None = None) -> Task:
        task = self.require(task_id)
        if text is not None:
            task.text = text
            task.original_text = text
        if priority is not None:
            if priority not in (1, 2, 3):
                raise ValueError("priority must be 1, 2 or 3")
            task.priority = priority
        return task

    def duplicate(self, task_id: str, now_ms: int | None = None) -> Task:
        """Insert a fresh Pending copy right after the source task."""
        source = self.require(task_id)
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        copy = source.model_copy(deep=True)
        copy.id = new_task_id(source.kind, now_ms)
        copy.created_at = now_ms
        copy.result_artifacts = []
        copy.reset()
        self.tasks.sort(key=lambda t: t.sequence_index)
        self.tasks.insert(self.tasks.index(source) + 1, copy)
        self._renumber()
        return copy

    def remove(self, task_id: str) -> Task:
        task = self.require(task_id)
        self.tasks.sort(key=lambda t: t.sequence_index)
        self.tasks.remove(task)
        self._renumber()
        return task

    def move(self, from_index: int, to_index: int) -> None:
        """Move the task at list position ``from_index`` to ``to_index`` (0-based)."""
        self.tasks.sort(key=lambda t: t.sequence_index)
        task = self.tasks.pop(from_index)
        self.tasks.insert(to_index, task)
        self._renumber()

    def clear(self) -> None:
        self.tasks = []

    def retry_failed(self, max_retries: int) -> int:
        """Re-queue Failed tasks still under the retry limit; returns how many."""
        count = 0
        for task in self.tasks:
            if task.can_retry(max_retries):
                task.retry_count += 1
                task.status = TaskStatus.PENDING
                task.progress = 0
                count += 1
        return count

    def reset_task(self, task_id: str) -> Task:
        """Explicit user reset: the only way out of a terminal Failed state."""
        task = self.require(task_id)
        if task.status == TaskStatus.DONE:
            raise ValueError(f"task {task_id} is already done")
        task.reset()
        return task
