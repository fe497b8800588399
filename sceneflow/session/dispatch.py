"""Dispatch selection, batch boundaries and drain verification."""

from __future__ import annotations

from dataclasses import dataclass

from sceneflow.tasks.models import Task, TaskStatus


def select_next(tasks: list[Task], max_retries: int) -> Task | None:
    """Lowest ``sequence_index`` among Pending and retry-eligible Failed tasks."""
    eligible = [t for t in tasks if t.is_dispatchable(max_retries)]
    if not eligible:
        return None
    return min(eligible, key=lambda t: t.sequence_index)


def active_count(tasks: list[Task]) -> int:
    return sum(1 for t in tasks if t.status in (TaskStatus.DONE, TaskStatus.GENERATING))


def needs_batch_rest(tasks: list[Task], task: Task, batch_size: int) -> bool:
    """True at a positive multiple of ``batch_size`` active tasks, once per task."""
    count = active_count(tasks)
    return count > 0 and batch_size > 0 and count % batch_size == 0 and not task.has_rested_batch


@dataclass
class Verification:
    valid: bool
    message: str


def verify_scene_order(tasks: list[Task]) -> Verification:
    """Done tasks must be exactly S1..Sn with no gaps, and nothing may be Failed."""
    failed = sorted((t for t in tasks if t.status == TaskStatus.FAILED), key=lambda t: t.sequence_index)
    if failed:
        return Verification(False, "Failed scenes: " + ", ".join(t.label for t in failed))
    done = sorted((t for t in tasks if t.status == TaskStatus.DONE), key=lambda t: t.sequence_index)
    for expected, task in enumerate(done, start=1):
        if task.sequence_index != expected:
            return Verification(False, f"Gap at scene {expected}")
    return Verification(True, "All scenes in order")
