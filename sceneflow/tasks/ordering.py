"""Display ordering strategies. These never change dispatch order."""

from __future__ import annotations

import random
from enum import Enum

from sceneflow.tasks.models import Task


class QueueStrategy(str, Enum):
    FIFO = "fifo"
    PRIORITY = "priority"
    SHORT_FIRST = "short-first"
    SHUFFLE = "shuffle"


def reorder(tasks: list[Task], strategy: str | QueueStrategy, rng: random.Random | None = None) -> list[Task]:
    """Return a new list ranked for presentation; the input list is left untouched."""
    try:
        strategy = QueueStrategy(strategy)
    except ValueError:
        return list(tasks)
    if strategy is QueueStrategy.PRIORITY:
        return sorted(tasks, key=lambda t: -t.priority)
    if strategy is QueueStrategy.SHORT_FIRST:
        return sorted(tasks, key=lambda t: len(t.text))
    if strategy is QueueStrategy.SHUFFLE:
        shuffled = list(tasks)
        (rng or random).shuffle(shuffled)
        return shuffled
    return list(tasks)
