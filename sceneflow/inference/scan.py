"""
Polling progress inference.

The host page offers no per-task status, so state is estimated from what is
rendered:

1. ``C`` = number of distinct completed-media elements. The first ``C`` tasks in
   submission order are taken to be Done.
2. The highest bare ``NN%`` leaf text is the progress of task ``C + 1``.
3. If that task shows no percentage and a failure phrase is visible in an alert
   region or the main content, it is flagged as errored.
4. Every later task is Pending at 0%.

This assumes the page renders completions in submission order and shows at
most one active progress indicator. Neither is guaranteed by the host.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Collection

from sceneflow.errors import InferenceAmbiguous
from sceneflow.host.base import HostPage, PageSnapshot

logger = logging.getLogger(__name__)

FAILURE_PHRASES = ("error", "failed", "lỗi", "không thể", "try a different")

_PERCENT = re.compile(r"^(\d+)%$")


@dataclass
class InferenceResult:
    task_id: str
    progress: int = 0
    is_done: bool = False
    is_error: bool = False
    artifacts: list[str] = field(default_factory=list)


def completed_media(snapshot: PageSnapshot, ignore: Collection[str] = ()) -> list[str]:
    """Distinct media sources in page order, minus those in ``ignore``."""
    seen: dict[str, None] = {}
    for src in snapshot.media_sources:
        if src in ignore:
            continue
        if src and (src.startswith("http") or src.startswith("blob:")):
            seen.setdefault(src, None)
    return list(seen)


def count_completed_media(snapshot: PageSnapshot, ignore: Collection[str] = ()) -> int:
    return len(completed_media(snapshot, ignore))


def current_progress(snapshot: PageSnapshot) -> int:
    """Highest percentage in 1..100 among leaf texts; 0 if none."""
    best = 0
    for text in snapshot.percent_texts:
        match = _PERCENT.match(text.strip())
        if not match:
            continue
        value = int(match.group(1))
        if 0 < value <= 100:
            best = max(best, value)
    return best


def has_error(snapshot: PageSnapshot) -> bool:
    for region in [*snapshot.alert_texts, snapshot.main_text]:
        lowered = (region or "").lower()
        if any(phrase in lowered for phrase in FAILURE_PHRASES):
            return True
    return False


def infer_progress(
    snapshot: PageSnapshot, task_ids: list[str], ignore: Collection[str] = ()
) -> list[InferenceResult]:
    """
    Estimate ``{progress, is_done, is_error, artifacts}`` for ids in submission order.

    Media sources in ``ignore`` were on the page before the run and are not counted.
    """
    media = completed_media(snapshot, ignore)
    completed = len(media)
    progress = current_progress(snapshot)
    error = has_error(snapshot)

    results = []
    for index, task_id in enumerate(task_ids):
        if index < completed:
            results.append(InferenceResult(task_id, 100, is_done=True, artifacts=[media[index]]))
        elif index == completed:
            results.append(
                InferenceResult(
                    task_id,
                    progress,
                    is_done=progress >= 100,
                    is_error=error and progress == 0,
                )
            )
        else:
            results.append(InferenceResult(task_id))

    logger.debug("Scan: %d completed, current progress: %d%%", completed, progress)
    return results


class ProgressInference:
    """
    Sample the host page and run ``infer_progress`` over it.

    ``mark_baseline`` remembers the media already rendered when a run starts so
    that results from earlier runs are never counted as completions.
    """

    def __init__(self, host: HostPage):
        self.host = host
        self.baseline: set[str] = set()

    async def mark_baseline(self) -> int:
        snapshot = await self.host.snapshot()
        self.baseline = {s for s in snapshot.media_sources if s}
        return len(self.baseline)

    async def scan(self, task_ids: list[str]) -> list[InferenceResult]:
        if not task_ids:
            return []
        try:
            snapshot = await self.host.snapshot()
        except Exception as e:
            raise InferenceAmbiguous(f"Could not sample page: {e}") from e
        if snapshot is None:
            raise InferenceAmbiguous("Page returned no snapshot")
        return infer_progress(snapshot, task_ids, self.baseline)
