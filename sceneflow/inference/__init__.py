"""Progress inference: polling scan and passive DOM watcher."""

from sceneflow.inference.scan import (
    FAILURE_PHRASES,
    InferenceResult,
    ProgressInference,
    completed_media,
    count_completed_media,
    current_progress,
    has_error,
    infer_progress,
)
from sceneflow.inference.watcher import COMPLETION_PHRASES, DomWatcher

__all__ = [
    "COMPLETION_PHRASES",
    "DomWatcher",
    "FAILURE_PHRASES",
    "InferenceResult",
    "ProgressInference",
    "completed_media",
    "count_completed_media",
    "current_progress",
    "has_error",
    "infer_progress",
]
