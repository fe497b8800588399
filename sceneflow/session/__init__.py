"""Queue orchestration: the session aggregate and its dispatch rules."""

from sceneflow.session.dispatch import (
    Verification,
    active_count,
    needs_batch_rest,
    select_next,
    verify_scene_order,
)
from sceneflow.session.session import QueueSession

__all__ = [
    "QueueSession",
    "Verification",
    "active_count",
    "needs_batch_rest",
    "select_next",
    "verify_scene_order",
]
