"""Task model, queue container and import/export formats."""

from sceneflow.tasks.models import ImagePayload, Task, TaskKind, TaskStatus, new_task_id
from sceneflow.tasks.ordering import QueueStrategy, reorder
from sceneflow.tasks.queue import SceneQueue, split_lines

__all__ = [
    "ImagePayload",
    "QueueStrategy",
    "SceneQueue",
    "Task",
    "TaskKind",
    "TaskStatus",
    "new_task_id",
    "reorder",
    "split_lines",
]
