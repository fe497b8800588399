"""Tests for queue editing, display ordering and dispatch selection."""

import random

import pytest

from sceneflow.session.dispatch import needs_batch_rest, select_next, verify_scene_order
from sceneflow.tasks.models import TaskKind, TaskStatus
from sceneflow.tasks.ordering import reorder
from sceneflow.tasks.queue import SceneQueue, split_lines


def _queue(n: int) -> SceneQueue:
    queue = SceneQueue()
    queue.add_prompts("\n".join(f"scene {i}" for i in range(1, n + 1)), now_ms=1000)
    return queue


def _indices(queue: SceneQueue) -> list[int]:
    return [t.sequence_index for t in queue.ordered()]


def test_split_lines_drops_blanks():
    assert split_lines("a\n\n  b  \n\n") == ["a", "b"]


def test_add_prompts_continues_numbering():
    queue = _queue(2)
    added = queue.add_prompts("three\nfour")
    assert [t.sequence_index for t in added] == [3, 4]
    assert len({t.id for t in queue.tasks}) == 4


def test_add_prompts_rejects_image_queue():
    with pytest.raises(ValueError):
        SceneQueue(mode=TaskKind.IMAGE).add_prompts("x")


def test_remove_and_move_keep_numbering_dense():
    queue = _queue(4)
    second = queue.ordered()[1]
    queue.remove(second.id)
    assert _indices(queue) == [1, 2, 3]

    first = queue.ordered()[0]
    queue.move(0, 2)
    assert queue.ordered()[2].id == first.id
    assert _indices(queue) == [1, 2, 3]


def test_duplicate_inserts_after_source():
    queue = _queue(3)
    source = queue.ordered()[0]
    source.status = TaskStatus.DONE
    copy = queue.duplicate(source.id, now_ms=2000)
    assert copy.sequence_index == 2
    assert copy.status == TaskStatus.PENDING
    assert copy.text == source.text
    assert copy.id != source.id
    assert _indices(queue) == [1, 2, 3, 4]


def test_update_validates_priority():
    queue = _queue(1)
    task = queue.ordered()[0]
    queue.update(task.id, text="new text", priority=3)
    assert task.text == "new text" and task.priority == 3
    with pytest.raises(ValueError):
        queue.update(task.id, priority=7)


def test_retry_failed_respects_limit():
    queue = _queue(2)
    a, b = queue.ordered()
    a.status = TaskStatus.FAILED
    b.status = TaskStatus.FAILED
    b.retry_count = 3
    assert queue.retry_failed(max_retries=3) == 1
    assert a.status == TaskStatus.PENDING and a.retry_count == 1
    assert b.status == TaskStatus.FAILED


def test_reset_task_clears_retry_count():
    queue = _queue(1)
    task = queue.ordered()[0]
    task.status = TaskStatus.FAILED
    task.retry_count = 3
    queue.reset_task(task.id)
    assert task.status == TaskStatus.PENDING and task.retry_count == 0

    task.status = TaskStatus.DONE
    with pytest.raises(ValueError):
        queue.reset_task(task.id)


def test_display_strategies_do_not_touch_sequence():
    queue = _queue(3)
    a, b, c = queue.ordered()
    a.priority, b.priority, c.priority = 1, 3, 2
    a.text, b.text, c.text = "long long text", "mid text", "s"
    assert [t.id for t in reorder(queue.ordered(), "priority")] == [b.id, c.id, a.id]
    assert [t.id for t in reorder(queue.ordered(), "short-first")] == [c.id, b.id, a.id]
    shuffled = reorder(queue.ordered(), "shuffle", rng=random.Random(1))
    assert sorted(t.id for t in shuffled) == sorted(t.id for t in queue.tasks)
    assert _indices(queue) == [1, 2, 3]


def test_select_next_picks_lowest_dispatchable_index():
    queue = _queue(3)
    a, b, c = queue.ordered()
    a.status = TaskStatus.DONE
    c.status = TaskStatus.FAILED
    assert select_next(queue.tasks, max_retries=3) is b

    b.status = TaskStatus.GENERATING
    assert select_next(queue.tasks, max_retries=3) is c

    c.retry_count = 3
    assert select_next(queue.tasks, max_retries=3) is None


def test_batch_rest_once_per_boundary():
    queue = _queue(6)
    tasks = queue.ordered()
    for t in tasks[:4]:
        t.status = TaskStatus.DONE
    nxt = tasks[4]
    assert needs_batch_rest(queue.tasks, nxt, batch_size=4)
    nxt.has_rested_batch = True
    assert not needs_batch_rest(queue.tasks, nxt, batch_size=4)
    assert not needs_batch_rest(queue.tasks, tasks[5], batch_size=5)


def test_verify_scene_order():
    queue = _queue(3)
    a, b, c = queue.ordered()
    a.status = b.status = TaskStatus.DONE
    assert verify_scene_order(queue.tasks).valid

    b.status = TaskStatus.PENDING
    c.status = TaskStatus.DONE
    result = verify_scene_order(queue.tasks)
    assert not result.valid and result.message == "Gap at scene 2"

    b.status = TaskStatus.FAILED
    assert verify_scene_order(queue.tasks).message == "Failed scenes: S2"
