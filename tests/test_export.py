"""Tests for profile import/export and CSV results."""

import csv
import io
import json

import pytest

from sceneflow.config import QueueSettings
from sceneflow.delivery.webhook import WebhookConfig
from sceneflow.tasks.export import (
    CSV_COLUMNS,
    ProfileFormatError,
    build_profile,
    parse_profile,
    read_profile,
    results_csv,
    write_profile,
)
from sceneflow.tasks.models import TaskStatus
from sceneflow.tasks.queue import SceneQueue


def _queue() -> SceneQueue:
    queue = SceneQueue()
    queue.add_prompts("a harbour at dawn\na market at noon\na bridge at night", now_ms=1_700_000_000_000)
    return queue


def test_profile_round_trip_resets_run_state(tmp_path):
    queue = _queue()
    first, second, _ = queue.ordered()
    first.status = TaskStatus.DONE
    first.result_artifacts = ["https://cdn.example.test/v1.mp4"]
    second.status = TaskStatus.FAILED
    second.retry_count = 3
    second.priority = 3
    settings = QueueSettings(batch_size=6, prompt_style="anime")
    hook = WebhookConfig(url="https://hooks.example.test", events=["error"])

    path = write_profile(tmp_path / "profile.json", build_profile(queue.tasks, settings, hook))
    imported = read_profile(path)

    assert imported.settings.batch_size == 6
    assert imported.settings.prompt_style == "anime"
    assert imported.webhook == hook
    assert [t.text for t in imported.tasks] == [t.text for t in queue.ordered()]
    assert [t.sequence_index for t in imported.tasks] == [1, 2, 3]
    assert all(t.status == TaskStatus.PENDING for t in imported.tasks)
    assert imported.tasks[1].retry_count == 0
    assert imported.tasks[1].priority == 3


def test_parse_profile_requires_version():
    with pytest.raises(ProfileFormatError):
        parse_profile({"settings": {}, "tasks": []})


def test_read_profile_rejects_bad_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ProfileFormatError):
        read_profile(path)


def test_profile_document_shape():
    profile = build_profile(_queue().tasks, QueueSettings())
    assert set(profile) == {"version", "exportedAt", "settings", "tasks", "webhookConfig"}
    assert profile["webhookConfig"] is None
    json.dumps(profile)


def test_results_csv():
    queue = _queue()
    first = queue.ordered()[0]
    first.status = TaskStatus.DONE
    first.progress = 100
    first.result_artifacts = ["https://a.test/1.mp4", "https://a.test/2.mp4"]
    first.completed_at = 1_700_000_060_000

    rows = list(csv.reader(io.StringIO(results_csv(queue.tasks))))
    assert rows[0] == CSV_COLUMNS
    assert len(rows) == 4
    assert rows[1][1] == "Text"
    assert rows[1][2] == "a harbour at dawn"
    assert rows[1][3] == "done"
    assert rows[1][5] == "https://a.test/1.mp4;https://a.test/2.mp4"
    assert rows[1][7].startswith("2023-11-14T")
    assert rows[2][7] == ""
