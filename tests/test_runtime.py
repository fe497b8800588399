"""Tests for runtime wiring and scheduled execution."""

import pytest

from sceneflow.clock import VirtualClock
from sceneflow.delivery.webhook import WebhookConfig
from sceneflow.jobs.models import ScheduledJob
from sceneflow.logging_utils import configure_logging
from sceneflow.runtime import Runtime
from sceneflow.store import RUN_LOGS, MemoryKeyValueStore
from sceneflow.tasks.models import TaskStatus


@pytest.fixture
def runtime(app_settings, notifier):
    return Runtime(app_settings, clock=VirtualClock(), store=MemoryKeyValueStore(), notifier=notifier)


def test_webhook_config_persists(runtime):
    runtime.save_webhook_config(WebhookConfig(url="https://hooks.example.test", events=["error"]))
    again = Runtime(runtime.settings, clock=runtime.clock, store=runtime.store)
    assert again.webhook.config.url == "https://hooks.example.test"
    assert again.webhook.config.events == ["error"]


def test_attach_host_wires_session(runtime, ready_host):
    runtime.attach_host(ready_host)
    session = runtime.session
    assert session.submitter is not None
    assert session.inference is not None
    assert session.watcher is not None
    assert runtime.locator.host is ready_host


@pytest.mark.asyncio
async def test_execute_job_loads_snapshot_and_starts(runtime, ready_host):
    runtime.attach_host(ready_host)
    tasks = [
        {"id": "SF_TXT_1_0", "sequence_index": 4, "kind": "text", "text": "a boat", "status": "done"},
        {"id": "SF_TXT_1_1", "sequence_index": 9, "kind": "text", "text": "a lake", "status": "failed", "retry_count": 3},
    ]
    job = ScheduledJob(firing_time=0, task_snapshot=tasks, settings_snapshot={"batch_size": 5})

    await runtime.execute_job(job)
    session = runtime.session
    assert session.running
    assert session.settings.batch_size == 5
    assert [t.sequence_index for t in session.queue.ordered()] == [1, 2]
    assert all(t.status == TaskStatus.PENDING for t in session.queue.tasks)

    # Busy queue: the next firing is skipped
    await runtime.execute_job(ScheduledJob(firing_time=0, task_snapshot=tasks[:1]))
    assert len(session.queue) == 2
    await runtime.close()
    assert not session.running


@pytest.mark.asyncio
async def test_close_persists_run_logs(runtime):
    import logging

    configure_logging("INFO")
    logging.getLogger("sceneflow.test").info("checkpoint reached")
    await runtime.close()
    messages = [e["message"] for e in runtime.store.get(RUN_LOGS)]
    assert "checkpoint reached" in messages
    assert runtime.last_run_logs() == runtime.store.get(RUN_LOGS)
