"""Tests for webhook delivery and notification sinks."""

import httpx
import pytest

from sceneflow.delivery.notify import LogNotifier, safe_notify
from sceneflow.delivery.webhook import WebhookConfig, WebhookSender


@pytest.mark.asyncio
async def test_webhook_posts_event_envelope(webhook, webhook_calls):
    assert await webhook.send("task_complete", {"taskId": "SF_1"})
    (payload,) = webhook_calls
    assert payload["event"] == "task_complete"
    assert payload["data"] == {"taskId": "SF_1"}
    assert payload["source"] == "SceneFlow"
    assert payload["timestamp"]


@pytest.mark.asyncio
async def test_webhook_filters_unsubscribed_events(webhook, webhook_calls):
    webhook.config = WebhookConfig(url="https://hooks.example.test", events=["error"])
    assert not await webhook.send("task_complete", {})
    assert webhook_calls == []


@pytest.mark.asyncio
async def test_webhook_disabled_without_url(webhook_calls):
    sender = WebhookSender(WebhookConfig(url=""))
    assert not await sender.send("queue_complete", {})


@pytest.mark.asyncio
async def test_webhook_failures_are_swallowed():
    def refuse(request):
        return httpx.Response(500)

    sender = WebhookSender(
        WebhookConfig(url="https://hooks.example.test", events=["error"]),
        transport=httpx.MockTransport(refuse),
    )
    assert await sender.send("error", {"taskId": "x"}) is False


@pytest.mark.asyncio
async def test_webhook_connection_error_is_swallowed():
    def unreachable(request):
        raise httpx.ConnectError("refused", request=request)

    sender = WebhookSender(
        WebhookConfig(url="https://hooks.example.test", events=["error"]),
        transport=httpx.MockTransport(unreachable),
    )
    assert await sender.send("error", {}) is False


def test_safe_notify_ignores_failing_sink(notifier):
    class Broken:
        def notify(self, title, message, severity="info"):
            raise OSError("no display")

    safe_notify(Broken(), "SceneFlow", "done")
    safe_notify(None, "SceneFlow", "done")
    safe_notify(notifier, "SceneFlow", "done", "success")
    assert notifier.sent == [("SceneFlow", "done", "success")]


def test_log_notifier_logs(caplog):
    with caplog.at_level("ERROR"):
        LogNotifier().notify("SceneFlow - Error", "Scene 3 failed", "error")
    assert "Scene 3 failed" in caplog.text
