"""Side-effect sinks: notifications and webhooks."""

from sceneflow.delivery.notify import ConsoleNotifier, LogNotifier, Notifier, safe_notify
from sceneflow.delivery.webhook import WEBHOOK_EVENTS, WebhookConfig, WebhookSender

__all__ = [
    "ConsoleNotifier",
    "LogNotifier",
    "Notifier",
    "WEBHOOK_EVENTS",
    "WebhookConfig",
    "WebhookSender",
    "safe_notify",
]
