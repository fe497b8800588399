"""Notification sinks (fire-and-forget)."""

from __future__ import annotations

import logging
from typing import Protocol

from rich.console import Console

logger = logging.getLogger(__name__)

_STYLES = {"success": "green", "info": "cyan", "warning": "yellow", "error": "red"}


class Notifier(Protocol):
    def notify(self, title: str, message: str, severity: str = "info") -> None: ...


class LogNotifier:
    """Route notifications into the log (and therefore the log buffer)."""

    def notify(self, title: str, message: str, severity: str = "info") -> None:
        level = logging.ERROR if severity == "error" else logging.WARNING if severity == "warning" else logging.INFO
        logger.log(level, "[%s] %s", title, message)


class ConsoleNotifier:
    """Print notifications to the terminal with rich."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def notify(self, title: str, message: str, severity: str = "info") -> None:
        style = _STYLES.get(severity, "cyan")
        self.console.print(f"[bold {style}]{title}[/bold {style}] {message}")


def safe_notify(notifier: Notifier | None, title: str, message: str, severity: str = "info") -> None:
    """Deliver a notification; a failing sink is logged and otherwise ignored."""
    if notifier is None:
        return
    try:
        notifier.notify(title, message, severity)
    except Exception as e:
        logger.warning("Notification failed (%s): %s", title, e)
