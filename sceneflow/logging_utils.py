"""Logging setup and the size-bounded in-memory log buffer."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sceneflow import __version__

MAX_LOGS = 500
MAX_MESSAGE_LENGTH = 200
MAX_DATA_LENGTH = 300

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class LogBuffer(logging.Handler):
    """Keep the most recent log records as plain dicts for export.

    When more than ``max_entries`` records are held, the oldest are dropped so
    that only the newest 80% remain.
    """

    def __init__(self, max_entries: int = MAX_LOGS, level: int = logging.INFO):
        super().__init__(level=level)
        self.max_entries = max_entries
        self._entries: list[dict[str, Any]] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
        except Exception:
            message = str(record.msg)
        data = getattr(record, "data", None)
        if record.exc_info and record.exc_info[1] is not None:
            data = data or repr(record.exc_info[1])
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": message[:MAX_MESSAGE_LENGTH],
            "data": _truncate_data(data),
        }
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            keep = int(self.max_entries * 0.8)
            self._entries = self._entries[-keep:]

    def export(self) -> list[dict[str, Any]]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries = []

    def __len__(self) -> int:
        return len(self._entries)


def _truncate_data(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        text = data
    else:
        try:
            text = json.dumps(data, default=str)
        except (TypeError, ValueError):
            text = "[Serialization Error]"
    if len(text) > MAX_DATA_LENGTH:
        text = text[:MAX_DATA_LENGTH] + "..."
    return text


_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    return _buffer


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Configure root logging once and attach the shared log buffer."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)
    if _buffer not in root.handlers:
        root.addHandler(_buffer)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("sceneflow")


def logs_document(entries: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    """Export document ``{exportedAt, version, logs}`` (default: the shared buffer)."""
    return {
        "exportedAt": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "logs": _buffer.export() if entries is None else entries,
    }


def export_logs(path: Path, entries: list[dict[str, Any]] | None = None) -> Path:
    payload = logs_document(entries)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    return path
