"""Portable profile documents (JSON) and CSV result export."""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sceneflow import __version__
from sceneflow.config import QueueSettings
from sceneflow.delivery.webhook import WebhookConfig
from sceneflow.tasks.models import Task

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["ID", "Type", "Prompt", "Status", "Progress", "ResultURLs", "CreatedAt", "CompletedAt"]


class ProfileFormatError(ValueError):
    """The document is not a profile this version can read."""


@dataclass
class ImportedProfile:
    settings: QueueSettings
    tasks: list[Task] = field(default_factory=list)
    webhook: WebhookConfig | None = None


def _iso(ms: int | None) -> str:
    if not ms:
        return ""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

def build_profile(
    tasks: list[Task],
    settings: QueueSettings,
    webhook: WebhookConfig | None = None,
) -> dict[str, Any]:
    """Profile document: ``{version, exportedAt, settings, tasks, webhookConfig}``."""
    return {
        "version": __version__,
        "exportedAt": datetime.now(timezone.utc).isoformat(),
        "settings": settings.model_dump(mode="json"),
        "tasks": [t.model_dump(mode="json") for t in sorted(tasks, key=lambda t: t.sequence_index)],
        "webhookConfig": webhook.model_dump(mode="json") if webhook else None,
    }


def write_profile(path: Path, profile: dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(profile, f, indent=2, ensure_ascii=False)
    return path


def parse_profile(data: dict[str, Any]) -> ImportedProfile:
    """
    Validate a profile document and return its contents ready to enqueue.

    Tasks keep their relative order and payload; run state (status, progress,
    retries, downloads) is reset to Pending and sequence numbers are made dense.
    """
    if not isinstance(data, dict) or not data.get("version"):
        raise ProfileFormatError("Invalid profile format: missing version")
    settings = QueueSettings.model_validate(data.get("settings") or {})
    tasks = [Task.model_validate(t) for t in data.get("tasks") or []]
    tasks.sort(key=lambda t: t.sequence_index)
    for i, task in enumerate(tasks, start=1):
        task.sequence_index = i
        task.reset()
    webhook_data = data.get("webhookConfig")
    webhook = WebhookConfig.model_validate(webhook_data) if webhook_data else None
    return ImportedProfile(settings=settings, tasks=tasks, webhook=webhook)


def read_profile(path: Path) -> ImportedProfile:
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ProfileFormatError(f"Invalid profile JSON: {e}") from e
    profile = parse_profile(data)
    logger.info("Imported profile from %s (%d tasks)", path.name, len(profile.tasks))
    return profile


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def results_csv(tasks: list[Task]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for t in sorted(tasks, key=lambda t: t.sequence_index):
        writer.writerow([
            t.id,
            t.kind.label,
            t.text,
            t.status.value,
            t.progress,
            ";".join(t.result_artifacts),
            _iso(t.created_at),
            _iso(t.completed_at),
        ])
    return buf.getvalue()


def write_results_csv(path: Path, tasks: list[Task]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(results_csv(tasks), encoding="utf-8")
    logger.info("Exported %d tasks to CSV", len(tasks))
    return path
