"""Task schema, status and the image payload carried by image tasks."""

from __future__ import annotations

import base64
import itertools
import time
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_serializer, field_validator

ID_PREFIX = "SF_"

_id_counter = itertools.count()


class TaskKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"

    @property
    def label(self) -> str:
        return "Text" if self is TaskKind.TEXT else "Image"


class TaskStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


class ImagePayload(BaseModel):
    """Image bytes for an image task; ``path`` lets the bytes be re-attached later."""

    name: str
    mime_type: str = "image/png"
    path: str | None = None
    data: bytes | None = None

    @field_serializer("data", when_used="json")
    def _serialize_data(self, value: bytes | None) -> str | None:
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, value: Any) -> Any:
        if isinstance(value, str):
            # Accept both bare base64 and data: URLs
            if value.startswith("data:") and "," in value:
                value = value.split(",", 1)[1]
            return base64.b64decode(value)
        return value

    @classmethod
    def from_file(cls, path: str | Path) -> "ImagePayload":
        p = Path(path)
        suffix = p.suffix.lower().lstrip(".")
        mime = {"jpg": "image/jpeg", "jpeg": "image/jpeg", "webp": "image/webp", "gif": "image/gif"}.get(
            suffix, "image/png"
        )
        return cls(name=p.name, mime_type=mime, path=str(p.resolve()), data=p.read_bytes())

    def reattach(self) -> bool:
        """Reload bytes from ``path`` if they were stripped. Returns True when data is present."""
        if self.data is not None:
            return True
        if self.path and Path(self.path).is_file():
            self.data = Path(self.path).read_bytes()
            return True
        return False


class Task(BaseModel):
    """One generation request tracked from enqueue to Done or terminal Failed."""

    id: str
    sequence_index: int = Field(ge=1)
    kind: TaskKind
    text: str = ""  # prompt text (the associated prompt for image tasks)
    original_text: str = ""  # text as imported, before enhancement
    image: ImagePayload | None = None

    status: TaskStatus = TaskStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    retry_count: int = 0
    priority: int = Field(default=2, ge=1, le=3)  # 1 low, 2 normal, 3 high
    result_artifacts: list[str] = Field(default_factory=list)
    downloaded: bool = False
    has_rested_batch: bool = False
    error_message: str | None = None

    created_at: int = Field(default_factory=lambda: int(time.time() * 1000))
    started_at: int | None = None
    completed_at: int | None = None

    @property
    def label(self) -> str:
        return f"S{self.sequence_index}"

    def can_retry(self, max_retries: int) -> bool:
        return self.status == TaskStatus.FAILED and self.retry_count < max_retries

    def is_dispatchable(self, max_retries: int) -> bool:
        return self.status == TaskStatus.PENDING or self.can_retry(max_retries)

    def reset(self) -> None:
        """Clear run state so the task starts over as Pending."""
        self.status = TaskStatus.PENDING
        self.progress = 0
        self.retry_count = 0
        self.downloaded = False
        self.has_rested_batch = False
        self.error_message = None
        self.started_at = None
        self.completed_at = None

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe dump with image bytes stripped (re-attached from ``path`` later)."""
        data = self.model_dump(mode="json")
        if data.get("image"):
            data["image"]["data"] = None
        return data


def new_task_id(kind: TaskKind, now_ms: int | None = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    tag = "TXT" if kind is TaskKind.TEXT else "IMG"
    return f"{ID_PREFIX}{tag}_{now_ms}_{next(_id_counter)}"
