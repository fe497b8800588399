"""Queue API routes: listing, editing, run control, settings and exports.

GET    /api/queue                    tasks in display order + stats
POST   /api/queue/prompts            line-delimited bulk add
PATCH  /api/queue/tasks/{id}         edit text / priority
POST   /api/queue/start|stop|pause|resume
GET    /api/export/csv | /api/export/profile
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from backend.deps import get_runtime
from sceneflow.config import QueueSettings
from sceneflow.delivery.webhook import WEBHOOK_EVENTS, WebhookConfig
from sceneflow.enhance import STYLES, SceneContext, generate_variations
from sceneflow.runtime import Runtime
from sceneflow.tasks.export import ProfileFormatError, build_profile, parse_profile, results_csv
from sceneflow.tasks.models import TaskKind
from sceneflow.tasks.ordering import QueueStrategy
from sceneflow.tasks.queue import SceneQueue, split_lines

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class AddPromptsRequest(BaseModel):
    text: str
    variations: int = Field(default=0, ge=0, le=12)


class AddPromptsResponse(BaseModel):
    added: int
    total: int


class TaskUpdateRequest(BaseModel):
    text: str | None = None
    priority: int | None = None


class MoveRequest(BaseModel):
    from_index: int = Field(ge=0)
    to_index: int = Field(ge=0)


class QueueResponse(BaseModel):
    mode: str
    strategy: str
    tasks: list[dict[str, Any]]
    stats: dict[str, Any]


class CountResponse(BaseModel):
    count: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _task_or_404(runtime: Runtime, task_id: str):
    task = runtime.session.queue.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return task


def _require_idle(runtime: Runtime) -> None:
    if runtime.session.running:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Queue is running. Stop it first.")


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

@router.get("/queue", response_model=QueueResponse)
async def get_queue(strategy: str | None = None, runtime: Runtime = Depends(get_runtime)):
    """Tasks in display order (``strategy`` overrides the configured one) plus stats."""
    session = runtime.session
    if strategy is not None and strategy not in {s.value for s in QueueStrategy}:
        raise HTTPException(status_code=422, detail=f"Unknown strategy: {strategy}")
    tasks = session.queue.display_order(strategy)
    return QueueResponse(
        mode=session.queue.mode.value,
        strategy=strategy or session.queue.strategy,
        tasks=[t.snapshot() for t in tasks],
        stats=session.stats(),
    )


@router.get("/queue/stats")
async def get_stats(runtime: Runtime = Depends(get_runtime)):
    return runtime.session.stats()


@router.get("/rate")
async def get_rate(runtime: Runtime = Depends(get_runtime)):
    """Submissions counted in the last minute / hour."""
    return runtime.rate_limiter.stats().to_dict()


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------

@router.post("/queue/prompts", response_model=AddPromptsResponse, status_code=201)
async def add_prompts(request: AddPromptsRequest, runtime: Runtime = Depends(get_runtime)):
    """Append one text scene per non-blank line."""
    session = runtime.session
    if session.queue.mode is not TaskKind.TEXT:
        if session.queue.tasks:
            raise HTTPException(status_code=409, detail="Queue holds image scenes. Clear it first.")
        session.queue = SceneQueue(mode=TaskKind.TEXT, strategy=session.settings.queue_strategy)

    lines = split_lines(request.text)
    if not lines:
        raise HTTPException(status_code=422, detail="No prompts in request")
    if request.variations:
        lines = [v for line in lines for v in generate_variations(line, request.variations)]
    added = session.queue.add_prompts("\n".join(lines), now_ms=runtime.clock.now_ms())
    session.save_state()
    return AddPromptsResponse(added=len(added), total=len(session.queue))


@router.patch("/queue/tasks/{task_id}")
async def update_task(task_id: str, request: TaskUpdateRequest, runtime: Runtime = Depends(get_runtime)):
    _task_or_404(runtime, task_id)
    try:
        task = runtime.session.queue.update(task_id, text=request.text, priority=request.priority)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    runtime.session.save_state()
    return task.snapshot()


@router.delete("/queue/tasks/{task_id}")
async def delete_task(task_id: str, runtime: Runtime = Depends(get_runtime)):
    _task_or_404(runtime, task_id)
    runtime.session.queue.remove(task_id)
    runtime.session.save_state()
    return {"status": "deleted", "task_id": task_id}


@router.post("/queue/tasks/{task_id}/duplicate", status_code=201)
async def duplicate_task(task_id: str, runtime: Runtime = Depends(get_runtime)):
    _task_or_404(runtime, task_id)
    copy = runtime.session.queue.duplicate(task_id, now_ms=runtime.clock.now_ms())
    runtime.session.save_state()
    return copy.snapshot()


@router.post("/queue/tasks/{task_id}/reset")
async def reset_task(task_id: str, runtime: Runtime = Depends(get_runtime)):
    """Return a Failed (or stuck) task to Pending with its retry count cleared."""
    _task_or_404(runtime, task_id)
    try:
        task = runtime.session.queue.reset_task(task_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    runtime.session.save_state()
    return task.snapshot()


@router.post("/queue/move")
async def move_task(request: MoveRequest, runtime: Runtime = Depends(get_runtime)):
    queue = runtime.session.queue
    if request.from_index >= len(queue) or request.to_index >= len(queue):
        raise HTTPException(status_code=422, detail="Index out of range")
    queue.move(request.from_index, request.to_index)
    runtime.session.save_state()
    return {"status": "ok"}


@router.post("/queue/retry-failed", response_model=CountResponse)
async def retry_failed(runtime: Runtime = Depends(get_runtime)):
    count = runtime.session.queue.retry_failed(runtime.session.settings.max_retries)
    runtime.session.save_state()
    return CountResponse(count=count)


@router.delete("/queue")
async def clear_queue(runtime: Runtime = Depends(get_runtime)):
    _require_idle(runtime)
    runtime.session.queue.clear()
    runtime.session.save_state()
    return {"status": "cleared"}


# ---------------------------------------------------------------------------
# Run control
# ---------------------------------------------------------------------------

@router.post("/queue/start")
async def start_queue(runtime: Runtime = Depends(get_runtime)):
    session = runtime.session
    _require_idle(runtime)
    if not session.has_work():
        raise HTTPException(status_code=409, detail="Queue is empty or already complete")
    if session.submitter is None:
        try:
            await runtime.attach_browser()
        except Exception as e:
            logger.exception("Could not open the host page")
            raise HTTPException(status_code=503, detail=f"Could not open the host page: {str(e)[:300]}")
    if not await session.start():
        raise HTTPException(status_code=409, detail="Queue could not be started")
    return session.stats()


@router.post("/queue/stop")
async def stop_queue(runtime: Runtime = Depends(get_runtime)):
    await runtime.session.stop()
    return runtime.session.stats()


@router.post("/queue/pause")
async def pause_queue(runtime: Runtime = Depends(get_runtime)):
    if not runtime.session.running:
        raise HTTPException(status_code=409, detail="Queue is not running")
    runtime.session.pause()
    return runtime.session.stats()


@router.post("/queue/resume")
async def resume_queue(runtime: Runtime = Depends(get_runtime)):
    if not runtime.session.running:
        raise HTTPException(status_code=409, detail="Queue is not running")
    runtime.session.resume()
    return runtime.session.stats()


# ---------------------------------------------------------------------------
# Settings, context, webhook
# ---------------------------------------------------------------------------

@router.get("/settings", response_model=QueueSettings)
async def get_queue_settings(runtime: Runtime = Depends(get_runtime)):
    return runtime.session.settings


@router.put("/settings", response_model=QueueSettings)
async def put_queue_settings(request: QueueSettings, runtime: Runtime = Depends(get_runtime)):
    if request.prompt_style != "none" and request.prompt_style not in STYLES:
        raise HTTPException(status_code=422, detail=f"Unknown prompt style: {request.prompt_style}")
    runtime.session.update_settings(request)
    runtime.session.save_state()
    return runtime.session.settings


@router.get("/context", response_model=SceneContext)
async def get_context(runtime: Runtime = Depends(get_runtime)):
    return runtime.session.context


@router.put("/context", response_model=SceneContext)
async def put_context(request: SceneContext, runtime: Runtime = Depends(get_runtime)):
    runtime.session.context = request
    runtime.session.save_state()
    return request


@router.get("/webhook", response_model=WebhookConfig)
async def get_webhook(runtime: Runtime = Depends(get_runtime)):
    return runtime.webhook.config


@router.put("/webhook", response_model=WebhookConfig)
async def put_webhook(request: WebhookConfig, runtime: Runtime = Depends(get_runtime)):
    unknown = [e for e in request.events if e not in WEBHOOK_EVENTS]
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown webhook events: {unknown}")
    runtime.save_webhook_config(request)
    return request


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------

@router.get("/export/csv", response_class=PlainTextResponse)
async def export_csv(runtime: Runtime = Depends(get_runtime)):
    return PlainTextResponse(
        results_csv(runtime.session.queue.tasks),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="sceneflow-results.csv"'},
    )


@router.get("/export/profile")
async def export_profile(runtime: Runtime = Depends(get_runtime)):
    session = runtime.session
    return build_profile(session.queue.tasks, session.settings, runtime.webhook.config)


@router.post("/import/profile")
async def import_profile(profile: dict[str, Any], runtime: Runtime = Depends(get_runtime)):
    """Replace queue and settings with the profile's contents (tasks reset to Pending)."""
    _require_idle(runtime)
    try:
        imported = parse_profile(profile)
    except (ProfileFormatError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    session = runtime.session
    session.update_settings(imported.settings)
    mode = imported.tasks[0].kind if imported.tasks else session.queue.mode
    session.queue = SceneQueue(mode=mode, strategy=imported.settings.queue_strategy, tasks=imported.tasks)
    if imported.webhook is not None:
        runtime.save_webhook_config(imported.webhook)
    session.save_state()
    logger.info("Imported profile via API (%d tasks)", len(imported.tasks))
    return {"imported": len(imported.tasks)}
