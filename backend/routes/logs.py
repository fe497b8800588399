"""Log buffer API routes."""

import logging

from fastapi import APIRouter, Depends

from backend.deps import get_runtime
from sceneflow.logging_utils import get_log_buffer, logs_document
from sceneflow.runtime import Runtime

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/logs")
async def get_logs(level: str | None = None, limit: int = 200):
    """Newest-last entries from the in-memory buffer, optionally filtered by level."""
    entries = get_log_buffer().export()
    if level:
        entries = [e for e in entries if e["level"] == level.lower()]
    return {"logs": entries[-limit:] if limit > 0 else entries}


@router.delete("/logs")
async def clear_logs():
    get_log_buffer().clear()
    return {"status": "cleared"}


@router.get("/logs/export")
async def export_logs(last_run: bool = False, runtime: Runtime = Depends(get_runtime)):
    """Export document; ``last_run`` returns the entries persisted by the previous session."""
    return logs_document(runtime.last_run_logs() if last_run else None)
