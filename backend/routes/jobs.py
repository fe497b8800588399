"""Scheduled job API routes.

POST   /api/jobs           snapshot the current queue and schedule it
GET    /api/jobs           list jobs (without task snapshots)
GET    /api/jobs/{job_id}  full job
DELETE /api/jobs/{job_id}  cancel
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from backend.deps import get_runtime
from sceneflow.jobs.models import RepeatInterval, ScheduledJob
from sceneflow.runtime import Runtime

logger = logging.getLogger(__name__)
router = APIRouter()


class JobCreateRequest(BaseModel):
    firing_time: int | None = None  # epoch ms
    in_minutes: float | None = Field(default=None, gt=0)
    repeat: RepeatInterval = RepeatInterval.NONE
    name: str = ""


class JobSummary(BaseModel):
    id: str
    name: str
    firing_time: int
    repeat_interval: RepeatInterval
    status: str
    task_count: int
    fire_count: int
    last_fired_at: int | None = None
    created_at: int = 0

    @classmethod
    def from_job(cls, job: ScheduledJob) -> "JobSummary":
        return cls(
            id=job.id,
            name=job.name,
            firing_time=job.firing_time,
            repeat_interval=job.repeat_interval,
            status=job.status.value,
            task_count=len(job.task_snapshot),
            fire_count=job.fire_count,
            last_fired_at=job.last_fired_at,
            created_at=job.created_at,
        )


@router.get("/jobs", response_model=list[JobSummary])
async def list_jobs(runtime: Runtime = Depends(get_runtime)):
    return [JobSummary.from_job(j) for j in runtime.scheduler.list_jobs()]


@router.post("/jobs", response_model=JobSummary, status_code=201)
async def create_job(request: JobCreateRequest, runtime: Runtime = Depends(get_runtime)):
    """Schedule the current queue (tasks + settings) to run at a later time."""
    if request.firing_time is not None:
        firing_time = request.firing_time
    elif request.in_minutes is not None:
        firing_time = runtime.clock.now_ms() + int(request.in_minutes * 60_000)
    else:
        raise HTTPException(status_code=422, detail="Provide firing_time or in_minutes")

    snapshot = runtime.session.snapshot()
    if not snapshot["tasks"]:
        raise HTTPException(status_code=422, detail="Queue is empty")

    job = runtime.scheduler.create(
        firing_time,
        snapshot["tasks"],
        snapshot["settings"],
        repeat=request.repeat,
        name=request.name,
    )
    return JobSummary.from_job(job)


@router.get("/jobs/{job_id}", response_model=ScheduledJob)
async def get_job(job_id: str, runtime: Runtime = Depends(get_runtime)):
    job = runtime.scheduler.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return job


@router.delete("/jobs/{job_id}")
async def cancel_job(job_id: str, runtime: Runtime = Depends(get_runtime)):
    if not runtime.scheduler.cancel(job_id):
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return {"status": "cancelled", "job_id": job_id}
