"""Inspect, cancel and annotate background import jobs."""
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from ..dependencies import get_job_log_store, get_job_queue, get_job_store
from ..schemas import JobCancelRequest, JobLogCreate, JobLogModel, JobMetricsModel, JobModel
from ..services.queue import JobQueueService
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import ACTIVE_STATUSES, JobStore

router = APIRouter(prefix="/jobs", tags=["jobs"])


def require_job(job_id: str, store: JobStore = Depends(get_job_store)) -> JobModel:
    """Resolve the ``job_id`` path parameter or answer 404."""

    job = store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.get("", response_model=list[JobModel])
def list_jobs(
    limit: int = Query(default=50, ge=1, le=100),
    statuses: Annotated[
        list[str] | None,
        Query(alias="status", description="Repeat to match any of several statuses."),
    ] = None,
    job_type: str | None = Query(default=None, alias="type", description="Only jobs of this type."),
    store: JobStore = Depends(get_job_store),
) -> list[JobModel]:
    """Newest jobs first."""

    return store.list(limit=limit, statuses=statuses, job_type=job_type)


@router.get("/metrics", response_model=JobMetricsModel)
def job_metrics(
    store: JobStore = Depends(get_job_store),
    queue: JobQueueService = Depends(get_job_queue),
) -> JobMetricsModel:
    """Counts per status and type, plus how many imports are still waiting in Redis."""

    return store.metrics().model_copy(update={"queue_depth": queue.depth()})


@router.get("/{job_id}", response_model=JobModel)
def get_job(job: JobModel = Depends(require_job)) -> JobModel:
    return job


@router.post("/{job_id}/cancel", response_model=JobModel)
def cancel_job(
    job: JobModel = Depends(require_job),
    request: JobCancelRequest | None = Body(default=None),
    store: JobStore = Depends(get_job_store),
    log_store: JobLogStore = Depends(get_job_log_store),
    queue: JobQueueService = Depends(get_job_queue),
) -> JobModel:
    """Flag an active job as cancelled.

    A queued import is taken off the queue. A running one stops at its next
    suspension point and keeps the partial result it reached.
    """

    if job.status not in ACTIVE_STATUSES:
        raise HTTPException(status_code=409, detail=f"Job already {job.status}")

    reason = request.reason if request else None
    cancelled = store.mark_cancelled(job.id, reason=reason)
    queue.discard(job.id)
    if reason:
        log_store.log(job.id, "Job cancelled", level="warning", reason=reason)
    else:
        log_store.log(job.id, "Job cancelled", level="warning")
    return cancelled


@router.post("/{job_id}/logs", response_model=JobLogModel, status_code=201)
def append_job_log(
    payload: JobLogCreate,
    job: JobModel = Depends(require_job),
    log_store: JobLogStore = Depends(get_job_log_store),
) -> JobLogModel:
    return log_store.append(job.id, payload)


@router.get("/{job_id}/logs", response_model=list[JobLogModel])
def list_job_logs(
    job: JobModel = Depends(require_job),
    limit: int = Query(default=100, ge=1, le=500),
    level: str | None = Query(default=None, description="Only return entries of this level."),
    log_store: JobLogStore = Depends(get_job_log_store),
) -> list[JobLogModel]:
    """Log entries in the order they were written."""

    return log_store.list_for_job(job.id, limit=limit, level=level)
