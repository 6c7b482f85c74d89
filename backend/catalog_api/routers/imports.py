"""Watch-history import endpoints."""
from fastapi import APIRouter, Depends, HTTPException

from backend.importer import group_entries, parse_document
from backend.importer.grouping import default_normalizer

from ..dependencies import get_job_log_store, get_job_queue, get_job_store
from ..schemas import (
    ImportPreviewModel,
    ImportPreviewRequest,
    ImportProgressModel,
    ImportRequest,
    ImportResultModel,
    JobModel,
    PreviewEntryModel,
    PreviewGroupModel,
)
from ..services.queue import JobQueueError, JobQueueService
from ..services.tasks import IMPORT_JOB_TYPE
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import ACTIVE_STATUSES, JobConflictError, JobStore

router = APIRouter(prefix="/imports", tags=["imports"])


def _get_import_job(job_id: str, store: JobStore) -> JobModel:
    job = store.get(job_id)
    if job is None or job.type != IMPORT_JOB_TYPE:
        raise HTTPException(status_code=404, detail="Import job not found")
    return job


@router.post("", response_model=JobModel, status_code=202)
def submit_import(
    request: ImportRequest,
    store: JobStore = Depends(get_job_store),
    log_store: JobLogStore = Depends(get_job_log_store),
    queue: JobQueueService = Depends(get_job_queue),
) -> JobModel:
    """Queue an import of the provided export for background processing."""

    try:
        return queue.enqueue_import(
            store,
            log_store,
            document=request.document,
            user_id=request.user_id,
            filename=request.filename,
            overrides=request.overrides,
        )
    except JobConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "active_job_id": exc.active_job_id},
        ) from exc
    except JobQueueError as exc:  # pragma: no cover - queue failures
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.post("/preview", response_model=ImportPreviewModel)
def preview_import(request: ImportPreviewRequest) -> ImportPreviewModel:
    """Parse and group an export without contacting any provider."""

    entries = parse_document(request.document)
    groups = group_entries(entries, default_normalizer(request.overrides))
    return ImportPreviewModel(
        total=len(entries),
        grouped=len(entries) - len(groups),
        groups=[
            PreviewGroupModel(
                group_key=group.group_key,
                display_title=group.display_title,
                entries=[
                    PreviewEntryModel(
                        season_number=number,
                        external_id=entry.external_id,
                        title=entry.title,
                        total_units=entry.total_units,
                        watched_units=entry.watched_units,
                    )
                    for number, entry in enumerate(group.entries, start=1)
                ],
            )
            for group in groups
        ],
    )


@router.get("/{job_id}/progress", response_model=ImportProgressModel)
def get_import_progress(job_id: str, store: JobStore = Depends(get_job_store)) -> ImportProgressModel:
    """Return the latest progress event reported by an import."""

    job = _get_import_job(job_id, store)
    if job.last_event is None:
        raise HTTPException(status_code=404, detail="No progress reported yet")
    return job.last_event


@router.get("/{job_id}/result", response_model=ImportResultModel)
def get_import_result(job_id: str, store: JobStore = Depends(get_job_store)) -> ImportResultModel:
    """Return the summary of a finished or cancelled import."""

    job = _get_import_job(job_id, store)
    if job.result is None:
        if job.status in ACTIVE_STATUSES:
            raise HTTPException(status_code=409, detail="Import has not finished yet")
        raise HTTPException(status_code=404, detail="Import produced no result")
    return job.result
