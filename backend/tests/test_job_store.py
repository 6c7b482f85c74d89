"""Tests for job bookkeeping shared by the API and the worker."""
from __future__ import annotations

import pytest
from sqlalchemy.engine import Engine

from backend.catalog_api.stores.job_log_store import JobLogStore
from backend.catalog_api.stores.job_store import JobConflictError, JobNotFoundError, JobStore


@pytest.fixture()
def job_store(engine: Engine) -> JobStore:
    return JobStore(engine)


def test_exclusive_enqueue_blocks_until_the_active_job_finishes(job_store: JobStore) -> None:
    first = job_store.enqueue("import", {"user_id": "u1"}, exclusive=True)

    with pytest.raises(JobConflictError) as excinfo:
        job_store.enqueue("import", exclusive=True)
    assert excinfo.value.active_job_id == first.id

    other_type = job_store.enqueue("maintenance", exclusive=True)
    assert other_type.status == "queued"

    job_store.mark_running(first.id, worker_id="w1")
    job_store.mark_completed(first.id)
    assert job_store.enqueue("import", exclusive=True).id != first.id


def test_transitions_record_timestamps_and_worker(job_store: JobStore) -> None:
    job = job_store.enqueue("import")

    running = job_store.mark_running(job.id, worker_id="w1")
    assert running.status == "running"
    assert running.worker_id == "w1"
    assert running.started_at is not None

    done = job_store.mark_completed(job.id, result={"total": 3, "imported": 3, "updated": 0, "grouped": 0})
    assert done.status == "completed"
    assert done.progress == 1.0
    assert done.result is not None
    assert done.result.imported == 3
    assert done.duration_seconds is not None
    assert done.started_at == running.started_at
    assert done.finished_at is not None
    assert done.finished_at.tzinfo is not None
    assert done.created_at.tzinfo is not None


def test_terminal_status_is_not_overwritten(job_store: JobStore) -> None:
    job = job_store.enqueue("import")
    job_store.mark_running(job.id)
    job_store.mark_cancelled(job.id, reason="stop")

    after = job_store.mark_completed(job.id, result={"total": 0, "imported": 0, "updated": 0, "grouped": 0})

    assert after.status == "cancelled"
    assert after.error_message == "stop"
    assert after.result is None


def test_progress_is_clamped_and_keeps_status(job_store: JobStore) -> None:
    job = job_store.enqueue("import")
    job_store.mark_running(job.id)

    event = {"phase": "batch", "current_batch": 1, "total_batches": 1, "total": 2}
    job_store.record_progress(job.id, event=event, progress=1.7)

    stored = job_store.get(job.id)
    assert stored is not None
    assert stored.status == "running"
    assert stored.progress == 1.0
    assert stored.last_event is not None
    assert stored.last_event.phase == "batch"
    assert job_store.status(job.id) == "running"
    assert job_store.status("missing") is None


def test_updates_to_missing_jobs_raise(job_store: JobStore) -> None:
    with pytest.raises(JobNotFoundError):
        job_store.mark_running("missing")
    with pytest.raises(JobNotFoundError):
        job_store.store_result("missing", {})


def test_metrics_count_statuses_and_types(job_store: JobStore) -> None:
    finished = job_store.enqueue("import")
    job_store.mark_running(finished.id)
    job_store.mark_failed(finished.id, error_message="boom")
    job_store.enqueue("import")
    job_store.enqueue("maintenance")

    metrics = job_store.metrics()

    assert metrics.total == 3
    assert metrics.status_counts == {"failed": 1, "queued": 2}
    assert metrics.type_counts == {"import": 2, "maintenance": 1}
    assert metrics.average_duration_seconds is not None
    assert metrics.last_finished_at is not None


def test_job_log_levels_can_be_filtered(engine: Engine, job_store: JobStore) -> None:
    log_store = JobLogStore(engine)
    job = job_store.enqueue("import")
    log_store.log(job.id, "Job started")
    log_store.log(job.id, "Failed to import Trigun", level="warning", external_id=2)
    log_store.log(job.id, "Job completed")

    warnings = log_store.list_for_job(job.id, level="warning")
    everything = log_store.list_for_job(job.id, limit=2)

    assert [entry.context for entry in warnings] == [{"external_id": 2}]
    assert [entry.message for entry in everything] == ["Job started", "Failed to import Trigun"]
    assert everything[0].context is None
