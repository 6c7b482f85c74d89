"""SQLModel-backed bookkeeping for queued and running import jobs."""
from __future__ import annotations

from collections import Counter
from datetime import datetime
from threading import Lock
from typing import Any
from uuid import uuid4

from sqlmodel import Session, select

from ..models import JobRecord, utcnow
from ..schemas import JobMetricsModel, JobModel

ACTIVE_STATUSES = ("queued", "running")
TERMINAL_STATUSES = ("completed", "failed", "cancelled")


class JobConflictError(RuntimeError):
    """Another job of an exclusive type is still queued or running."""

    def __init__(self, job_type: str, active_job_id: str) -> None:
        super().__init__(f"A {job_type} job is already active ({active_job_id})")
        self.job_type = job_type
        self.active_job_id = active_job_id


class JobNotFoundError(RuntimeError):
    pass


class JobStore:
    """Job rows shared by the API process and the RQ worker.

    Writes are serialised through a process-local lock; SQLite handles the
    cross-process side. Once a job reaches a terminal status, later
    transitions leave it alone, so a cancellation that lands while the worker
    is finishing is not overwritten by ``completed``.
    """

    def __init__(self, engine) -> None:
        self._engine = engine
        self._lock = Lock()

    def enqueue(self, job_type: str, payload: dict[str, Any] | None = None, *, exclusive: bool = False) -> JobModel:
        """Insert a queued job. ``exclusive`` refuses it while one of the same type is active."""

        with self._lock, Session(self._engine) as session:
            if exclusive:
                blocking = session.exec(
                    select(JobRecord.id)
                    .where(JobRecord.type == job_type, JobRecord.status.in_(ACTIVE_STATUSES))
                    .order_by(JobRecord.created_at)
                ).first()
                if blocking is not None:
                    raise JobConflictError(job_type, blocking)
            record = JobRecord(id=uuid4().hex, type=job_type, status="queued", progress=0.0, payload=payload)
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_model(record)

    def list(
        self,
        *,
        limit: int = 50,
        statuses: list[str] | None = None,
        job_type: str | None = None,
    ) -> list[JobModel]:
        statement = select(JobRecord)
        wanted = {status.lower() for status in statuses or () if status}
        if wanted:
            statement = statement.where(JobRecord.status.in_(sorted(wanted)))
        if job_type:
            statement = statement.where(JobRecord.type == job_type)
        statement = statement.order_by(JobRecord.created_at.desc()).limit(limit)
        with Session(self._engine) as session:
            return [_to_model(record) for record in session.exec(statement)]

    def get(self, job_id: str) -> JobModel | None:
        with Session(self._engine) as session:
            record = session.get(JobRecord, job_id)
            return _to_model(record) if record else None

    def status(self, job_id: str) -> str | None:
        """Read just the status column; the worker polls this between provider calls."""

        with Session(self._engine) as session:
            return session.exec(select(JobRecord.status).where(JobRecord.id == job_id)).first()

    def mark_running(self, job_id: str, *, worker_id: str | None = None) -> JobModel:
        return self._transition(
            job_id, "running", progress=0.0, started_at=utcnow(), worker_id=worker_id
        )

    def mark_completed(self, job_id: str, *, result: dict[str, Any] | None = None) -> JobModel:
        return self._transition(job_id, "completed", progress=1.0, finished_at=utcnow(), result=result)

    def mark_failed(self, job_id: str, *, error_message: str, progress: float | None = None) -> JobModel:
        return self._transition(
            job_id, "failed", progress=progress, finished_at=utcnow(), error_message=error_message
        )

    def mark_cancelled(self, job_id: str, *, reason: str | None = None) -> JobModel:
        return self._transition(job_id, "cancelled", finished_at=utcnow(), error_message=reason)

    def record_progress(self, job_id: str, *, event: dict[str, Any], progress: float | None = None) -> None:
        """Keep the latest progress event; the status is left untouched."""

        if progress is not None:
            progress = min(max(progress, 0.0), 1.0)
        self._apply(job_id, last_event=event, progress=progress)

    def store_result(self, job_id: str, result: dict[str, Any]) -> JobModel:
        """Attach a summary without changing status, e.g. the partial result of a cancelled import."""

        return self._apply(job_id, result=result)

    def metrics(self) -> JobMetricsModel:
        with Session(self._engine) as session:
            rows = session.exec(
                select(JobRecord.status, JobRecord.type, JobRecord.started_at, JobRecord.finished_at)
            ).all()

        status_counts: Counter[str] = Counter()
        type_counts: Counter[str] = Counter()
        durations: list[float] = []
        last_finished: datetime | None = None
        for status, job_type, started_at, finished_at in rows:
            status_counts[status] += 1
            type_counts[job_type] += 1
            if finished_at is None:
                continue
            if last_finished is None or finished_at > last_finished:
                last_finished = finished_at
            if started_at is not None:
                durations.append((finished_at - started_at).total_seconds())

        return JobMetricsModel(
            total=len(rows),
            status_counts=dict(sorted(status_counts.items())),
            type_counts=dict(sorted(type_counts.items())),
            average_duration_seconds=sum(durations) / len(durations) if durations else None,
            last_finished_at=last_finished,
        )

    def _transition(self, job_id: str, status: str, **changes: Any) -> JobModel:
        with self._lock, Session(self._engine) as session:
            record = _load(session, job_id)
            if record.status in TERMINAL_STATUSES:
                return _to_model(record)
            if record.started_at is not None:
                changes.pop("started_at", None)
            record.status = status
            return _save(session, record, changes)

    def _apply(self, job_id: str, **changes: Any) -> JobModel:
        with self._lock, Session(self._engine) as session:
            return _save(session, _load(session, job_id), changes)


def _load(session: Session, job_id: str) -> JobRecord:
    record = session.get(JobRecord, job_id)
    if record is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    return record


def _save(session: Session, record: JobRecord, changes: dict[str, Any]) -> JobModel:
    """Copy the non-``None`` changes onto ``record`` and commit."""

    for field, value in changes.items():
        if value is not None:
            setattr(record, field, value)
    record.updated_at = utcnow()
    session.add(record)
    session.commit()
    session.refresh(record)
    return _to_model(record)


def _to_model(record: JobRecord) -> JobModel:
    duration = None
    if record.started_at and record.finished_at:
        duration = (record.finished_at - record.started_at).total_seconds()
    return JobModel.model_validate(record, from_attributes=True).model_copy(update={"duration_seconds": duration})
