"""Structured log lines attached to import jobs."""
from __future__ import annotations

from typing import Any

from sqlmodel import Session, select

from ..models import JobLogRecord
from ..schemas import JobLogCreate, JobLogModel


class JobLogStore:
    """Append-only log of what happened to each job, readable through the API."""

    def __init__(self, engine) -> None:
        self._engine = engine

    def append(self, job_id: str, payload: JobLogCreate) -> JobLogModel:
        record = JobLogRecord(job_id=job_id, **payload.model_dump())
        with Session(self._engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return JobLogModel.model_validate(record, from_attributes=True)

    def log(self, job_id: str, message: str, *, level: str = "info", **context: Any) -> JobLogModel:
        """Append ``message``; keyword arguments become the entry's context."""

        return self.append(job_id, JobLogCreate(level=level, message=message, context=context or None))

    def list_for_job(self, job_id: str, *, limit: int = 100, level: str | None = None) -> list[JobLogModel]:
        """Oldest first, optionally restricted to a single level."""

        statement = select(JobLogRecord).where(JobLogRecord.job_id == job_id)
        if level:
            statement = statement.where(JobLogRecord.level == level)
        statement = statement.order_by(JobLogRecord.created_at, JobLogRecord.id).limit(limit)
        with Session(self._engine) as session:
            return [JobLogModel.model_validate(record, from_attributes=True) for record in session.exec(statement)]
