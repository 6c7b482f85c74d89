"""RQ queue that carries import jobs from the API to the worker."""
from __future__ import annotations

import logging
from typing import Any

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue

from ..schemas import JobModel
from ..settings import CatalogSettings
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import JobStore
from .tasks import IMPORT_JOB_TYPE, execute_import_job

logger = logging.getLogger(__name__)


class JobQueueError(RuntimeError):
    """The queue backend refused or could not receive a job."""


def connect_redis(url: str) -> Redis:
    """Open a Redis connection; ``fakeredis://`` yields an in-memory server for tests."""

    if url.startswith("fakeredis://"):
        import fakeredis

        return fakeredis.FakeRedis()
    return Redis.from_url(url)


class JobQueueService:
    def __init__(self, settings: CatalogSettings) -> None:
        self._settings = settings
        self._connection = connect_redis(settings.redis_url)
        self._queue = Queue(settings.redis_queue_name, connection=self._connection)

    @property
    def queue(self) -> Queue:
        return self._queue

    @property
    def connection(self) -> Redis:
        return self._connection

    def ping(self) -> bool:
        try:
            return bool(self._connection.ping())
        except RedisError:
            return False

    def depth(self) -> int:
        """Number of imports waiting for a worker, or 0 when Redis is unreachable."""

        try:
            return len(self._queue)
        except RedisError:
            return 0

    def discard(self, job_id: str) -> None:
        """Drop a job that has not been picked up yet; a no-op once a worker owns it."""

        try:
            self._queue.remove(job_id)
        except RedisError:
            logger.warning("Could not remove job %s from the queue", job_id, exc_info=True)

    def enqueue_import(
        self,
        job_store: JobStore,
        log_store: JobLogStore,
        *,
        document: str,
        user_id: str,
        filename: str | None = None,
        overrides: dict[str, str] | None = None,
    ) -> JobModel:
        """Record an import job and push it onto the queue.

        Only a summary of the upload is stored on the job row; the document
        itself travels in the task arguments. Raises
        :class:`~backend.catalog_api.stores.job_store.JobConflictError` while
        another import is queued or running.
        """

        overrides = overrides or {}
        payload: dict[str, Any] = {
            "user_id": user_id,
            "filename": filename,
            "document_bytes": len(document.encode("utf-8")),
            "overrides": overrides,
        }
        job = job_store.enqueue(IMPORT_JOB_TYPE, payload, exclusive=True)
        log_store.log(job.id, "Import job enqueued", payload=payload)

        task_kwargs = {
            "job_id": job.id,
            "document": document,
            "user_id": user_id,
            "overrides": overrides,
            "settings": self._settings.model_dump(),
            "worker_name": self._settings.queue_worker_name,
        }
        try:
            self._queue.enqueue(
                execute_import_job,
                job_id=job.id,
                job_timeout=self._settings.import_job_timeout_seconds,
                kwargs=task_kwargs,
            )
        except RedisError as exc:  # pragma: no cover - failure path
            log_store.log(job.id, "Failed to enqueue job", level="error", error=str(exc))
            job_store.mark_failed(job.id, error_message="queue_unavailable", progress=0.0)
            raise JobQueueError("Unable to enqueue job") from exc
        return job
