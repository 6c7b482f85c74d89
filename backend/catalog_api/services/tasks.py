"""Import job executed inside the RQ worker, plus the adapters it needs."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from rq import get_current_job

from backend.importer import ImportCancelled, ImportOptions, ImportPipeline, ImportSetupError
from backend.importer.grouping import default_normalizer
from backend.importer.progress import ProgressEvent
from backend.importer.providers import ProviderClient, ProviderSettings, build_http_client
from backend.importer.ratelimit import Clock

from ..db import create_engine_from_settings, init_database
from ..settings import CatalogSettings
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import JobStore
from ..stores.series_store import SeriesStore

logger = logging.getLogger(__name__)

IMPORT_JOB_TYPE = "import"


class StoreJobHandle:
    """Job handle reading the cancellation flag from the job store."""

    def __init__(self, job_store: JobStore, job_id: str) -> None:
        self._job_store = job_store
        self._job_id = job_id

    def is_cancelled(self) -> bool:
        return self._job_store.status(self._job_id) == "cancelled"


class JobProgressRecorder:
    """Progress sink persisting the latest event on the job record.

    Batch starts, the first tick of each cool-down and completion are also
    written to the job log.
    """

    def __init__(self, job_store: JobStore, log_store: JobLogStore, job_id: str) -> None:
        self._job_store = job_store
        self._log_store = log_store
        self._job_id = job_id
        self._last_phase: str | None = None

    def publish(self, event: ProgressEvent) -> None:
        progress: float | None = None
        if event.phase == "item" and event.total and event.current_index:
            progress = (event.current_index - 1) / event.total
        elif event.phase == "complete":
            progress = 1.0
        self._job_store.record_progress(self._job_id, event=event.to_dict(), progress=progress)

        if event.phase == "batch":
            self._log_store.log(
                self._job_id,
                f"Batch {event.current_batch}/{event.total_batches} started",
                imported=event.imported,
                updated=event.updated,
                errors=event.errors,
            )
        elif event.phase == "pause" and self._last_phase != "pause":
            self._log_store.log(
                self._job_id,
                f"Cooling down for {event.remaining_pause_seconds}s",
                current_batch=event.current_batch,
            )
        elif event.phase == "complete":
            self._log_store.log(
                self._job_id,
                "Import finished",
                imported=event.imported,
                updated=event.updated,
                errors=event.errors,
            )
        self._last_phase = event.phase


def provider_settings(settings: CatalogSettings) -> ProviderSettings:
    return ProviderSettings(
        jikan_base_url=settings.jikan_base_url,
        anilist_url=settings.anilist_url,
        primary_requests_per_second=settings.primary_requests_per_second,
        cover_requests_per_minute=settings.cover_requests_per_minute,
        max_attempts=settings.primary_max_attempts,
        network_backoff_seconds=settings.network_backoff_seconds,
        rate_limit_backoff_seconds=settings.rate_limit_backoff_seconds,
    )


def import_options(settings: CatalogSettings) -> ImportOptions:
    return ImportOptions(
        batch_size=settings.import_batch_size,
        cooldown_seconds=settings.import_cooldown_seconds,
        season_delay_seconds=settings.season_delay_seconds,
        group_delay_seconds=settings.group_delay_seconds,
    )


def build_provider_client(
    settings: CatalogSettings,
    *,
    clock: Clock | None = None,
    transport: httpx.BaseTransport | None = None,
) -> ProviderClient:
    """Create the provider client used by import jobs."""

    http = build_http_client(
        timeout=settings.http_timeout_seconds,
        user_agent=settings.user_agent,
        transport=transport,
    )
    return ProviderClient(http, provider_settings(settings), clock=clock)


def execute_import_job(
    *,
    job_id: str,
    document: str,
    user_id: str,
    overrides: dict[str, str] | None,
    settings: dict[str, Any],
    worker_name: str,
) -> dict[str, Any] | None:
    """Background worker entrypoint for watch-history imports."""

    resolved_settings = CatalogSettings.model_validate(settings)
    engine = create_engine_from_settings(resolved_settings)
    init_database(engine)
    job_store = JobStore(engine)
    log_store = JobLogStore(engine)

    worker_id = getattr(get_current_job(), "worker_name", None) or worker_name

    try:
        if job_store.status(job_id) == "cancelled":
            log_store.log(job_id, "Job cancelled before it started", level="warning")
            return None

        job_store.mark_running(job_id, worker_id=worker_id)
        log_store.log(job_id, "Job started", worker_id=worker_id)

        handle = StoreJobHandle(job_store, job_id)
        recorder = JobProgressRecorder(job_store, log_store, job_id)
        try:
            with build_provider_client(resolved_settings) as providers:
                pipeline = ImportPipeline(
                    SeriesStore(engine),
                    providers,
                    sink=recorder,
                    handle=handle,
                    options=import_options(resolved_settings),
                    normalizer=default_normalizer(overrides),
                )
                result = pipeline.run(document, user_id=user_id)
        except ImportCancelled as exc:
            partial = exc.result.to_dict() if exc.result else None
            if partial is not None:
                job_store.store_result(job_id, partial)
            log_store.log(job_id, "Import cancelled", level="warning", partial_result=partial)
            return partial
        except ImportSetupError as exc:
            job_store.mark_failed(job_id, error_message=str(exc), progress=0.0)
            log_store.log(job_id, "Import could not start", level="error", error=str(exc))
            raise
        except Exception as exc:  # pragma: no cover - unexpected pipeline errors
            logger.exception("Import job %s failed", job_id)
            job_store.mark_failed(job_id, error_message=str(exc))
            log_store.log(job_id, "Job failed", level="error", error=str(exc))
            raise

        for failure in result.errors:
            log_store.log(
                job_id,
                f"Failed to import {failure.label}",
                level="warning",
                external_id=failure.external_id,
                error=failure.error,
            )
        summary = result.to_dict()
        job_store.mark_completed(job_id, result=summary)
        log_store.log(job_id, "Job completed")
        return summary
    finally:
        engine.dispose()
