"""Shared state container for the catalog API."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine

from .db import create_engine_from_settings, init_database
from .services.queue import JobQueueService
from .settings import CatalogSettings
from .stores.job_log_store import JobLogStore
from .stores.job_store import JobStore
from .stores.series_store import SeriesStore


@dataclass(slots=True)
class AppState:
    """Encapsulates mutable application state shared across routers."""

    settings: CatalogSettings
    engine: Engine
    job_store: JobStore
    log_store: JobLogStore
    series_store: SeriesStore
    job_queue: JobQueueService

    def __init__(self, settings: CatalogSettings) -> None:
        self.settings = settings
        self.engine = create_engine_from_settings(settings)
        init_database(self.engine)
        self.job_store = JobStore(self.engine)
        self.log_store = JobLogStore(self.engine)
        self.series_store = SeriesStore(self.engine)
        self.job_queue = JobQueueService(settings)
