"""FastAPI dependencies for the catalog API."""
from fastapi import Depends, Request

from .services.queue import JobQueueService
from .state import AppState
from .stores.job_log_store import JobLogStore
from .stores.job_store import JobStore
from .stores.series_store import SeriesStore


def get_app_state(request: Request) -> AppState:
    """Resolve the shared application state from the FastAPI request."""
    return request.app.state.app_state


def get_job_store(app_state: AppState = Depends(get_app_state)) -> JobStore:
    """Return the job store dependency."""
    return app_state.job_store


def get_job_log_store(app_state: AppState = Depends(get_app_state)) -> JobLogStore:
    """Return the job log store dependency."""
    return app_state.log_store


def get_series_store(app_state: AppState = Depends(get_app_state)) -> SeriesStore:
    """Return the catalog store dependency."""
    return app_state.series_store


def get_job_queue(app_state: AppState = Depends(get_app_state)) -> JobQueueService:
    """Return the Redis queue service dependency."""
    return app_state.job_queue
