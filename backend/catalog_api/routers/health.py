"""Liveness endpoint covering the queue and the catalog database."""
from fastapi import APIRouter, Depends

from ..db import ping_database
from ..dependencies import get_app_state
from ..schemas import ComponentHealth, HealthStatus
from ..state import AppState

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthStatus)
def get_health(app_state: AppState = Depends(get_app_state)) -> HealthStatus:
    """Report whether imports can be queued and the catalog can be read."""

    queue = ComponentHealth()
    if not app_state.job_queue.ping():
        queue = ComponentHealth(status="error", detail="queue_unreachable")

    database = ComponentHealth()
    failure = ping_database(app_state.engine)
    if failure is not None:
        database = ComponentHealth(status="error", detail=failure)

    degraded = "error" in (queue.status, database.status)
    return HealthStatus(status="degraded" if degraded else "ok", queue=queue, database=database)
