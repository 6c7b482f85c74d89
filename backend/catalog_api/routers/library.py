"""Library endpoints for inspecting imported series."""
from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_series_store
from ..schemas import (
    LibraryMetricsModel,
    LibrarySortOption,
    SeriesDetailModel,
    SeriesListModel,
)
from ..stores.series_store import SeriesStore

router = APIRouter(prefix="/library", tags=["library"])


@router.get("/series", response_model=SeriesListModel)
def list_series(
    query: str | None = Query(default=None, description="Optional title search term."),
    status: str | None = Query(
        default=None,
        description="Filter results by watch status label, e.g. Completed.",
    ),
    sort: LibrarySortOption = Query(
        default="updated_desc",
        description="Sort ordering applied to the returned series.",
    ),
    page: int = Query(default=1, ge=1, description="Page number starting at 1."),
    page_size: int = Query(
        default=25,
        ge=1,
        le=100,
        description="Number of series to return per page.",
    ),
    store: SeriesStore = Depends(get_series_store),
) -> SeriesListModel:
    """Return paginated series matching the provided filters."""

    return store.list_series(query=query, status=status, sort=sort, page=page, page_size=page_size)


@router.get("/metrics", response_model=LibraryMetricsModel)
def library_metrics(store: SeriesStore = Depends(get_series_store)) -> LibraryMetricsModel:
    """Return aggregate catalog statistics."""

    return store.metrics()


@router.get("/series/{series_id}", response_model=SeriesDetailModel)
def get_series(
    series_id: int,
    user_id: str | None = Query(
        default=None,
        description="Include per-season watched episode counts for this user.",
    ),
    store: SeriesStore = Depends(get_series_store),
) -> SeriesDetailModel:
    """Return a series with its seasons, raising when missing."""

    series = store.get_series(series_id, user_id=user_id)
    if series is None:
        raise HTTPException(status_code=404, detail="Series not found")
    return series
