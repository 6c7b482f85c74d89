"""Pydantic models exposed by the catalog API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ComponentHealth(BaseModel):
    """Connectivity status of a backing service."""

    status: Literal["ok", "error"] = Field(default="ok")
    detail: str | None = Field(
        default=None, description="Optional diagnostic message when the component is unavailable."
    )


class HealthStatus(BaseModel):
    """Service health payload."""

    status: Literal["ok", "degraded"] = Field(default="ok")
    version: str = Field(default="0.1.0", description="Semantic version of the API service.")
    queue: ComponentHealth = Field(
        default_factory=ComponentHealth,
        description="Health information for the import job queue.",
    )
    database: ComponentHealth = Field(
        default_factory=ComponentHealth,
        description="Health information for the catalog database.",
    )


JobStatus = Literal["queued", "running", "completed", "failed", "cancelled"]


class ImportProgressModel(BaseModel):
    """Progress event emitted by a running import."""

    phase: Literal["batch", "item", "pause", "complete"]
    current_batch: int = 0
    total_batches: int = 0
    total: int = 0
    imported: int = 0
    updated: int = 0
    errors: int = 0
    current_item_label: str | None = None
    current_index: int | None = None
    remaining_pause_seconds: int | None = None


class ImportErrorModel(BaseModel):
    label: str
    external_id: int | None = None
    error: str


class ImportResultModel(BaseModel):
    """Final summary of an import job."""

    total: int = Field(description="Number of valid entries read from the export.")
    imported: int = Field(description="Series created by this import.")
    updated: int = Field(description="Series that already existed and were refreshed.")
    grouped: int = Field(
        description="Entries folded into an existing group as an additional season."
    )
    errors: list[ImportErrorModel] = Field(default_factory=list)


class JobModel(BaseModel):
    """Represents a background job."""

    id: str
    type: str
    status: JobStatus
    progress: float = Field(ge=0, le=1)
    worker_id: str | None = Field(
        default=None, description="Identifier for the worker processing the job."
    )
    payload: dict[str, Any] | None = Field(
        default=None, description="Optional JSON payload forwarded to the runner."
    )
    last_event: ImportProgressModel | None = Field(
        default=None, description="Most recent progress event reported by the job."
    )
    result: ImportResultModel | None = Field(
        default=None, description="Import summary once the job has finished or been cancelled."
    )
    created_at: datetime = Field(
        description="Timestamp when the job record was created."
    )
    updated_at: datetime = Field(
        description="Timestamp when the job record was last updated."
    )
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_message: str | None = None
    duration_seconds: float | None = Field(
        default=None,
        description="Execution duration calculated from started and finished timestamps.",
    )


class JobMetricsModel(BaseModel):
    """Aggregate statistics for background job processing."""

    total: int = Field(description="Total number of job records persisted in the store.")
    status_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Count of jobs grouped by current status.",
    )
    type_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Count of jobs grouped by job type identifier.",
    )
    average_duration_seconds: float | None = Field(
        default=None,
        description="Average duration in seconds for jobs with both start and finish timestamps.",
    )
    last_finished_at: datetime | None = Field(
        default=None,
        description="Timestamp of the most recently finished job regardless of outcome.",
    )
    queue_depth: int = Field(
        default=0,
        description="Number of jobs currently waiting in the Redis queue.",
    )


class JobLogCreate(BaseModel):
    """Payload used to append a new job log entry."""

    level: Literal["debug", "info", "warning", "error"] = Field(
        default="info", description="Severity level of the log entry."
    )
    message: str = Field(..., description="Human-readable log message.")
    context: dict[str, Any] | None = Field(
        default=None,
        description="Optional structured context payload for the log entry.",
    )


class JobLogModel(JobLogCreate):
    """Represents a persisted job log entry."""

    id: int
    job_id: str
    created_at: datetime


class JobCancelRequest(BaseModel):
    """Payload used when cancelling a job."""

    reason: str | None = Field(
        default=None, description="Optional reason recorded with the cancellation."
    )


class ImportRequest(BaseModel):
    """Payload used to start a watch-history import."""

    document: str = Field(..., min_length=1, description="Raw text of the XML watch-history export.")
    user_id: str = Field(..., min_length=1, description="User the watch-marks are recorded for.")
    filename: str | None = Field(default=None, description="Original file name, kept for job listings.")
    overrides: dict[str, str] = Field(
        default_factory=dict,
        description="Exact export titles mapped to the series title they should be grouped under.",
    )


class ImportPreviewRequest(BaseModel):
    document: str = Field(..., description="Raw text of the XML watch-history export.")
    overrides: dict[str, str] = Field(default_factory=dict)


class PreviewEntryModel(BaseModel):
    season_number: int
    external_id: int
    title: str
    total_units: int
    watched_units: int


class PreviewGroupModel(BaseModel):
    group_key: str
    display_title: str
    entries: list[PreviewEntryModel]


class ImportPreviewModel(BaseModel):
    """Grouping outcome computed without contacting any provider."""

    total: int
    grouped: int
    groups: list[PreviewGroupModel]


class SeasonModel(BaseModel):
    id: int
    season_number: int
    external_id: int | None = None
    title: str
    episode_count: int
    year: int | None = None
    cover_url: str = ""
    watched_episodes: int | None = Field(
        default=None, description="Episodes marked watched by the requested user."
    )


class SeriesSummaryModel(BaseModel):
    """Series row as listed in the library."""

    id: int
    external_id: int
    title: str
    status: str
    media_type: str = ""
    year: int | None = None
    cover_url: str = ""
    season_count: int = 0


class SeriesDetailModel(SeriesSummaryModel):
    title_english: str = ""
    title_native: str = ""
    synopsis: str = ""
    genres: str = ""
    studios: str = ""
    rating: str = ""
    added_by: str | None = None
    created_at: datetime
    updated_at: datetime
    seasons: list[SeasonModel] = Field(default_factory=list)


class SeriesListModel(BaseModel):
    """Paginated list container for library responses."""

    items: list[SeriesSummaryModel]
    total: int
    page: int
    page_size: int


LibrarySortOption = Literal[
    "updated_desc",
    "updated_asc",
    "title_asc",
    "title_desc",
    "year_desc",
    "year_asc",
]


class LibraryMetricsModel(BaseModel):
    """Aggregate statistics for the catalog."""

    series: int = Field(description="Total number of series in the catalog.")
    seasons: int = Field(description="Total number of seasons across all series.")
    watched_episodes: int = Field(description="Total watch-marks across users.")
    status_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Breakdown of series per watch status label.",
    )
    missing_cover: int = Field(description="Series without a cover image.")
