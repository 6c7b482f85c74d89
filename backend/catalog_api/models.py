"""Database models for the catalog service."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp; naive values are rejected on write."""

    return datetime.now(timezone.utc)


class JobRecord(SQLModel, table=True):
    """Background job metadata persisted for orchestration."""

    __tablename__ = "mediadex_jobs"

    id: str = Field(primary_key=True, index=True)
    type: str = Field(index=True)
    status: str = Field(default="queued", index=True)
    progress: float = Field(default=0.0)
    worker_id: str | None = Field(default=None, index=True)
    payload: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    last_event: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    result: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    started_at: datetime | None = Field(default=None, index=True)
    finished_at: datetime | None = Field(default=None, index=True)
    error_message: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)


class JobLogRecord(SQLModel, table=True):
    """Structured log event associated with a job."""

    __tablename__ = "mediadex_job_logs"

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(index=True)
    level: str = Field(default="info", index=True)
    message: str
    context: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    created_at: datetime = Field(default_factory=utcnow, index=True)


class SeriesRecord(SQLModel, table=True):
    """A series in the catalog, keyed by the primary provider id."""

    __tablename__ = "catalog_series"

    id: int | None = Field(default=None, primary_key=True)
    external_id: int = Field(index=True, unique=True)
    title: str = Field(index=True)
    title_english: str = Field(default="")
    title_native: str = Field(default="")
    cover_url: str = Field(default="")
    synopsis: str = Field(default="")
    status: str = Field(default="", index=True)
    media_type: str = Field(default="")
    genres: str = Field(default="")
    studios: str = Field(default="")
    year: int | None = Field(default=None, index=True)
    rating: str = Field(default="")
    added_by: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)


class SeasonRecord(SQLModel, table=True):
    """A season belonging to exactly one series."""

    __tablename__ = "catalog_seasons"
    __table_args__ = (UniqueConstraint("series_id", "season_number", name="uq_season_number"),)

    id: int | None = Field(default=None, primary_key=True)
    series_id: int = Field(foreign_key="catalog_series.id", index=True)
    season_number: int
    external_id: int | None = Field(default=None, index=True)
    title: str = Field(default="")
    episode_count: int = Field(default=0)
    year: int | None = Field(default=None)
    cover_url: str = Field(default="")
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)


class EpisodeWatchRecord(SQLModel, table=True):
    """A user's watch-mark for one episode of a season."""

    __tablename__ = "catalog_episode_watches"
    __table_args__ = (
        UniqueConstraint("season_id", "user_id", "episode_number", name="uq_episode_watch"),
    )

    id: int | None = Field(default=None, primary_key=True)
    season_id: int = Field(foreign_key="catalog_seasons.id", index=True)
    user_id: str = Field(index=True)
    episode_number: int
    watched: bool = Field(default=True)
    watched_at: datetime = Field(nullable=False)
