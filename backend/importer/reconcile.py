"""Merge freshly fetched metadata into persisted catalog records."""
from __future__ import annotations

from typing import TypeVar

from .models import (
    CoverRecord,
    ExistingSeason,
    ExistingSeries,
    PrimaryRecord,
    RawEntry,
    SeasonFields,
    SeriesFields,
    SeriesGroup,
)

T = TypeVar("T")

STATUS_WATCHING = "Watching"
STATUS_COMPLETED = "Completed"
STATUS_ON_HOLD = "On hold"
STATUS_DROPPED = "Dropped"
STATUS_PLAN_TO_WATCH = "Plan to watch"

WATCH_STATUS_LABELS: dict[str, str] = {
    "watching": STATUS_WATCHING,
    "completed": STATUS_COMPLETED,
    "on-hold": STATUS_ON_HOLD,
    "dropped": STATUS_DROPPED,
    # Numeric codes used by older exports.
    "1": STATUS_WATCHING,
    "2": STATUS_COMPLETED,
    "3": STATUS_ON_HOLD,
    "4": STATUS_DROPPED,
}


def translate_status(raw_status: str | None) -> str:
    """Map an export status code to its display label."""

    if not raw_status:
        return STATUS_PLAN_TO_WATCH
    key = "-".join(raw_status.strip().lower().replace("_", " ").split())
    return WATCH_STATUS_LABELS.get(key, STATUS_PLAN_TO_WATCH)


def is_empty(value: object) -> bool:
    return value is None or value == "" or value == () or value == []


def prefer(fetched: T | None, existing: T | None) -> T | None:
    """Return ``fetched`` unless it is empty, in which case keep ``existing``."""

    return existing if is_empty(fetched) else fetched


def max_count(*values: int | None) -> int:
    return max((value for value in values if value is not None), default=0)


def extract_year(primary: PrimaryRecord | None) -> int | None:
    if primary is None:
        return None
    if primary.year:
        return primary.year
    if primary.aired_from is not None:
        return primary.aired_from.year
    return None


def select_cover(cover: CoverRecord | None, primary: PrimaryRecord | None) -> str:
    """Best AniList variant, falling back to the Jikan image."""

    if cover is not None and cover.best:
        return cover.best
    if primary is not None:
        return primary.image_url
    return ""


def reconcile_series(
    existing: ExistingSeries | None,
    group: SeriesGroup,
    primary: PrimaryRecord,
    cover: CoverRecord | None,
    *,
    user_id: str | None = None,
) -> SeriesFields:
    """Build the series write set for ``group``.

    Identity fields come from the group (display title) and its first entry
    (external id); the provider title may carry a season suffix.
    """

    first = group.first_entry
    current = existing or ExistingSeries(id=0, external_id=first.external_id)

    return SeriesFields(
        external_id=first.external_id,
        title=group.display_title,
        title_english=prefer(primary.title_english, current.title_english) or group.display_title,
        title_native=prefer(primary.title_native, current.title_native) or "",
        cover_url=prefer(select_cover(cover, primary), current.cover_url) or "",
        synopsis=prefer(primary.synopsis, current.synopsis) or "",
        status=translate_status(first.status),
        media_type=prefer(primary.media_type, current.media_type) or first.media_type,
        genres=prefer(", ".join(primary.genres), current.genres) or "",
        studios=prefer(", ".join(primary.studios), current.studios) or "",
        year=prefer(extract_year(primary), current.year),
        rating=prefer(primary.classification, current.rating) or "",
        added_by=current.added_by or user_id,
    )


def real_unit_count(entry: RawEntry, primary: PrimaryRecord | None) -> int:
    """Episode count trusted for a season: the larger of export and provider."""

    return max_count(entry.total_units, primary.episodes if primary else None)


def reconcile_season(
    existing: ExistingSeason | None,
    entry: RawEntry,
    primary: PrimaryRecord | None,
    cover: CoverRecord | None,
) -> SeasonFields:
    """Build the season write set for one entry of a group."""

    fetched_title = primary.title if primary else ""
    return SeasonFields(
        external_id=entry.external_id,
        title=fetched_title or entry.title,
        episode_count=max_count(real_unit_count(entry, primary), existing.episode_count if existing else None),
        year=prefer(extract_year(primary), existing.year if existing else None),
        cover_url=prefer(select_cover(cover, primary), existing.cover_url if existing else "") or "",
    )
