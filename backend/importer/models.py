"""Value objects shared by the import engine stages."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Literal


@dataclass(frozen=True, slots=True)
class RawEntry:
    """A single entry read from a watch-history export."""

    external_id: int
    title: str
    total_units: int = 0
    watched_units: int = 0
    group_id: str | None = None
    status: str = ""
    media_type: str = "TV"


@dataclass(frozen=True, slots=True)
class SeriesGroup:
    """Entries believed to be seasons of the same series, in season order."""

    group_key: str
    display_title: str
    entries: tuple[RawEntry, ...]

    @property
    def first_entry(self) -> RawEntry:
        return self.entries[0]

    @property
    def label(self) -> str:
        count = len(self.entries)
        return f"{self.display_title} ({count} season{'s' if count > 1 else ''})"


@dataclass(frozen=True, slots=True)
class PrimaryRecord:
    """Descriptive metadata returned by the primary provider."""

    external_id: int
    title: str = ""
    title_english: str = ""
    title_native: str = ""
    synopsis: str = ""
    media_type: str = ""
    classification: str = ""
    airing_status: str = ""
    genres: tuple[str, ...] = ()
    studios: tuple[str, ...] = ()
    year: int | None = None
    aired_from: date | None = None
    episodes: int | None = None
    image_url: str = ""


@dataclass(frozen=True, slots=True)
class CoverRecord:
    """Cover art variants ordered by resolution, highest first."""

    urls: tuple[str, ...] = ()

    @property
    def best(self) -> str:
        return self.urls[0] if self.urls else ""


FailureKind = Literal["network", "rate_limited", "http", "invalid_payload"]


@dataclass(frozen=True, slots=True)
class ProviderFailure:
    """Typed failure surfaced by the provider client instead of an exception."""

    kind: FailureKind
    message: str
    status_code: int | None = None
    attempts: int = 1


@dataclass(slots=True)
class SeriesFields:
    """Reconciled column values for a persisted series."""

    external_id: int
    title: str
    title_english: str = ""
    title_native: str = ""
    cover_url: str = ""
    synopsis: str = ""
    status: str = ""
    media_type: str = ""
    genres: str = ""
    studios: str = ""
    year: int | None = None
    rating: str = ""
    added_by: str | None = None


@dataclass(slots=True)
class SeasonFields:
    """Reconciled column values for a persisted season."""

    external_id: int | None
    title: str
    episode_count: int = 0
    year: int | None = None
    cover_url: str = ""


@dataclass(slots=True)
class ExistingSeries:
    """Snapshot of a persisted series handed to the reconciliation engine."""

    id: int
    external_id: int
    title: str = ""
    title_english: str = ""
    title_native: str = ""
    cover_url: str = ""
    synopsis: str = ""
    status: str = ""
    media_type: str = ""
    genres: str = ""
    studios: str = ""
    year: int | None = None
    rating: str = ""
    added_by: str | None = None


@dataclass(slots=True)
class ExistingSeason:
    """Snapshot of a persisted season."""

    id: int
    series_id: int
    season_number: int
    external_id: int | None = None
    title: str = ""
    episode_count: int = 0
    year: int | None = None
    cover_url: str = ""


@dataclass(frozen=True, slots=True)
class UpsertOutcome:
    id: int
    created: bool


@dataclass(frozen=True, slots=True)
class ImportFailure:
    """Per-group error accumulated while the job keeps going."""

    label: str
    error: str
    external_id: int | None = None


@dataclass(slots=True)
class ImportJob:
    """Mutable counters for a running import."""

    total_groups: int
    total_batches: int
    processed_groups: int = 0
    imported: int = 0
    updated: int = 0
    current_batch: int = 0
    errors: list[ImportFailure] = field(default_factory=list)


@dataclass(slots=True)
class ImportResult:
    """Summary returned to the caller once the job finishes."""

    total: int
    imported: int
    updated: int
    grouped: int
    errors: list[ImportFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
