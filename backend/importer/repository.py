"""Persistence interface the pipeline writes through."""
from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .models import ExistingSeason, ExistingSeries, SeasonFields, SeriesFields, UpsertOutcome


class CatalogRepository(Protocol):
    def find_series(self, external_id: int) -> ExistingSeries | None: ...

    def upsert_series(self, fields: SeriesFields) -> UpsertOutcome: ...

    def find_season(self, series_id: int, season_number: int) -> ExistingSeason | None: ...

    def upsert_season(self, series_id: int, season_number: int, fields: SeasonFields) -> int: ...

    def mark_episodes_watched(
        self, season_id: int, user_id: str, count: int, *, base_time: datetime
    ) -> list[datetime]: ...
