"""Tests for the catalog upsert layer."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.catalog_api.stores.series_store import SeriesStore
from backend.importer.models import SeasonFields, SeriesFields


def _series(**overrides) -> SeriesFields:
    values = {
        "external_id": 38691,
        "title": "Dr. Stone",
        "cover_url": "https://img.example/dr-stone.jpg",
        "status": "Watching",
        "genres": "Adventure, Sci-Fi",
        "year": 2019,
        "added_by": "u1",
    }
    values.update(overrides)
    return SeriesFields(**values)


def test_upsert_series_creates_then_updates(series_store: SeriesStore) -> None:
    created = series_store.upsert_series(_series())
    updated = series_store.upsert_series(_series(status="Completed", added_by="u2"))

    assert created.created is True
    assert updated.created is False
    assert updated.id == created.id

    existing = series_store.find_series(38691)
    assert existing is not None
    assert existing.status == "Completed"
    assert existing.added_by == "u1"


def test_upsert_season_is_keyed_by_series_and_number(series_store: SeriesStore) -> None:
    series_id = series_store.upsert_series(_series()).id

    first = series_store.upsert_season(series_id, 1, SeasonFields(external_id=38691, title="Dr. Stone", episode_count=24))
    again = series_store.upsert_season(series_id, 1, SeasonFields(external_id=38691, title="Dr. Stone", episode_count=24))
    second = series_store.upsert_season(
        series_id, 2, SeasonFields(external_id=40852, title="Dr. Stone: Stone Wars", episode_count=11)
    )

    assert first == again
    assert second != first
    season = series_store.find_season(series_id, 2)
    assert season is not None
    assert season.title == "Dr. Stone: Stone Wars"
    assert series_store.find_season(series_id, 3) is None


def test_upsert_season_rejects_non_positive_numbers(series_store: SeriesStore) -> None:
    series_id = series_store.upsert_series(_series()).id

    with pytest.raises(ValueError):
        series_store.upsert_season(series_id, 0, SeasonFields(external_id=None, title="Specials"))


def test_watch_marks_are_one_second_apart(series_store: SeriesStore) -> None:
    series_id = series_store.upsert_series(_series()).id
    season_id = series_store.upsert_season(series_id, 1, SeasonFields(external_id=38691, title="Dr. Stone"))
    base = datetime(2024, 5, 1, 20, 0, 0, tzinfo=timezone.utc)

    stamps = series_store.mark_episodes_watched(season_id, "u1", 5, base_time=base)

    marks = series_store.watch_marks(season_id, "u1")
    assert [mark.episode_number for mark in marks] == [1, 2, 3, 4, 5]
    assert [mark.watched_at for mark in marks] == stamps
    assert all(later - earlier == timedelta(seconds=1) for earlier, later in zip(stamps, stamps[1:]))
    assert stamps[0] == base


def test_watch_marks_are_updated_in_place(series_store: SeriesStore) -> None:
    series_id = series_store.upsert_series(_series()).id
    season_id = series_store.upsert_season(series_id, 1, SeasonFields(external_id=38691, title="Dr. Stone"))

    series_store.mark_episodes_watched(season_id, "u1", 3, base_time=datetime(2024, 1, 1, tzinfo=timezone.utc))
    series_store.mark_episodes_watched(season_id, "u1", 4, base_time=datetime(2024, 2, 1, tzinfo=timezone.utc))
    series_store.mark_episodes_watched(season_id, "u2", 2, base_time=datetime(2024, 2, 1, tzinfo=timezone.utc))

    marks = series_store.watch_marks(season_id, "u1")
    assert len(marks) == 4
    assert marks[0].watched_at == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert series_store.mark_episodes_watched(season_id, "u1", 0) == []


def test_default_timestamps_are_stored_as_utc(series_store: SeriesStore) -> None:
    series_id = series_store.upsert_series(_series()).id
    series_store.upsert_series(_series(synopsis="Updated"))
    season_id = series_store.upsert_season(series_id, 1, SeasonFields(external_id=38691, title="Dr. Stone"))
    series_store.upsert_season(series_id, 1, SeasonFields(external_id=38691, title="Dr. Stone", episode_count=24))

    stamps = series_store.mark_episodes_watched(season_id, "u1", 2)

    marks = series_store.watch_marks(season_id, "u1")
    assert [mark.watched_at for mark in marks] == stamps
    assert all(mark.watched_at.utcoffset() == timedelta(0) for mark in marks)


def test_read_views_report_seasons_and_watch_counts(series_store: SeriesStore) -> None:
    series_id = series_store.upsert_series(_series()).id
    season_id = series_store.upsert_season(series_id, 1, SeasonFields(external_id=38691, title="Dr. Stone", episode_count=24))
    series_store.upsert_season(series_id, 2, SeasonFields(external_id=40852, title="Stone Wars", episode_count=11))
    series_store.upsert_series(_series(external_id=1, title="Cowboy Bebop", status="Completed", cover_url=""))
    series_store.mark_episodes_watched(season_id, "u1", 24, base_time=datetime(2024, 1, 1, tzinfo=timezone.utc))

    listing = series_store.list_series(sort="title_asc")
    assert listing.total == 2
    assert [item.title for item in listing.items] == ["Cowboy Bebop", "Dr. Stone"]
    assert listing.items[1].season_count == 2

    filtered = series_store.list_series(query="stone")
    assert [item.external_id for item in filtered.items] == [38691]

    detail = series_store.get_series(series_id, user_id="u1")
    assert detail is not None
    assert [season.watched_episodes for season in detail.seasons] == [24, 0]
    assert series_store.get_series(9999) is None

    metrics = series_store.metrics()
    assert metrics.series == 2
    assert metrics.seasons == 2
    assert metrics.watched_episodes == 24
    assert metrics.status_counts == {"Completed": 1, "Watching": 1}
    assert metrics.missing_cover == 1
