"""End-to-end tests for the batch import pipeline."""
from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest

from backend.catalog_api.stores.series_store import SeriesStore
from backend.importer import ImportCancelled, ImportOptions, ImportPipeline, ImportSetupError
from backend.importer.jobs import LocalJobHandle
from backend.importer.progress import CallbackSink, ProgressChannel, ProgressEvent
from backend.tests.factories import (
    CONNECTION_ERROR,
    FakeClock,
    FakeProviderServer,
    StaticProviders,
    anime_xml,
    export_document,
)

FAST = ImportOptions(batch_size=50, cooldown_seconds=0, season_delay_seconds=0, group_delay_seconds=0)


def _dr_stone_export() -> str:
    return export_document(
        [
            anime_xml(38691, "Dr. Stone", episodes=24, watched=24, status="Completed"),
            anime_xml(40852, "Dr. Stone: Stone Wars", episodes=11, watched=5, status="Watching"),
            anime_xml(1, "Cowboy Bebop", episodes=26, watched=0, status="Plan to Watch"),
        ]
    )


def _serve_dr_stone(server: FakeProviderServer) -> None:
    server.add(38691, "Dr. Stone", episodes=24, year=2019, cover="https://img.example/38691.jpg")
    server.add(40852, "Dr. Stone: Stone Wars", episodes=11, year=2021)
    server.add(1, "Cowboy Bebop", episodes=26, year=1998, cover="https://img.example/1.jpg")


def test_import_creates_series_seasons_and_watch_marks(
    clock: FakeClock, provider_server: FakeProviderServer, series_store: SeriesStore
) -> None:
    _serve_dr_stone(provider_server)
    events: list[ProgressEvent] = []

    with provider_server.client(clock) as providers:
        pipeline = ImportPipeline(series_store, providers, sink=CallbackSink(events.append), clock=clock, options=FAST)
        result = pipeline.run(_dr_stone_export(), user_id="u1")

    assert result.total == 3
    assert result.imported == 2
    assert result.updated == 0
    assert result.grouped == 1
    assert result.errors == []

    existing = series_store.find_series(38691)
    assert existing is not None
    assert existing.title == "Dr. Stone"
    assert existing.status == "Completed"
    assert existing.cover_url == "https://img.example/38691.jpg"
    detail = series_store.get_series(existing.id, user_id="u1")
    assert detail is not None
    assert [(season.season_number, season.episode_count, season.watched_episodes) for season in detail.seasons] == [
        (1, 24, 24),
        (2, 11, 5),
    ]
    assert events[-1].phase == "complete"
    assert events[-1].total == 3


def _catalog_snapshot(series_store: SeriesStore, user_id: str) -> list[dict[str, Any]]:
    """Every series with its seasons and watch-marks, minus the write timestamps."""

    snapshot = []
    for item in series_store.list_series(sort="title_asc").items:
        detail = series_store.get_series(item.id, user_id=user_id)
        assert detail is not None
        marks = [
            mark.model_dump(exclude={"watched_at"})
            for season in detail.seasons
            for mark in series_store.watch_marks(season.id, user_id)
        ]
        snapshot.append({"series": detail.model_dump(exclude={"updated_at"}), "marks": marks})
    return snapshot


def test_reimport_is_idempotent(
    clock: FakeClock, provider_server: FakeProviderServer, series_store: SeriesStore
) -> None:
    _serve_dr_stone(provider_server)
    document = _dr_stone_export()

    with provider_server.client(clock) as providers:
        pipeline = ImportPipeline(series_store, providers, clock=clock, options=FAST)
        pipeline.run(document, user_id="u1")
        before = series_store.metrics()
        catalog_before = _catalog_snapshot(series_store, "u1")
        second = pipeline.run(document, user_id="u1")

    assert second.imported == 0
    assert second.updated == 2
    assert series_store.metrics() == before
    assert _catalog_snapshot(series_store, "u1") == catalog_before
    assert [entry["series"]["title"] for entry in catalog_before] == ["Cowboy Bebop", "Dr. Stone"]
    series = series_store.find_series(38691)
    assert series is not None
    marks = series_store.watch_marks(series_store.find_season(series.id, 2).id, "u1")
    assert len(marks) == 5


def test_watch_marks_use_strictly_increasing_timestamps(
    clock: FakeClock, provider_server: FakeProviderServer, series_store: SeriesStore
) -> None:
    provider_server.add(5, "Mushishi", episodes=26)
    document = export_document([anime_xml(5, "Mushishi", episodes=26, watched=5)])

    with provider_server.client(clock) as providers:
        ImportPipeline(series_store, providers, clock=clock, options=FAST).run(document, user_id="u1")

    series = series_store.find_series(5)
    season = series_store.find_season(series.id, 1)
    stamps = [mark.watched_at for mark in series_store.watch_marks(season.id, "u1")]
    assert len(stamps) == 5
    assert all(later - earlier == timedelta(seconds=1) for earlier, later in zip(stamps, stamps[1:]))


def test_failing_group_does_not_stop_the_job(
    clock: FakeClock, provider_server: FakeProviderServer, series_store: SeriesStore
) -> None:
    provider_server.add(1, "Cowboy Bebop")
    provider_server.add(3, "Mushishi")
    provider_server.primary_status[2] = [CONNECTION_ERROR] * 3
    document = export_document(
        [anime_xml(1, "Cowboy Bebop"), anime_xml(2, "Trigun"), anime_xml(3, "Mushishi")]
    )

    with provider_server.client(clock) as providers:
        result = ImportPipeline(series_store, providers, clock=clock, options=FAST).run(document, user_id="u1")

    assert result.imported == 2
    assert len(result.errors) == 1
    failure = result.errors[0]
    assert failure.label == "Trigun"
    assert failure.external_id == 2
    assert "3 attempts" in failure.error
    assert series_store.find_series(2) is None
    assert series_store.find_series(3) is not None


def test_season_lookup_failure_keeps_export_data(
    clock: FakeClock, provider_server: FakeProviderServer, series_store: SeriesStore
) -> None:
    provider_server.add(38691, "Dr. Stone", episodes=24)
    document = export_document(
        [anime_xml(38691, "Dr. Stone", episodes=24), anime_xml(40852, "Dr. Stone: Stone Wars", episodes=11)]
    )

    with provider_server.client(clock) as providers:
        result = ImportPipeline(series_store, providers, clock=clock, options=FAST).run(document, user_id="u1")

    assert result.errors == []
    series = series_store.find_series(38691)
    season = series_store.find_season(series.id, 2)
    assert season is not None
    assert season.title == "Dr. Stone: Stone Wars"
    assert season.episode_count == 11


def test_each_entry_is_looked_up_once(clock: FakeClock, series_store: SeriesStore) -> None:
    providers = StaticProviders()

    result = ImportPipeline(series_store, providers, clock=clock, options=FAST).run(
        _dr_stone_export(), user_id="u1"
    )

    assert result.imported == 2
    assert providers.calls == [38691, 40852, 1]


def test_batches_are_separated_by_a_counted_down_cooldown(clock: FakeClock, series_store: SeriesStore) -> None:
    document = export_document(anime_xml(1000 + index, f"Series Number {index:03d} Alpha") for index in range(120))
    events: list[ProgressEvent] = []
    options = ImportOptions(batch_size=50, cooldown_seconds=30, season_delay_seconds=0, group_delay_seconds=0)

    pipeline = ImportPipeline(
        series_store, StaticProviders(), sink=CallbackSink(events.append), clock=clock, options=options
    )
    result = pipeline.run(document, user_id="u1")

    assert result.imported == 120
    batch_events = [event for event in events if event.phase == "batch"]
    assert [event.current_batch for event in batch_events] == [1, 2, 3]
    assert all(event.total_batches == 3 for event in batch_events)
    pauses = [event.remaining_pause_seconds for event in events if event.phase == "pause"]
    assert pauses == list(range(30, 0, -1)) * 2
    assert sum(clock.sleeps) == pytest.approx(60)


def test_progress_events_follow_the_job(clock: FakeClock, series_store: SeriesStore) -> None:
    document = export_document(
        [anime_xml(1, "Cowboy Bebop"), anime_xml(2, "Trigun"), anime_xml(3, "Mushishi")]
    )
    events: list[ProgressEvent] = []
    options = ImportOptions(batch_size=2, cooldown_seconds=2, season_delay_seconds=0, group_delay_seconds=0)

    ImportPipeline(
        series_store, StaticProviders(missing={2}), sink=CallbackSink(events.append), clock=clock, options=options
    ).run(document, user_id="u1")

    assert [(event.phase, event.current_batch) for event in events] == [
        ("batch", 1),
        ("item", 1),
        ("item", 1),
        ("pause", 1),
        ("pause", 1),
        ("batch", 2),
        ("item", 2),
        ("complete", 2),
    ]
    items = [event for event in events if event.phase == "item"]
    assert [event.current_index for event in items] == [1, 2, 3]
    assert items[0].current_item_label == "Cowboy Bebop (1 season)"
    assert items[2].errors == 1
    assert events[-1].imported == 2
    assert events[-1].errors == 1


def test_cancellation_returns_partial_result(
    clock: FakeClock, provider_server: FakeProviderServer, series_store: SeriesStore
) -> None:
    for external_id, title in ((1, "Cowboy Bebop"), (2, "Trigun"), (3, "Mushishi")):
        provider_server.add(external_id, title)
    document = export_document([anime_xml(1, "Cowboy Bebop"), anime_xml(2, "Trigun"), anime_xml(3, "Mushishi")])
    handle = LocalJobHandle()

    def cancel_on_second_item(event: ProgressEvent) -> None:
        if event.phase == "item" and event.current_index == 2:
            handle.cancel()

    with provider_server.client(clock) as providers:
        pipeline = ImportPipeline(
            series_store,
            providers,
            sink=CallbackSink(cancel_on_second_item),
            clock=clock,
            handle=handle,
            options=FAST,
        )
        with pytest.raises(ImportCancelled) as excinfo:
            pipeline.run(document, user_id="u1")

    partial = excinfo.value.result
    assert partial is not None
    assert partial.imported == 1
    assert partial.total == 3
    assert series_store.find_series(1) is not None
    assert series_store.find_series(2) is None
    assert provider_server.primary_calls(2) == 0


def test_cancellation_interrupts_the_cooldown(clock: FakeClock, series_store: SeriesStore) -> None:
    document = export_document([anime_xml(1, "Cowboy Bebop"), anime_xml(2, "Trigun")])
    handle = LocalJobHandle()
    options = ImportOptions(batch_size=1, cooldown_seconds=30, season_delay_seconds=0, group_delay_seconds=0)

    def cancel_during_pause(event: ProgressEvent) -> None:
        if event.phase == "pause" and event.remaining_pause_seconds == 28:
            handle.cancel()

    pipeline = ImportPipeline(
        series_store, StaticProviders(), sink=CallbackSink(cancel_during_pause), clock=clock, handle=handle, options=options
    )
    with pytest.raises(ImportCancelled) as excinfo:
        pipeline.run(document, user_id="u1")

    assert excinfo.value.result is not None
    assert excinfo.value.result.imported == 1
    assert sum(clock.sleeps) < 30


@pytest.mark.parametrize("user_id", [None, "", "   "])
def test_import_requires_a_user(series_store: SeriesStore, user_id: str | None) -> None:
    pipeline = ImportPipeline(series_store, StaticProviders(), options=FAST)

    with pytest.raises(ImportSetupError):
        pipeline.run(export_document([anime_xml(1, "Cowboy Bebop")]), user_id=user_id)


def test_import_requires_storage_and_providers(series_store: SeriesStore) -> None:
    with pytest.raises(ImportSetupError):
        ImportPipeline(None, StaticProviders(), options=FAST).run("", user_id="u1")
    with pytest.raises(ImportSetupError):
        ImportPipeline(series_store, None, options=FAST).run("", user_id="u1")


def test_empty_export_completes_immediately(clock: FakeClock, series_store: SeriesStore) -> None:
    channel = ProgressChannel()

    result = ImportPipeline(series_store, StaticProviders(), sink=channel, clock=clock, options=FAST).run(
        export_document([]), user_id="u1"
    )

    assert result.total == 0
    assert result.imported == 0
    events = list(channel)
    assert [event.phase for event in events] == ["complete"]


def test_progress_channel_drops_oldest_events_when_full() -> None:
    channel = ProgressChannel(maxsize=2)
    for index in range(1, 4):
        channel.publish(
            ProgressEvent(
                phase="item", current_batch=1, total_batches=1, total=3, imported=0, updated=0, errors=0,
                current_index=index,
            )
        )
    channel.close()

    received = [event.current_index for event in channel]

    assert channel.dropped == 2
    assert received == [3]
