"""
Batch scheduler for bulk catalog imports.

The whole job runs as one sequential task: parse, group, then for each group
fetch metadata from both providers, reconcile it with the catalog and persist
the series, its seasons and the watch-marks. Failures are isolated per group.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .errors import ImportCancelled, ImportSetupError
from .grouping import TitleNormalizer, group_entries
from .jobs import JobHandle, interruptible_sleep, raise_if_cancelled
from .models import (
    ImportFailure,
    ImportJob,
    ImportResult,
    ProviderFailure,
    SeriesGroup,
)
from .parser import parse_document
from .progress import NullSink, ProgressEvent, ProgressSink
from .providers import ProviderClient
from .ratelimit import Clock, SystemClock
from .reconcile import reconcile_season, reconcile_series
from .repository import CatalogRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ImportOptions:
    batch_size: int = 50
    cooldown_seconds: int = 30
    season_delay_seconds: float = 0.333
    group_delay_seconds: float = 0.5


def partition(groups: Sequence[SeriesGroup], size: int) -> list[list[SeriesGroup]]:
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(groups[index : index + size]) for index in range(0, len(groups), size)]


class GroupSkipped(Exception):
    """Raised inside group processing when the group cannot be imported."""

    def __init__(self, message: str, external_id: int | None = None) -> None:
        super().__init__(message)
        self.external_id = external_id


class ImportPipeline:
    """Drive an import job batch by batch, reporting progress to ``sink``."""

    def __init__(
        self,
        repository: CatalogRepository | None,
        providers: ProviderClient | None,
        *,
        sink: ProgressSink | None = None,
        clock: Clock | None = None,
        handle: JobHandle | None = None,
        options: ImportOptions | None = None,
        normalizer: TitleNormalizer | None = None,
    ) -> None:
        self._repository = repository
        self._providers = providers
        self._sink = sink or NullSink()
        self._clock = clock or SystemClock()
        self._handle = handle
        self._options = options or ImportOptions()
        self._normalizer = normalizer
        if providers is not None and handle is not None:
            providers.handle = handle

    # ------------------------------------------------------------------
    # Helpers

    def _emit(self, job: ImportJob, phase: str, **extra) -> None:
        self._sink.publish(
            ProgressEvent(
                phase=phase,  # type: ignore[arg-type]
                current_batch=job.current_batch,
                total_batches=job.total_batches,
                total=extra.pop("total", job.total_groups),
                imported=job.imported,
                updated=job.updated,
                errors=len(job.errors),
                **extra,
            )
        )

    def _wait(self, seconds: float) -> None:
        interruptible_sleep(self._clock, seconds, self._handle)

    def _result(self, job: ImportJob, total_entries: int) -> ImportResult:
        return ImportResult(
            total=total_entries,
            imported=job.imported,
            updated=job.updated,
            grouped=total_entries - job.total_groups,
            errors=list(job.errors),
        )

    # ------------------------------------------------------------------
    # Job driver

    def run(self, document: str, *, user_id: str | None) -> ImportResult:
        """Import ``document`` on behalf of ``user_id`` and return the summary."""

        if not user_id or not user_id.strip():
            raise ImportSetupError("An active user is required to import a watch history")
        if self._repository is None:
            raise ImportSetupError("No catalog storage is available")
        if self._providers is None:
            raise ImportSetupError("No metadata provider client is available")
        if not isinstance(document, str):
            raise ImportSetupError("Import document must be text")

        entries = parse_document(document)
        groups = group_entries(entries, self._normalizer)
        batches = partition(groups, self._options.batch_size)
        job = ImportJob(total_groups=len(groups), total_batches=len(batches))
        logger.info(
            "Importing %d entries as %d series in %d batches", len(entries), len(groups), len(batches)
        )

        try:
            for batch_index, batch in enumerate(batches):
                job.current_batch = batch_index + 1
                self._emit(job, "batch")

                for position, group in enumerate(batch):
                    raise_if_cancelled(self._handle)
                    current_index = batch_index * self._options.batch_size + position + 1
                    self._emit(job, "item", current_item_label=group.label, current_index=current_index)
                    self._process_group(job, group, user_id)
                    job.processed_groups += 1
                    self._wait(self._options.group_delay_seconds)

                if batch_index < len(batches) - 1:
                    self._cooldown(job)
        except ImportCancelled as exc:
            logger.warning("Import cancelled after %d/%d series", job.processed_groups, job.total_groups)
            raise ImportCancelled(str(exc), result=self._result(job, len(entries))) from exc

        result = self._result(job, len(entries))
        self._emit(job, "complete", total=len(entries))
        logger.info(
            "Import finished: %d imported, %d updated, %d errors",
            result.imported,
            result.updated,
            len(result.errors),
        )
        return result

    def _cooldown(self, job: ImportJob) -> None:
        logger.info("Pausing %ds before batch %d", self._options.cooldown_seconds, job.current_batch + 1)
        for remaining in range(self._options.cooldown_seconds, 0, -1):
            self._emit(job, "pause", remaining_pause_seconds=remaining)
            self._wait(1)

    # ------------------------------------------------------------------
    # Per-group processing

    def _process_group(self, job: ImportJob, group: SeriesGroup, user_id: str) -> None:
        first = group.entries[0] if group.entries else None
        try:
            self._import_group(job, group, user_id)
        except ImportCancelled:
            raise
        except GroupSkipped as exc:
            logger.warning("Skipped %s: %s", group.label, exc)
            job.errors.append(ImportFailure(label=group.display_title, error=str(exc), external_id=exc.external_id))
        except Exception as exc:
            logger.exception("Failed to import %s", group.label)
            job.errors.append(
                ImportFailure(
                    label=group.display_title or group.group_key,
                    error=str(exc) or exc.__class__.__name__,
                    external_id=first.external_id if first else None,
                )
            )

    def _import_group(self, job: ImportJob, group: SeriesGroup, user_id: str) -> None:
        repository, providers = self._repository, self._providers
        if repository is None or providers is None:
            raise ImportSetupError("Pipeline is missing its storage or provider client")
        if not group.entries:
            raise GroupSkipped("Group has no entries")
        first = group.first_entry
        if not group.display_title.strip():
            raise GroupSkipped("Missing title", first.external_id)

        primary = providers.fetch_primary(first.external_id)
        if isinstance(primary, ProviderFailure):
            raise GroupSkipped(primary.message, first.external_id)
        cover = providers.fetch_cover_art(first.external_id, group.display_title)

        existing = repository.find_series(first.external_id)
        fields = reconcile_series(existing, group, primary, cover, user_id=user_id)
        outcome = repository.upsert_series(fields)
        if outcome.created:
            job.imported += 1
        else:
            job.updated += 1

        for season_number, entry in enumerate(group.entries, start=1):
            season_primary = primary if entry is first else providers.fetch_primary(entry.external_id)
            if isinstance(season_primary, ProviderFailure):
                logger.warning(
                    "Season %d of %s keeps export data: %s", season_number, group.display_title, season_primary.message
                )
                season_primary = None
            season_cover = providers.fetch_cover_art(entry.external_id, entry.title)

            existing_season = repository.find_season(outcome.id, season_number)
            season_fields = reconcile_season(existing_season, entry, season_primary, season_cover)
            season_id = repository.upsert_season(outcome.id, season_number, season_fields)

            if entry.watched_units > 0:
                repository.mark_episodes_watched(
                    season_id, user_id, entry.watched_units, base_time=self._clock.now()
                )
            self._wait(self._options.season_delay_seconds)
