"""Series, season and watch-mark persistence used by the import pipeline."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Sequence

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from backend.importer.models import (
    ExistingSeason,
    ExistingSeries,
    SeasonFields,
    SeriesFields,
    UpsertOutcome,
)

from ..models import EpisodeWatchRecord, SeasonRecord, SeriesRecord, utcnow
from ..schemas import (
    LibraryMetricsModel,
    LibrarySortOption,
    SeasonModel,
    SeriesDetailModel,
    SeriesListModel,
    SeriesSummaryModel,
)

# Watch-marks are spaced by this much so episode order survives a single write.
WATCH_MARK_SPACING = timedelta(seconds=1)


@dataclass(slots=True)
class SeriesStore:
    """Upsert layer for catalog records plus the read views over them.

    Every write is idempotent: series are matched by external id, seasons by
    ``(series_id, season_number)`` and watch-marks by
    ``(season_id, user_id, episode_number)``.
    """

    engine: Engine

    # ------------------------------------------------------------------
    # Upserts

    def find_series(self, external_id: int) -> ExistingSeries | None:
        with Session(self.engine) as session:
            record = session.exec(
                select(SeriesRecord).where(SeriesRecord.external_id == external_id)
            ).first()
            return _to_existing_series(record) if record else None

    def upsert_series(self, fields: SeriesFields) -> UpsertOutcome:
        """Create the series for ``fields.external_id`` or update it in place."""

        values = asdict(fields)
        with Session(self.engine) as session:
            record = session.exec(
                select(SeriesRecord).where(SeriesRecord.external_id == fields.external_id)
            ).first()
            created = record is None
            if record is None:
                record = SeriesRecord(**values)
            else:
                for key, value in values.items():
                    if key == "added_by" and record.added_by:
                        continue
                    setattr(record, key, value)
                record.updated_at = utcnow()
            session.add(record)
            session.commit()
            session.refresh(record)
            return UpsertOutcome(id=record.id, created=created)

    def find_season(self, series_id: int, season_number: int) -> ExistingSeason | None:
        with Session(self.engine) as session:
            record = self._season(session, series_id, season_number)
            return _to_existing_season(record) if record else None

    def upsert_season(self, series_id: int, season_number: int, fields: SeasonFields) -> int:
        """Create or update the season numbered ``season_number`` of a series."""

        if season_number < 1:
            raise ValueError("season numbers start at 1")
        values = asdict(fields)
        with Session(self.engine) as session:
            record = self._season(session, series_id, season_number)
            if record is None:
                record = SeasonRecord(series_id=series_id, season_number=season_number, **values)
            else:
                for key, value in values.items():
                    setattr(record, key, value)
                record.updated_at = utcnow()
            session.add(record)
            session.commit()
            session.refresh(record)
            return record.id

    def mark_episodes_watched(
        self,
        season_id: int,
        user_id: str,
        count: int,
        *,
        base_time: datetime | None = None,
    ) -> list[datetime]:
        """Mark episodes ``1..count`` watched with strictly increasing timestamps."""

        if count <= 0:
            return []
        base = base_time or utcnow().replace(microsecond=0)
        stamps = [base + WATCH_MARK_SPACING * (number - 1) for number in range(1, count + 1)]

        with Session(self.engine) as session:
            existing = {
                mark.episode_number: mark
                for mark in session.exec(
                    select(EpisodeWatchRecord)
                    .where(EpisodeWatchRecord.season_id == season_id)
                    .where(EpisodeWatchRecord.user_id == user_id)
                    .where(EpisodeWatchRecord.episode_number <= count)
                )
            }
            for number, stamp in enumerate(stamps, start=1):
                mark = existing.get(number)
                if mark is None:
                    mark = EpisodeWatchRecord(
                        season_id=season_id,
                        user_id=user_id,
                        episode_number=number,
                        watched=True,
                        watched_at=stamp,
                    )
                else:
                    mark.watched = True
                    mark.watched_at = stamp
                session.add(mark)
            session.commit()
        return stamps

    @staticmethod
    def _season(session: Session, series_id: int, season_number: int) -> SeasonRecord | None:
        return session.exec(
            select(SeasonRecord)
            .where(SeasonRecord.series_id == series_id)
            .where(SeasonRecord.season_number == season_number)
        ).first()

    # ------------------------------------------------------------------
    # Read views

    def list_series(
        self,
        *,
        query: str | None = None,
        status: str | None = None,
        sort: LibrarySortOption = "updated_desc",
        page: int = 1,
        page_size: int = 25,
    ) -> SeriesListModel:
        """Return a paginated set of series matching the provided filters."""

        offset = (page - 1) * page_size
        filters = []
        if query:
            filters.append(func.lower(SeriesRecord.title).like(f"%{query.lower()}%"))
        if status:
            filters.append(func.lower(SeriesRecord.status) == status.lower())

        count_statement = select(func.count()).select_from(SeriesRecord)
        items_statement = select(SeriesRecord)
        for condition in filters:
            count_statement = count_statement.where(condition)
            items_statement = items_statement.where(condition)

        sort_orders: dict[LibrarySortOption, tuple[object, ...]] = {
            "updated_desc": (SeriesRecord.updated_at.desc(), SeriesRecord.id),
            "updated_asc": (SeriesRecord.updated_at.asc(), SeriesRecord.id),
            "title_asc": (func.lower(SeriesRecord.title).asc(), SeriesRecord.id),
            "title_desc": (func.lower(SeriesRecord.title).desc(), SeriesRecord.id),
            "year_desc": (SeriesRecord.year.desc().nullslast(), func.lower(SeriesRecord.title).asc()),
            "year_asc": (SeriesRecord.year.asc().nullslast(), func.lower(SeriesRecord.title).asc()),
        }
        items_statement = items_statement.order_by(*sort_orders.get(sort, sort_orders["updated_desc"]))
        items_statement = items_statement.offset(offset).limit(page_size)

        with Session(self.engine) as session:
            total = session.exec(count_statement).one()
            records: Sequence[SeriesRecord] = session.exec(items_statement).all()
            season_counts = self._season_counts(session, [record.id for record in records])
            items = [_to_summary(record, season_counts.get(record.id, 0)) for record in records]

        return SeriesListModel(items=items, total=total, page=page, page_size=page_size)

    def get_series(self, series_id: int, *, user_id: str | None = None) -> SeriesDetailModel | None:
        """Return a series with its seasons and, for ``user_id``, watched counts."""

        with Session(self.engine) as session:
            record = session.get(SeriesRecord, series_id)
            if record is None:
                return None
            seasons = session.exec(
                select(SeasonRecord)
                .where(SeasonRecord.series_id == series_id)
                .order_by(SeasonRecord.season_number.asc())
            ).all()

            watched: dict[int, int] = {}
            if user_id and seasons:
                rows = session.exec(
                    select(EpisodeWatchRecord.season_id, func.count())
                    .where(EpisodeWatchRecord.season_id.in_([season.id for season in seasons]))
                    .where(EpisodeWatchRecord.user_id == user_id)
                    .where(EpisodeWatchRecord.watched.is_(True))
                    .group_by(EpisodeWatchRecord.season_id)
                ).all()
                watched = {season_id: count for season_id, count in rows}

            season_models = [
                SeasonModel(
                    id=season.id,
                    season_number=season.season_number,
                    external_id=season.external_id,
                    title=season.title,
                    episode_count=season.episode_count,
                    year=season.year,
                    cover_url=season.cover_url,
                    watched_episodes=watched.get(season.id, 0) if user_id else None,
                )
                for season in seasons
            ]
            summary = _to_summary(record, len(season_models))
            return SeriesDetailModel(
                **summary.model_dump(),
                title_english=record.title_english,
                title_native=record.title_native,
                synopsis=record.synopsis,
                genres=record.genres,
                studios=record.studios,
                rating=record.rating,
                added_by=record.added_by,
                created_at=record.created_at,
                updated_at=record.updated_at,
                seasons=season_models,
            )

    def watch_marks(self, season_id: int, user_id: str) -> list[EpisodeWatchRecord]:
        """Return a user's watch-marks for a season ordered by episode number."""

        with Session(self.engine) as session:
            return list(
                session.exec(
                    select(EpisodeWatchRecord)
                    .where(EpisodeWatchRecord.season_id == season_id)
                    .where(EpisodeWatchRecord.user_id == user_id)
                    .order_by(EpisodeWatchRecord.episode_number.asc())
                ).all()
            )

    def metrics(self) -> LibraryMetricsModel:
        """Return aggregate statistics for the catalog."""

        with Session(self.engine) as session:
            series_total = session.exec(select(func.count()).select_from(SeriesRecord)).one()
            season_total = session.exec(select(func.count()).select_from(SeasonRecord)).one()
            watched_total = session.exec(select(func.count()).select_from(EpisodeWatchRecord)).one()
            status_rows = session.exec(
                select(SeriesRecord.status, func.count())
                .group_by(SeriesRecord.status)
                .order_by(SeriesRecord.status)
            ).all()
            missing_cover = session.exec(
                select(func.count()).select_from(SeriesRecord).where(SeriesRecord.cover_url == "")
            ).one()

        return LibraryMetricsModel(
            series=series_total,
            seasons=season_total,
            watched_episodes=watched_total,
            status_counts={status or "unknown": count for status, count in status_rows},
            missing_cover=missing_cover,
        )

    @staticmethod
    def _season_counts(session: Session, series_ids: list[int]) -> dict[int, int]:
        if not series_ids:
            return {}
        rows = session.exec(
            select(SeasonRecord.series_id, func.count())
            .where(SeasonRecord.series_id.in_(series_ids))
            .group_by(SeasonRecord.series_id)
        ).all()
        return {series_id: count for series_id, count in rows}


def _to_existing_series(record: SeriesRecord) -> ExistingSeries:
    return ExistingSeries(
        id=record.id,
        external_id=record.external_id,
        title=record.title,
        title_english=record.title_english,
        title_native=record.title_native,
        cover_url=record.cover_url,
        synopsis=record.synopsis,
        status=record.status,
        media_type=record.media_type,
        genres=record.genres,
        studios=record.studios,
        year=record.year,
        rating=record.rating,
        added_by=record.added_by,
    )


def _to_existing_season(record: SeasonRecord) -> ExistingSeason:
    return ExistingSeason(
        id=record.id,
        series_id=record.series_id,
        season_number=record.season_number,
        external_id=record.external_id,
        title=record.title,
        episode_count=record.episode_count,
        year=record.year,
        cover_url=record.cover_url,
    )


def _to_summary(record: SeriesRecord, season_count: int) -> SeriesSummaryModel:
    return SeriesSummaryModel(
        id=record.id,
        external_id=record.external_id,
        title=record.title,
        status=record.status,
        media_type=record.media_type,
        year=record.year,
        cover_url=record.cover_url,
        season_count=season_count,
    )
