"""Shared fixtures for the catalog and import engine tests."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.catalog_api.db import create_engine_from_settings, init_database  # noqa: E402
from backend.catalog_api.settings import CatalogSettings  # noqa: E402
from backend.catalog_api.stores.series_store import SeriesStore  # noqa: E402
from backend.tests.factories import FakeClock, FakeProviderServer  # noqa: E402


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def provider_server() -> FakeProviderServer:
    return FakeProviderServer()


@pytest.fixture()
def engine(tmp_path: Path) -> Engine:
    """Engine bound to an isolated SQLite database with all tables created."""

    settings = CatalogSettings(database_url=f"sqlite:///{tmp_path / 'catalog.db'}", redis_url="fakeredis://")
    engine = create_engine_from_settings(settings)
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def series_store(engine: Engine) -> SeriesStore:
    return SeriesStore(engine)
