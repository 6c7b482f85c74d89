"""Database helpers for the catalog service."""
from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, create_engine

from . import models  # noqa: F401 - register tables on the metadata
from .settings import CatalogSettings
from .utils.paths import ensure_sqlite_parent


def create_engine_from_settings(settings: CatalogSettings) -> Engine:
    """Create a SQLModel engine using catalog settings."""

    ensure_sqlite_parent(settings.database_url)
    connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
    return create_engine(settings.database_url, echo=settings.database_echo, connect_args=connect_args)


def init_database(engine: Engine) -> None:
    """Create tables that do not exist yet."""

    SQLModel.metadata.create_all(engine)


def ping_database(engine: Engine) -> str | None:
    """Run a trivial query and return the driver error message, if any."""

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return str(exc.__cause__ or exc)
    return None
