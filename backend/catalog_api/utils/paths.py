"""Filesystem helpers for catalog storage paths."""
from __future__ import annotations

from pathlib import Path

from platformdirs import user_data_dir


APP_NAME = "Mediadex"
APP_AUTHOR = "Mediadex"


def default_data_directory() -> str:
    """Return the platform-appropriate data directory for the catalog."""

    return str(Path(user_data_dir(APP_NAME, APP_AUTHOR)))


def default_database_url() -> str:
    """Return a SQLite URL pointing inside the platform data directory."""

    return f"sqlite:///{Path(default_data_directory()) / 'catalog.db'}"


def ensure_sqlite_parent(database_url: str) -> None:
    """Create parent directories when using a file-backed SQLite URL."""

    if database_url.startswith("sqlite:///"):
        path_part = database_url.removeprefix("sqlite:///").split("?")[0]
        if path_part and path_part != ":memory:":
            Path(path_part).expanduser().parent.mkdir(parents=True, exist_ok=True)
