"""Command line interface for the Mediadex catalog API."""
from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, List, Optional

import httpx
import typer

from .client import create_client


DEFAULT_API_BASE = "http://localhost:8000"

app = typer.Typer(help="Interact with the Mediadex catalog service.")
imports_app = typer.Typer(help="Submit and follow watch-history imports.")
app.add_typer(imports_app, name="imports")
jobs_app = typer.Typer(help="Inspect and cancel background jobs.")
app.add_typer(jobs_app, name="jobs")
library_app = typer.Typer(help="Browse imported series.")
app.add_typer(library_app, name="library")


JOB_STATUS_CHOICES = {"queued", "running", "completed", "failed", "cancelled"}
TERMINAL_STATUSES = {"completed", "failed", "cancelled"}
LOG_LEVEL_CHOICES = {"debug", "info", "warning", "error"}
LIBRARY_SORT_CHOICES = ("updated_desc", "updated_asc", "title_asc", "title_desc", "year_desc", "year_asc")


def _api_base_option() -> typer.Option:
    return typer.Option(
        DEFAULT_API_BASE,
        "--api-base",
        help="Base URL for the catalog API service.",
        show_default=True,
        envvar="MEDIADEX_API_BASE",
    )


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _read_document(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        typer.echo(f"Unable to read {path}: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _parse_overrides(values: Optional[List[str]]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for value in values or []:
        title, separator, series = value.partition("=")
        if not separator or not title.strip() or not series.strip():
            typer.echo(f"Invalid override {value!r}, expected TITLE=SERIES", err=True)
            raise typer.Exit(code=1)
        overrides[title.strip()] = series.strip()
    return overrides


def _exit_if_missing(response: httpx.Response, message: str) -> None:
    if response.status_code == 404:
        typer.echo(message, err=True)
        raise typer.Exit(code=1)


def _format_event(event: dict[str, Any]) -> str:
    phase = event.get("phase")
    counters = (
        f"imported={event.get('imported', 0)} updated={event.get('updated', 0)} "
        f"errors={event.get('errors', 0)}"
    )
    if phase == "batch":
        return f"batch {event.get('current_batch')}/{event.get('total_batches')} {counters}"
    if phase == "item":
        return (
            f"[{event.get('current_index')}/{event.get('total')}] "
            f"{event.get('current_item_label')} {counters}"
        )
    if phase == "pause":
        return f"pausing {event.get('remaining_pause_seconds')}s before next batch"
    return f"complete: {event.get('total')} entries {counters}"


@app.command()
def health(api_base: str = _api_base_option()) -> None:
    """Print queue and database health; exit non-zero when degraded."""

    with create_client(api_base) as client:
        response = client.get("/health")
        response.raise_for_status()
        payload = response.json()
        _echo_json(payload)
        if payload.get("status") != "ok":
            raise typer.Exit(code=1)


@imports_app.command("submit")
def submit_import(
    path: Path = typer.Argument(..., help="Path to the XML watch-history export."),
    user_id: str = typer.Option(..., "--user", help="User the watch-marks are recorded for."),
    overrides: Optional[List[str]] = typer.Option(
        None,
        "--override",
        help="Group an export title under a series title, as TITLE=SERIES (repeat the flag).",
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Queue an import of an export file."""

    payload: dict[str, object] = {
        "document": _read_document(path),
        "user_id": user_id,
        "filename": path.name,
        "overrides": _parse_overrides(overrides),
    }

    with create_client(api_base) as client:
        response = client.post("/imports", json=payload)
        if response.status_code == 409:
            detail = response.json().get("detail", {})
            typer.echo(
                f"Another import is already running ({detail.get('active_job_id', 'unknown')})",
                err=True,
            )
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@imports_app.command("preview")
def preview_import(
    path: Path = typer.Argument(..., help="Path to the XML watch-history export."),
    overrides: Optional[List[str]] = typer.Option(
        None,
        "--override",
        help="Group an export title under a series title, as TITLE=SERIES (repeat the flag).",
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Show how an export would be grouped into series, without importing it."""

    payload = {"document": _read_document(path), "overrides": _parse_overrides(overrides)}
    with create_client(api_base) as client:
        response = client.post("/imports/preview", json=payload)
        response.raise_for_status()
        _echo_json(response.json())


@imports_app.command("status")
def import_status(
    job_id: str = typer.Argument(..., help="Identifier of the import job."),
    api_base: str = _api_base_option(),
) -> None:
    """Display the latest progress event of an import."""

    with create_client(api_base) as client:
        response = client.get(f"/imports/{job_id}/progress")
        _exit_if_missing(response, "No progress available for this import")
        response.raise_for_status()
        _echo_json(response.json())


@imports_app.command("result")
def import_result(
    job_id: str = typer.Argument(..., help="Identifier of the import job."),
    api_base: str = _api_base_option(),
) -> None:
    """Display the summary of a finished import."""

    with create_client(api_base) as client:
        response = client.get(f"/imports/{job_id}/result")
        _exit_if_missing(response, "No result available for this import")
        if response.status_code == 409:
            typer.echo("Import has not finished yet", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@imports_app.command("watch")
def watch_import(
    job_id: str = typer.Argument(..., help="Identifier of the import job."),
    interval: float = typer.Option(2.0, min=0.1, help="Seconds between polls."),
    api_base: str = _api_base_option(),
) -> None:
    """Follow an import until it finishes, printing each new progress event."""

    last_printed: dict[str, Any] | None = None
    with create_client(api_base) as client:
        while True:
            response = client.get(f"/jobs/{job_id}")
            _exit_if_missing(response, "Job not found")
            response.raise_for_status()
            job = response.json()

            event = job.get("last_event")
            if event and event != last_printed:
                typer.echo(_format_event(event))
                last_printed = event

            if job["status"] in TERMINAL_STATUSES:
                typer.echo(f"Job {job['status']}")
                if job.get("result"):
                    _echo_json(job["result"])
                if job["status"] == "failed":
                    if job.get("error_message"):
                        typer.echo(job["error_message"], err=True)
                    raise typer.Exit(code=1)
                return
            time.sleep(interval)


@jobs_app.command("list")
def list_jobs(
    limit: int = typer.Option(10, min=1, max=100, help="Number of recent jobs to display."),
    statuses: Optional[List[str]] = typer.Option(
        None,
        "--status",
        help="Filter results to specific job statuses (repeat the flag).",
    ),
    job_type: Optional[str] = typer.Option(
        None,
        "--type",
        help="Filter results to a specific job type.",
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Display recent jobs."""

    params: dict[str, object] = {"limit": limit}
    if statuses:
        normalized_statuses: list[str] = []
        for status in statuses:
            value = status.lower()
            if value not in JOB_STATUS_CHOICES:
                typer.echo(
                    "Invalid status value. Allowed values: "
                    + ", ".join(sorted(JOB_STATUS_CHOICES)),
                    err=True,
                )
                raise typer.Exit(code=1)
            normalized_statuses.append(value)
        params["status"] = normalized_statuses
    if job_type:
        params["type"] = job_type

    with create_client(api_base) as client:
        response = client.get("/jobs", params=params)
        response.raise_for_status()
        _echo_json(response.json())


@jobs_app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Identifier of the job to display."),
    api_base: str = _api_base_option(),
) -> None:
    """Display details for a single job."""

    with create_client(api_base) as client:
        response = client.get(f"/jobs/{job_id}")
        _exit_if_missing(response, "Job not found")
        response.raise_for_status()
        _echo_json(response.json())


@jobs_app.command("cancel")
def cancel_job(
    job_id: str = typer.Argument(..., help="Identifier of the job to cancel."),
    reason: Optional[str] = typer.Option(
        None,
        "--reason",
        help="Optional reason recorded with the cancellation.",
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Cancel a queued or running job."""

    with create_client(api_base) as client:
        if reason is None:
            response = client.post(f"/jobs/{job_id}/cancel")
        else:
            response = client.post(f"/jobs/{job_id}/cancel", json={"reason": reason})
        _exit_if_missing(response, "Job not found")
        if response.status_code == 409:
            typer.echo(response.json().get("detail", "Job is not active"), err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@jobs_app.command("logs")
def job_logs(
    job_id: str = typer.Argument(..., help="Identifier of the job to inspect."),
    limit: int = typer.Option(50, min=1, max=500, help="Maximum number of log entries."),
    level: Optional[str] = typer.Option(
        None, help="Only show entries of this level (debug, info, warning or error)."
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Display persisted log events for a job."""

    params: dict[str, object] = {"limit": limit}
    if level:
        value = level.lower()
        if value not in LOG_LEVEL_CHOICES:
            typer.echo(
                "Invalid level. Allowed values: " + ", ".join(sorted(LOG_LEVEL_CHOICES)),
                err=True,
            )
            raise typer.Exit(code=1)
        params["level"] = value
    with create_client(api_base) as client:
        response = client.get(f"/jobs/{job_id}/logs", params=params)
        _exit_if_missing(response, "Job not found")
        response.raise_for_status()
        _echo_json(response.json())


@jobs_app.command("metrics")
def job_metrics(api_base: str = _api_base_option()) -> None:
    """Display aggregate job statistics and queue depth."""

    with create_client(api_base) as client:
        response = client.get("/jobs/metrics")
        response.raise_for_status()
        _echo_json(response.json())


@library_app.command("list")
def list_library(
    page: int = typer.Option(1, min=1, help="Page number starting at 1."),
    page_size: int = typer.Option(25, min=1, max=100, help="Number of series per page."),
    query: Optional[str] = typer.Option(None, help="Optional title search term."),
    status: Optional[str] = typer.Option(None, help="Filter by watch status label."),
    sort: str = typer.Option(
        "updated_desc",
        help="Sort ordering applied to results: " + ", ".join(LIBRARY_SORT_CHOICES) + ".",
        show_default=True,
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Display imported series."""

    if sort not in LIBRARY_SORT_CHOICES:
        typer.echo("Invalid sort value. Allowed values: " + ", ".join(LIBRARY_SORT_CHOICES), err=True)
        raise typer.Exit(code=1)

    params: dict[str, object] = {"page": page, "page_size": page_size, "sort": sort}
    if query:
        params["query"] = query
    if status:
        params["status"] = status

    with create_client(api_base) as client:
        response = client.get("/library/series", params=params)
        response.raise_for_status()
        _echo_json(response.json())


@library_app.command("show")
def show_series(
    series_id: int = typer.Argument(..., help="Series identifier to display."),
    user_id: Optional[str] = typer.Option(
        None, "--user", help="Include watched episode counts for this user."
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Display a series with its seasons."""

    params: dict[str, object] = {}
    if user_id:
        params["user_id"] = user_id
    with create_client(api_base) as client:
        response = client.get(f"/library/series/{series_id}", params=params)
        _exit_if_missing(response, "Series not found")
        response.raise_for_status()
        _echo_json(response.json())


@library_app.command("metrics")
def library_metrics(api_base: str = _api_base_option()) -> None:
    """Display aggregate catalog statistics."""

    with create_client(api_base) as client:
        response = client.get("/library/metrics")
        response.raise_for_status()
        _echo_json(response.json())
