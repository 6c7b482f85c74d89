"""Test doubles and document builders shared by the test modules."""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import httpx

from backend.importer.jobs import JobHandle, raise_if_cancelled
from backend.importer.models import CoverRecord, PrimaryRecord, ProviderFailure
from backend.importer.providers import ProviderClient, ProviderSettings, build_http_client

# Sentinel queued in FakeProviderServer.primary_status to simulate a dropped connection.
CONNECTION_ERROR = -1


class FakeClock:
    """Clock that advances only when slept on and records every sleep."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = 0.0
        self.sleeps: list[float] = []
        self._start = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def monotonic(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds

    def now(self) -> datetime:
        return self._start + timedelta(seconds=int(self.current))


def anime_xml(
    external_id: int | None,
    title: str | None,
    *,
    episodes: int = 12,
    watched: int = 0,
    status: str = "Completed",
    adk_id: str | None = None,
    media_type: str = "TV",
) -> str:
    parts = ["<anime>"]
    if external_id is not None:
        parts.append(f"<series_animedb_id>{external_id}</series_animedb_id>")
    if title is not None:
        parts.append(f"<series_title><![CDATA[{title}]]></series_title>")
    parts.append(f"<series_type>{media_type}</series_type>")
    parts.append(f"<series_episodes>{episodes}</series_episodes>")
    if adk_id is not None:
        parts.append(f"<series_adk_id>{adk_id}</series_adk_id>")
    parts.append(f"<my_watched_episodes>{watched}</my_watched_episodes>")
    parts.append(f"<my_status>{status}</my_status>")
    parts.append("</anime>")
    return "\n".join(parts)


def export_document(fragments: Iterable[str]) -> str:
    body = "\n".join(fragments)
    return (
        '<?xml version="1.0" encoding="UTF-8" ?>\n<myanimelist>\n'
        "<myinfo><user_name>tester</user_name></myinfo>\n"
        f"{body}\n</myanimelist>\n"
    )


def jikan_data(
    external_id: int,
    title: str,
    *,
    episodes: int | None = 12,
    year: int | None = 2020,
    title_english: str = "",
    synopsis: str = "A synopsis.",
    image_url: str = "",
) -> dict[str, Any]:
    return {
        "mal_id": external_id,
        "title": title,
        "title_english": title_english or None,
        "title_japanese": "",
        "type": "TV",
        "episodes": episodes,
        "status": "Finished Airing",
        "rating": "PG-13 - Teens 13 or older",
        "synopsis": synopsis,
        "year": year,
        "aired": {"from": f"{year or 2019}-04-01T00:00:00+00:00"},
        "genres": [{"mal_id": 1, "name": "Action"}, {"mal_id": 22, "name": "Romance"}],
        "studios": [{"mal_id": 7, "name": "Studio Example"}],
        "images": {"jpg": {"image_url": image_url, "large_image_url": image_url}},
    }


class FakeProviderServer:
    """Serves canned Jikan and AniList responses through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.anime: dict[int, dict[str, Any]] = {}
        self.covers: dict[int, str] = {}
        self.title_covers: dict[str, str] = {}
        self.primary_status: dict[int, list[int]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, external_id: int, title: str, *, cover: str | None = None, **fields: Any) -> None:
        self.anime[external_id] = jikan_data(external_id, title, **fields)
        if cover:
            self.covers[external_id] = cover

    def primary_calls(self, external_id: int) -> int:
        suffix = f"/anime/{external_id}"
        return sum(1 for request in self.requests if request.url.path.endswith(suffix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            external_id = int(request.url.path.rsplit("/", 1)[-1])
            queued = self.primary_status.get(external_id)
            if queued:
                status = queued.pop(0)
                if status == CONNECTION_ERROR:
                    raise httpx.ConnectError("connection refused", request=request)
                return httpx.Response(status, json={"status": status})
            data = self.anime.get(external_id)
            if data is None:
                return httpx.Response(404, json={"status": 404, "message": "Not Found"})
            return httpx.Response(200, json={"data": data})

        variables = json.loads(request.content)["variables"]
        if "idMal" in variables:
            url = self.covers.get(variables["idMal"])
        else:
            url = self.title_covers.get(variables["search"])
        if not url:
            return httpx.Response(404, json={"data": {"Media": None}, "errors": [{"message": "Not Found."}]})
        return httpx.Response(
            200,
            json={"data": {"Media": {"id": 1, "coverImage": {"extraLarge": url, "large": url, "medium": ""}}}},
        )

    def client(self, clock: Any, settings: ProviderSettings | None = None) -> ProviderClient:
        http = build_http_client(transport=httpx.MockTransport(self.handler))
        return ProviderClient(http, settings, clock=clock)


class StaticProviders:
    """In-memory provider client for pipeline tests that do not need HTTP."""

    def __init__(self, records: dict[int, PrimaryRecord] | None = None, *, missing: Iterable[int] = ()) -> None:
        self.records = records or {}
        self.missing = set(missing)
        self.handle: JobHandle | None = None
        self.calls: list[int] = []

    def fetch_primary(self, external_id: int) -> PrimaryRecord | ProviderFailure:
        raise_if_cancelled(self.handle)
        self.calls.append(external_id)
        if external_id in self.missing:
            return ProviderFailure(kind="http", message="HTTP 404", status_code=404)
        return self.records.get(external_id) or PrimaryRecord(
            external_id=external_id, title=f"Title {external_id}", episodes=12, year=2020
        )

    def fetch_cover_art(self, external_id: int, title: str | None = None) -> CoverRecord:
        raise_if_cancelled(self.handle)
        return CoverRecord(urls=(f"https://img.example/{external_id}.jpg",))
