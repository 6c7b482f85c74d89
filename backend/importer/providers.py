"""Rate-limited clients for the primary (Jikan) and cover-art (AniList) providers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

import httpx

from .errors import MalformedPayloadError
from .jobs import JobHandle, interruptible_sleep, raise_if_cancelled
from .models import CoverRecord, PrimaryRecord, ProviderFailure
from .ratelimit import Clock, RateLimiter, SystemClock, TokenBucketRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_JIKAN_BASE_URL = "https://api.jikan.moe/v4"
DEFAULT_ANILIST_URL = "https://graphql.anilist.co"

COVER_BY_ID_QUERY = """
query ($idMal: Int) {
  Media(idMal: $idMal, type: ANIME) {
    id
    coverImage { extraLarge large medium }
  }
}
"""

COVER_BY_TITLE_QUERY = """
query ($search: String) {
  Media(search: $search, type: ANIME) {
    id
    coverImage { extraLarge large medium }
  }
}
"""


@dataclass(slots=True)
class ProviderSettings:
    """Pacing and retry knobs for :class:`ProviderClient`."""

    jikan_base_url: str = DEFAULT_JIKAN_BASE_URL
    anilist_url: str = DEFAULT_ANILIST_URL
    primary_requests_per_second: float = 3.0
    cover_requests_per_minute: float = 90.0
    max_attempts: int = 3
    network_backoff_seconds: float = 1.0
    rate_limit_backoff_seconds: float = 2.0


def _names(values: Any) -> tuple[str, ...]:
    if not isinstance(values, list):
        return ()
    names = []
    for value in values:
        if isinstance(value, dict) and value.get("name"):
            names.append(str(value["name"]).strip())
    return tuple(name for name in names if name)


def _parse_date(value: Any) -> date | None:
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_primary_payload(payload: Any, external_id: int) -> PrimaryRecord:
    """Convert a Jikan ``/anime/{id}`` body into a :class:`PrimaryRecord`."""

    if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
        raise MalformedPayloadError("Primary provider response is missing the data object")

    data = payload["data"]
    images = data.get("images") if isinstance(data.get("images"), dict) else {}
    jpg = images.get("jpg") if isinstance(images.get("jpg"), dict) else {}
    aired = data.get("aired") if isinstance(data.get("aired"), dict) else {}

    return PrimaryRecord(
        external_id=_as_int(data.get("mal_id")) or external_id,
        title=_text(data.get("title")),
        title_english=_text(data.get("title_english")),
        title_native=_text(data.get("title_japanese")),
        synopsis=_text(data.get("synopsis")),
        media_type=_text(data.get("type")),
        classification=_text(data.get("rating")),
        airing_status=_text(data.get("status")),
        genres=_names(data.get("genres")),
        studios=_names(data.get("studios")),
        year=_as_int(data.get("year")),
        aired_from=_parse_date(aired.get("from")),
        episodes=_as_int(data.get("episodes")),
        image_url=_text(jpg.get("large_image_url")) or _text(jpg.get("image_url")),
    )


def parse_cover_payload(payload: Any) -> CoverRecord:
    """Extract cover URLs from an AniList GraphQL body, largest first."""

    if not isinstance(payload, dict):
        raise MalformedPayloadError("Cover provider response must be an object")
    if payload.get("errors") and not payload.get("data"):
        raise MalformedPayloadError("Cover provider returned GraphQL errors")

    data = payload.get("data") or {}
    media = data.get("Media") if isinstance(data, dict) else None
    if not isinstance(media, dict):
        return CoverRecord()
    cover = media.get("coverImage") if isinstance(media.get("coverImage"), dict) else {}
    urls = [_text(cover.get(key)) for key in ("extraLarge", "large", "medium")]
    return CoverRecord(urls=tuple(url for url in urls if url))


class ProviderClient:
    """Sequential client for both metadata providers.

    Provider problems never raise: the primary lookup returns a
    :class:`ProviderFailure` and the cover lookup returns an empty
    :class:`CoverRecord`. Only cancellation propagates as an exception.
    """

    def __init__(
        self,
        http: httpx.Client,
        settings: ProviderSettings | None = None,
        *,
        clock: Clock | None = None,
        handle: JobHandle | None = None,
        primary_limiter: RateLimiter | None = None,
        cover_limiter: RateLimiter | None = None,
    ) -> None:
        self._http = http
        self._settings = settings or ProviderSettings()
        self._clock = clock or SystemClock()
        self.handle = handle
        self._primary_limiter = primary_limiter or TokenBucketRateLimiter(
            self._settings.primary_requests_per_second, clock=self._clock
        )
        self._cover_limiter = cover_limiter or TokenBucketRateLimiter.per_minute(
            self._settings.cover_requests_per_minute, clock=self._clock
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ProviderClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _wait(self, seconds: float) -> None:
        interruptible_sleep(self._clock, seconds, self.handle)

    def fetch_primary(self, external_id: int) -> PrimaryRecord | ProviderFailure:
        """Fetch descriptive metadata, retrying network errors and HTTP 429."""

        url = f"{self._settings.jikan_base_url.rstrip('/')}/anime/{external_id}"
        max_attempts = max(1, self._settings.max_attempts)
        attempts = 0

        while True:
            attempts += 1
            raise_if_cancelled(self.handle)
            self._primary_limiter.acquire()
            try:
                response = self._http.get(url)
            except httpx.TransportError as exc:
                failure = ProviderFailure(kind="network", message=f"Network error: {exc}", attempts=attempts)
                backoff = self._settings.network_backoff_seconds
                logger.warning(
                    "Network error fetching %s (attempt %d/%d): %s", external_id, attempts, max_attempts, exc
                )
            else:
                if response.status_code != 429:
                    return self._primary_outcome(response, external_id, attempts)
                failure = ProviderFailure(
                    kind="rate_limited", message="HTTP 429", status_code=429, attempts=attempts
                )
                backoff = self._settings.rate_limit_backoff_seconds
                logger.warning("Rate limited fetching %s, waiting before retry", external_id)

            if attempts >= max_attempts:
                return ProviderFailure(
                    kind=failure.kind,
                    message=f"Failed after {attempts} attempts ({failure.message})",
                    status_code=failure.status_code,
                    attempts=attempts,
                )
            self._wait(backoff)

    @staticmethod
    def _primary_outcome(
        response: httpx.Response, external_id: int, attempts: int
    ) -> PrimaryRecord | ProviderFailure:
        if response.is_error:
            return ProviderFailure(
                kind="http",
                message=f"HTTP {response.status_code}",
                status_code=response.status_code,
                attempts=attempts,
            )
        try:
            return parse_primary_payload(response.json(), external_id)
        except (ValueError, MalformedPayloadError) as exc:
            return ProviderFailure(kind="invalid_payload", message=f"Invalid payload: {exc}", attempts=attempts)

    def _query_cover(self, query: str, variables: dict[str, Any]) -> CoverRecord:
        raise_if_cancelled(self.handle)
        self._cover_limiter.acquire()
        response = self._http.post(
            self._settings.anilist_url,
            json={"query": query, "variables": variables},
            headers={"Accept": "application/json"},
        )
        if response.status_code == 404:
            return CoverRecord()
        response.raise_for_status()
        return parse_cover_payload(response.json())

    def fetch_cover_art(self, external_id: int, title: str | None = None) -> CoverRecord:
        """Look up high-resolution cover art by id, then by title."""

        try:
            cover = self._query_cover(COVER_BY_ID_QUERY, {"idMal": external_id})
            if not cover.urls and title:
                cover = self._query_cover(COVER_BY_TITLE_QUERY, {"search": title})
            return cover
        except (httpx.HTTPError, ValueError, MalformedPayloadError) as exc:
            logger.warning("Cover lookup failed for %s (%s): %s", external_id, title, exc)
            return CoverRecord()


def build_http_client(*, timeout: float = 15.0, user_agent: str | None = None, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    """Instantiate the shared HTTPX client used for provider calls."""

    headers = {"User-Agent": user_agent} if user_agent else None
    return httpx.Client(timeout=timeout, headers=headers, transport=transport)
