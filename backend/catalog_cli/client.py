"""HTTP client factory for the catalog CLI."""
from __future__ import annotations

import httpx

USER_AGENT = "mediadex-cli/0.1"


def create_client(base_url: str, *, timeout: float = 30.0, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    """Return a JSON client bound to the catalog API."""

    return httpx.Client(
        base_url=base_url.rstrip("/"),
        timeout=timeout,
        transport=transport,
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
    )
