"""
Parser for MyAnimeList-style XML watch-history exports.

Each ``<anime>`` fragment is read on its own so a broken fragment in a
hand-edited export only loses that entry.
"""
from __future__ import annotations

import html
import logging
import re
from typing import Iterator

from .models import RawEntry

logger = logging.getLogger(__name__)

FRAGMENT_RE = re.compile(r"<anime>(.*?)</anime>", re.IGNORECASE | re.DOTALL)
CDATA_RE = re.compile(r"^\s*<!\[CDATA\[(.*?)\]\]>\s*$", re.DOTALL)


def _tag_value(fragment: str, tag: str) -> str | None:
    match = re.search(rf"<{tag}>(.*?)</{tag}>", fragment, re.IGNORECASE | re.DOTALL)
    if match is None:
        return None
    raw = match.group(1)
    cdata = CDATA_RE.match(raw)
    if cdata:
        return cdata.group(1).strip()
    return html.unescape(raw).strip()


def _int_value(fragment: str, tag: str) -> int | None:
    value = _tag_value(fragment, tag)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def iter_fragments(document: str) -> Iterator[str]:
    for match in FRAGMENT_RE.finditer(document or ""):
        yield match.group(1)


def parse_fragment(fragment: str) -> RawEntry | None:
    """Return the entry described by ``fragment`` or ``None`` when id or title is missing."""

    external_id = _int_value(fragment, "series_animedb_id")
    title = _tag_value(fragment, "series_title")
    if not external_id or not title:
        return None

    group_id = _tag_value(fragment, "series_adk_id") or None
    return RawEntry(
        external_id=external_id,
        title=title,
        total_units=max(_int_value(fragment, "series_episodes") or 0, 0),
        watched_units=max(_int_value(fragment, "my_watched_episodes") or 0, 0),
        group_id=group_id,
        status=_tag_value(fragment, "my_status") or "",
        media_type=_tag_value(fragment, "series_type") or "TV",
    )


def parse_document(document: str) -> list[RawEntry]:
    """Extract the ordered list of valid entries from an export document."""

    entries: list[RawEntry] = []
    skipped = 0
    for fragment in iter_fragments(document):
        entry = parse_fragment(fragment)
        if entry is None:
            skipped += 1
            continue
        entries.append(entry)

    if skipped:
        logger.debug("Skipped %d incomplete export fragments", skipped)
    return entries
