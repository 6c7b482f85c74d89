"""Series grouping: cluster export entries into series with ordered seasons."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol, Sequence

from .models import RawEntry, SeriesGroup

# Titles at or below this length are never cut at a colon.
COLON_TRUNCATION_MIN_LENGTH = 15

# "Season 3", "Part II", ...
_MARKER = r"(Season|Saison|Part|Partie|Cour)(\s*\d+|\s+[IVX]+\b)"

SEASON_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf":\s*{_MARKER}", re.IGNORECASE),
    re.compile(r":\s*(2nd|3rd|4th|5th)(\s*(Season|Saison))?", re.IGNORECASE),
    re.compile(rf"\s*-\s*{_MARKER}", re.IGNORECASE),
    re.compile(rf"(\s+{_MARKER})+$", re.IGNORECASE),
    re.compile(r"\s+(2nd|3rd|4th|5th)\s+(Season|Saison)$", re.IGNORECASE),
    re.compile(r"\s+(II|III|IV|V|2|3|4|5)$", re.IGNORECASE),
)
SUBTITLE_SEPARATOR_RE = re.compile(r":\s")


@dataclass(frozen=True, slots=True)
class GroupAssignment:
    key: str
    display_title: str


class TitleNormalizer(Protocol):
    """Strategy deciding which group an entry belongs to."""

    def assign(self, entry: RawEntry) -> GroupAssignment | None: ...


def extract_base_title(title: str) -> str:
    """Strip season and part markers from ``title``.

    The rules are re-applied until nothing changes, so stacked markers such as
    ``Season 2 II`` come off together.
    """

    base = title.strip()
    while True:
        stripped = base
        for pattern in SEASON_PATTERNS:
            stripped = pattern.sub("", stripped)
        stripped = stripped.strip()
        if stripped == base or not stripped:
            break
        base = stripped

    if len(base) > COLON_TRUNCATION_MIN_LENGTH:
        separator = SUBTITLE_SEPARATOR_RE.search(base)
        if separator is not None and separator.start() > 0:
            base = base[: separator.start()].strip()

    return base or title.strip()


def _title_key(title: str) -> str:
    return " ".join(title.casefold().split())


class PatternTitleNormalizer:
    """Group by the pattern-derived base title."""

    def assign(self, entry: RawEntry) -> GroupAssignment:
        base = extract_base_title(entry.title)
        return GroupAssignment(key=_title_key(base), display_title=base)


class ExplicitGroupNormalizer:
    """Group by the provider-assigned group identifier when the export carries one."""

    def assign(self, entry: RawEntry) -> GroupAssignment | None:
        if not entry.group_id:
            return None
        return GroupAssignment(key=f"group:{entry.group_id}", display_title=extract_base_title(entry.title))


class ManualOverrideNormalizer:
    """Map exact raw titles to a user-chosen base title."""

    def __init__(self, overrides: Mapping[str, str]) -> None:
        self._overrides = {title.strip(): base.strip() for title, base in overrides.items() if base and base.strip()}

    def assign(self, entry: RawEntry) -> GroupAssignment | None:
        base = self._overrides.get(entry.title.strip())
        if base is None:
            return None
        return GroupAssignment(key=_title_key(base), display_title=base)


class ChainNormalizer:
    """Try each strategy in order; the first assignment wins."""

    def __init__(self, strategies: Sequence[TitleNormalizer]) -> None:
        if not strategies:
            raise ValueError("at least one strategy is required")
        self._strategies = tuple(strategies)

    def assign(self, entry: RawEntry) -> GroupAssignment | None:
        for strategy in self._strategies:
            assignment = strategy.assign(entry)
            if assignment is not None:
                return assignment
        return None


def default_normalizer(overrides: Mapping[str, str] | None = None) -> ChainNormalizer:
    strategies: list[TitleNormalizer] = []
    if overrides:
        strategies.append(ManualOverrideNormalizer(overrides))
    strategies.extend([ExplicitGroupNormalizer(), PatternTitleNormalizer()])
    return ChainNormalizer(strategies)


def group_entries(entries: Iterable[RawEntry], normalizer: TitleNormalizer | None = None) -> list[SeriesGroup]:
    """Cluster entries into series groups, keeping first-seen order."""

    strategy = normalizer or default_normalizer()
    fallback = PatternTitleNormalizer()
    buckets: dict[str, tuple[str, list[RawEntry]]] = {}

    for entry in entries:
        assignment = strategy.assign(entry) or fallback.assign(entry)
        if assignment.key not in buckets:
            buckets[assignment.key] = (assignment.display_title, [])
        buckets[assignment.key][1].append(entry)

    return [
        SeriesGroup(group_key=key, display_title=display_title, entries=tuple(members))
        for key, (display_title, members) in buckets.items()
    ]
