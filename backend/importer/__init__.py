"""
Bulk catalog import engine for Mediadex.

This package parses watch-history exports, groups entries into series,
enriches them through the metadata providers and reconciles the result with
the persisted catalog.
"""
from .errors import ImportCancelled, ImportEngineError, ImportSetupError
from .grouping import group_entries
from .models import ImportResult, RawEntry, SeriesGroup
from .parser import parse_document
from .pipeline import ImportOptions, ImportPipeline

__all__ = [
    "ImportCancelled",
    "ImportEngineError",
    "ImportOptions",
    "ImportPipeline",
    "ImportResult",
    "ImportSetupError",
    "RawEntry",
    "SeriesGroup",
    "group_entries",
    "parse_document",
]
