"""Exception hierarchy for the import engine."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .models import ImportResult


class ImportEngineError(RuntimeError):
    """Base class for import engine failures."""


class ImportSetupError(ImportEngineError):
    """Raised when a job cannot start (no user, no repository, bad input)."""


class MalformedPayloadError(ImportEngineError):
    """Raised when a provider response does not have the expected shape."""


class ImportCancelled(ImportEngineError):
    """Raised at a suspension point once the job handle reports cancellation."""

    def __init__(self, message: str = "Import cancelled", *, result: ImportResult | None = None) -> None:
        super().__init__(message)
        self.result = result
