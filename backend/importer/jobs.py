"""Cooperative cancellation for long-running imports."""
from __future__ import annotations

import math
from threading import Event
from typing import Protocol

from .errors import ImportCancelled
from .ratelimit import Clock


class JobHandle(Protocol):
    """Checked at every suspension point of the pipeline."""

    def is_cancelled(self) -> bool: ...


class LocalJobHandle:
    """In-process handle backed by a threading event."""

    def __init__(self) -> None:
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


def raise_if_cancelled(handle: JobHandle | None) -> None:
    if handle is not None and handle.is_cancelled():
        raise ImportCancelled()


def interruptible_sleep(clock: Clock, seconds: float, handle: JobHandle | None, *, slice_seconds: float = 1.0) -> None:
    """Sleep in slices of at most ``slice_seconds``, checking for cancellation between them."""

    raise_if_cancelled(handle)
    if seconds <= 0:
        return
    slices = max(1, math.ceil(seconds / slice_seconds))
    remaining = seconds
    for _ in range(slices):
        step = min(slice_seconds, remaining)
        clock.sleep(step)
        remaining -= step
        raise_if_cancelled(handle)
