"""Progress events and the sinks that carry them to the caller."""
from __future__ import annotations

import queue
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterator, Literal, Protocol

Phase = Literal["batch", "item", "pause", "complete"]


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    phase: Phase
    current_batch: int
    total_batches: int
    total: int
    imported: int
    updated: int
    errors: int
    current_item_label: str | None = None
    current_index: int | None = None
    remaining_pause_seconds: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ProgressSink(Protocol):
    def publish(self, event: ProgressEvent) -> None: ...


class NullSink:
    def publish(self, event: ProgressEvent) -> None:
        return None


class CallbackSink:
    """Adapter turning a plain callable into a sink."""

    def __init__(self, callback: Callable[[ProgressEvent], None]) -> None:
        self._callback = callback

    def publish(self, event: ProgressEvent) -> None:
        self._callback(event)


_CLOSED = object()


class ProgressChannel:
    """Bounded message channel between the pipeline and a consumer.

    Publishing never blocks: when the buffer is full the oldest pending event
    is discarded to make room. Iterating the channel yields events until the
    ``complete`` event has been delivered or :meth:`close` is called.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def _put(self, item: Any) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    continue

    def publish(self, event: ProgressEvent) -> None:
        self._put(event)

    def close(self) -> None:
        self._put(_CLOSED)

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """Return the next event, or ``None`` once the channel is closed."""

        item = self._queue.get(timeout=timeout)
        return None if item is _CLOSED else item

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event
            if event.phase == "complete":
                return
