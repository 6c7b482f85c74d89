"""Clock and rate limiter abstractions used to pace provider calls."""
from __future__ import annotations

import time
from datetime import datetime, timezone
from threading import Lock
from typing import Protocol


class Clock(Protocol):
    """Time source injected into the pipeline so tests avoid real delays."""

    def monotonic(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock implementation backed by the ``time`` module."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(microsecond=0)


class RateLimiter(Protocol):
    def acquire(self) -> float:
        """Block until a call is allowed; return the seconds waited."""
        ...


class TokenBucketRateLimiter:
    """Token bucket pacing calls to ``rate`` per second.

    With the default burst of 1 the bucket behaves as a fixed minimum
    interval between consecutive calls.
    """

    def __init__(self, rate: float, *, burst: int = 1, clock: Clock | None = None) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.rate = rate
        self.burst = burst
        self._clock = clock or SystemClock()
        self._tokens = float(burst)
        self._updated = self._clock.monotonic()
        self._lock = Lock()

    @classmethod
    def per_minute(cls, requests: float, *, burst: int = 1, clock: Clock | None = None) -> "TokenBucketRateLimiter":
        return cls(requests / 60.0, burst=burst, clock=clock)

    def _refill(self) -> None:
        now = self._clock.monotonic()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated = now

    def acquire(self) -> float:
        with self._lock:
            self._refill()
            waited = 0.0
            if self._tokens < 1.0:
                waited = (1.0 - self._tokens) / self.rate
                self._clock.sleep(waited)
                self._refill()
                # Sleep granularity can leave the bucket a hair short.
                self._tokens = max(self._tokens, 1.0)
            self._tokens -= 1.0
            return waited
