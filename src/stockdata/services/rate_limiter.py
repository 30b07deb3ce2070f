"""
Rate limiter for remote calls

Fixed-interval limiter shared by every worker of one fetch job: call starts are
spaced ``60 / requests_per_minute`` seconds apart, so no more than
``requests_per_minute`` calls start in any minute regardless of worker count.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class RateLimitStats:
    """Statistics for rate limiter"""

    total_requests: int = 0
    requests_throttled: int = 0
    total_wait_time: float = 0.0


class RateLimiter:
    """
    Thread-safe fixed-interval rate limiter

    Slots are handed out under a lock; the caller then sleeps outside the lock
    until its slot, so waiting workers do not serialize each other. The first
    slot is immediate. A non-positive rate disables limiting.
    """

    def __init__(
        self,
        requests_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.requests_per_minute = requests_per_minute
        self.interval = 60.0 / requests_per_minute if requests_per_minute > 0 else 0.0
        self._clock = clock
        self._sleep = sleep
        self._next_slot: float | None = None
        self._closed = False
        self._lock = threading.Lock()
        self.stats = RateLimitStats()

    def __enter__(self) -> RateLimiter:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def acquire(self) -> float:
        """
        Block until the caller may start one remote call

        Returns:
            Time waited in seconds
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Rate limiter is closed")

            self.stats.total_requests += 1
            if self.interval <= 0:
                return 0.0

            now = self._clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = slot + self.interval
            wait = slot - now

            if wait > 0:
                self.stats.requests_throttled += 1
                self.stats.total_wait_time += wait

        if wait > 0:
            self._sleep(wait)
        return wait
