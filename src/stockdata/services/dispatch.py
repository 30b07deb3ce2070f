"""Bounded, rate-limited execution of fetch units."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import structlog

from ..repositories.bars import InsertResult
from .rate_limiter import RateLimiter

ADMISSION_POLL_SECONDS = 0.2


@dataclass(frozen=True)
class FetchUnit:
    """One remote fetch plus persist: a date, or an (instrument, date) pair."""

    trade_date: str
    ts_code: str = ""

    def __str__(self) -> str:
        return f"{self.ts_code}:{self.trade_date}" if self.ts_code else self.trade_date


@dataclass
class DispatchSummary:
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    rows_inserted: int = 0
    rows_dropped: int = 0
    cancelled: bool = False


UnitWork = Callable[[FetchUnit], InsertResult]


class ConcurrencyController:
    """Runs units on a worker pool behind an admission gate.

    At most ``max_concurrency`` units are admitted at once. Each admitted unit
    takes a slot from the job's shared rate limiter before doing its work. A
    failing unit is logged and counted; it never stops its siblings. Once the
    cancel event is set no further units are admitted, while admitted units run
    to completion.
    """

    def __init__(
        self,
        max_concurrency: int,
        rate_limiter: RateLimiter,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self.max_concurrency = max_concurrency
        self._rate_limiter = rate_limiter
        self._logger = logger or structlog.get_logger("dispatch")

    def run(
        self,
        units: Iterable[FetchUnit],
        work: UnitWork,
        on_complete: Callable[[bool], Any] | None = None,
        cancel: threading.Event | None = None,
    ) -> DispatchSummary:
        """Dispatch every unit and block until all admitted units are done"""
        summary = DispatchSummary()
        summary_lock = threading.Lock()
        gate = threading.BoundedSemaphore(self.max_concurrency)

        with ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="fetch-unit"
        ) as executor:
            for unit in units:
                if not self._admit(gate, cancel):
                    summary.cancelled = True
                    self._logger.warning(
                        "dispatch_cancelled", dispatched=summary.dispatched
                    )
                    break

                summary.dispatched += 1
                future = executor.submit(
                    self._run_unit, unit, work, gate, on_complete, summary, summary_lock
                )
                future.add_done_callback(self._log_crash)

        return summary

    def _admit(self, gate: threading.BoundedSemaphore, cancel: threading.Event | None) -> bool:
        while True:
            if cancel is not None and cancel.is_set():
                return False
            if gate.acquire(timeout=ADMISSION_POLL_SECONDS):
                if cancel is not None and cancel.is_set():
                    gate.release()
                    return False
                return True

    def _run_unit(
        self,
        unit: FetchUnit,
        work: UnitWork,
        gate: threading.BoundedSemaphore,
        on_complete: Callable[[bool], Any] | None,
        summary: DispatchSummary,
        summary_lock: threading.Lock,
    ) -> None:
        try:
            result: InsertResult | None = None
            try:
                self._rate_limiter.acquire()
                result = work(unit)
            except Exception as e:
                self._logger.error("unit_failed", unit=str(unit), error=str(e))

            with summary_lock:
                if result is None:
                    summary.failed += 1
                else:
                    summary.succeeded += 1
                    summary.rows_inserted += result.inserted
                    summary.rows_dropped += result.dropped

            if on_complete is not None:
                on_complete(result is not None)
        finally:
            gate.release()

    def _log_crash(self, future: Future[None]) -> None:
        exc = future.exception()
        if exc is not None:
            self._logger.error("unit_callback_failed", error=str(exc))
