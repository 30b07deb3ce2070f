import threading
import time

import pytest

from stockdata.repositories.bars import InsertResult
from stockdata.services.dispatch import ConcurrencyController, FetchUnit
from stockdata.services.rate_limiter import RateLimiter


def units(n: int) -> list[FetchUnit]:
    return [FetchUnit(trade_date=f"202401{i + 1:02d}") for i in range(n)]


def test_failures_do_not_stop_siblings() -> None:
    completions: list[bool] = []
    lock = threading.Lock()

    def work(unit: FetchUnit) -> InsertResult:
        if unit.trade_date.endswith(("03", "07")):
            raise RuntimeError(f"no data for {unit}")
        return InsertResult(inserted=5, dropped=1, batches=1)

    def on_complete(ok: bool) -> None:
        with lock:
            completions.append(ok)

    controller = ConcurrencyController(3, RateLimiter(0))
    summary = controller.run(units(10), work, on_complete=on_complete)

    assert (summary.dispatched, summary.succeeded, summary.failed) == (10, 8, 2)
    assert (summary.rows_inserted, summary.rows_dropped) == (40, 8)
    assert not summary.cancelled
    assert sorted(completions) == [False] * 2 + [True] * 8


def test_in_flight_never_exceeds_limit() -> None:
    active = 0
    peak = 0
    lock = threading.Lock()

    def work(unit: FetchUnit) -> InsertResult:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        with lock:
            active -= 1
        return InsertResult()

    summary = ConcurrencyController(4, RateLimiter(0)).run(units(30), work)

    assert summary.succeeded == 30
    assert 1 <= peak <= 4


def test_each_unit_takes_a_rate_limiter_slot() -> None:
    limiter = RateLimiter(6000, sleep=lambda s: None)
    ConcurrencyController(2, limiter).run(units(12), lambda unit: InsertResult())
    assert limiter.stats.total_requests == 12


def test_cancel_stops_admission() -> None:
    cancel = threading.Event()
    started: list[str] = []
    lock = threading.Lock()

    def work(unit: FetchUnit) -> InsertResult:
        with lock:
            started.append(unit.trade_date)
            if len(started) == 3:
                cancel.set()
        time.sleep(0.01)
        return InsertResult()

    summary = ConcurrencyController(1, RateLimiter(0)).run(units(20), work, cancel=cancel)

    assert summary.cancelled
    assert summary.dispatched == len(started) == 3
    assert summary.succeeded == 3


def test_precancelled_dispatches_nothing() -> None:
    cancel = threading.Event()
    cancel.set()
    summary = ConcurrencyController(2, RateLimiter(0)).run(units(5), lambda u: InsertResult(), cancel=cancel)
    assert summary.cancelled
    assert summary.dispatched == 0


def test_rejects_non_positive_concurrency() -> None:
    with pytest.raises(ValueError):
        ConcurrencyController(0, RateLimiter(0))


def test_unit_label() -> None:
    assert str(FetchUnit("20240102")) == "20240102"
    assert str(FetchUnit("20240102", "000001.SZ")) == "000001.SZ:20240102"
