"""
Fetch orchestration: turns a (frequency, date range) request into a tracked job
"""

from __future__ import annotations

import itertools
import threading
import time
import uuid
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from ..config import FetcherSettings
from ..dto import (
    BarOut,
    FetchRequest,
    FetchTaskOut,
    Frequency,
    Page,
    StockBasicOut,
    TaskPage,
    TaskStatus,
)
from ..errors import InvalidFetchRequest, StockDataError, TaskStateError
from ..repositories.bars import BarRepository, InsertResult
from ..repositories.instrument import InstrumentRepository
from ..repositories.task import TaskRepository
from ..tushare.client import TushareClient
from .calendar import ResolvedDates, TradingCalendar
from .dispatch import ConcurrencyController, DispatchSummary, FetchUnit
from .progress import ProgressTracker
from .rate_limiter import RateLimiter

FALLBACK_NOTE = "trade calendar unavailable, used weekday approximation (holidays not excluded)"


def new_task_id(frequency: Frequency) -> str:
    return f"{frequency.value}_task_{int(time.time())}_{uuid.uuid4().hex[:6]}"


@dataclass(frozen=True)
class FrequencyPlan:
    """How one unit of a frequency is fetched and where its rows go"""

    fetch: Callable[[FetchUnit], Sequence[Any]]
    store: Callable[[Sequence[Any]], InsertResult]


@dataclass
class _Job:
    future: Future[FetchTaskOut]
    cancel: threading.Event


class FetchService:
    """Entry point for fetch jobs, instrument ingestion and stored-data queries.

    ``start_fetch`` validates the request and creates the task record on the
    caller's thread, then runs the job on a background executor. Each job gets
    its own rate limiter, admission gate and progress tracker; the client and
    the database engine are shared.
    """

    def __init__(
        self,
        client: TushareClient,
        calendar: TradingCalendar,
        task_repository: TaskRepository,
        bar_repository: BarRepository,
        instrument_repository: InstrumentRepository,
        settings: FetcherSettings | None = None,
        rate_limiter_factory: Callable[[int], RateLimiter] = RateLimiter,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self._client = client
        self._calendar = calendar
        self._tasks = task_repository
        self._bars = bar_repository
        self._instruments = instrument_repository
        self._settings = settings or FetcherSettings()
        self._rate_limiter_factory = rate_limiter_factory
        self._logger = logger or structlog.get_logger("fetcher")

        self._jobs: dict[str, _Job] = {}
        self._jobs_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max(self._settings.max_jobs, 1), thread_name_prefix="fetch-job"
        )

        self._plans = {
            Frequency.DAILY: FrequencyPlan(
                fetch=lambda unit: self._client.get_daily_data(trade_date=unit.trade_date),
                store=self._bars.insert_daily,
            ),
            Frequency.DAILY_BY_STOCK: FrequencyPlan(
                fetch=lambda unit: self._client.get_daily_data(
                    trade_date=unit.trade_date, ts_code=unit.ts_code
                ),
                store=self._bars.insert_daily,
            ),
            Frequency.WEEKLY: FrequencyPlan(
                fetch=lambda unit: self._client.get_weekly_data(unit.trade_date),
                store=self._bars.insert_weekly,
            ),
            Frequency.MONTHLY: FrequencyPlan(
                fetch=lambda unit: self._client.get_monthly_data(unit.trade_date),
                store=self._bars.insert_monthly,
            ),
        }

    # Jobs

    def start_fetch(
        self,
        frequency: Frequency | str,
        start_date: str,
        end_date: str,
        concurrency: int | None = None,
    ) -> str:
        """Create a task and run it in the background; returns the task id"""
        request = self._validate(frequency, start_date, end_date, concurrency)
        task = self._create_task(request)
        cancel = threading.Event()

        with self._jobs_lock:
            future = self._executor.submit(self._run_job, task.task_id, request, cancel)
            self._jobs[task.task_id] = _Job(future, cancel)
        future.add_done_callback(lambda _: self._forget(task.task_id))

        return task.task_id

    def run_fetch(
        self,
        frequency: Frequency | str,
        start_date: str,
        end_date: str,
        concurrency: int | None = None,
        cancel: threading.Event | None = None,
    ) -> FetchTaskOut:
        """Same as :meth:`start_fetch` but runs on the calling thread"""
        request = self._validate(frequency, start_date, end_date, concurrency)
        task = self._create_task(request)
        return self._run_job(task.task_id, request, cancel or threading.Event())

    def get_progress(self, task_id: str) -> FetchTaskOut:
        return self._tasks.get_by_task_id(task_id)

    def list_tasks(self, page: int = 1, page_size: int = 10) -> TaskPage:
        return self._tasks.list_tasks(page, page_size)

    def cancel(self, task_id: str) -> bool:
        """Stop admitting units for a running job; False if it is not running here"""
        with self._jobs_lock:
            job = self._jobs.get(task_id)
        if job is None or job.future.done():
            return False
        job.cancel.set()
        self._logger.info("fetch_cancel_requested", task_id=task_id)
        return True

    def wait(self, task_id: str, timeout: float | None = None) -> FetchTaskOut:
        """Block until a background job finishes and return its final record.

        Jobs that are no longer running here are answered from the task table.
        """
        with self._jobs_lock:
            job = self._jobs.get(task_id)
        if job is None:
            return self._tasks.get_by_task_id(task_id)
        return job.future.result(timeout=timeout)

    def _forget(self, task_id: str) -> None:
        with self._jobs_lock:
            self._jobs.pop(task_id, None)

    def shutdown(self, wait: bool = True, cancel: bool = True) -> None:
        with self._jobs_lock:
            jobs = list(self._jobs.values())
        if cancel:
            for job in jobs:
                job.cancel.set()
        self._executor.shutdown(wait=wait)

    def _validate(
        self,
        frequency: Frequency | str,
        start_date: str,
        end_date: str,
        concurrency: int | None,
    ) -> FetchRequest:
        try:
            request = FetchRequest(
                frequency=frequency,
                start_date=start_date,
                end_date=end_date,
                concurrency=concurrency,
            )
        except ValidationError as e:
            raise InvalidFetchRequest(str(e)) from e

        if request.start_date > request.end_date:
            raise InvalidFetchRequest(
                f"start_date {request.start_date} is after end_date {request.end_date}"
            )
        return request

    def _create_task(self, request: FetchRequest) -> FetchTaskOut:
        task_id = new_task_id(request.frequency)
        try:
            task = self._tasks.create(task_id, request.start_date, request.end_date)
        except SQLAlchemyError as e:
            self._logger.error("task_create_failed", task_id=task_id, error=str(e))
            raise StockDataError(f"Failed to create fetch task: {e}") from e

        self._logger.info(
            "fetch_task_created",
            task_id=task_id,
            frequency=request.frequency.value,
            start_date=request.start_date,
            end_date=request.end_date,
        )
        return task

    def _run_job(
        self, task_id: str, request: FetchRequest, cancel: threading.Event
    ) -> FetchTaskOut:
        log = self._logger.bind(task_id=task_id, frequency=request.frequency.value)
        tracker: ProgressTracker | None = None
        try:
            resolved = self._calendar.resolve(
                request.frequency, request.start_date, request.end_date
            )
            units, total = self._plan_units(request.frequency, resolved)
            notes = [FALLBACK_NOTE] if resolved.is_fallback else []

            self._tasks.mark_running(task_id, total)
            log.info("fetch_job_started", total=total, calendar_source=resolved.source)

            if total == 0:
                log.info("fetch_job_empty")
                return self._tasks.finalize(
                    task_id, TaskStatus.COMPLETED, 100, 0, 0, error_msg=_join(notes)
                )

            tracker = ProgressTracker(self._tasks, task_id, total, logger=log)
            return self._dispatch(task_id, request, units, tracker, notes, cancel, log)
        except Exception as e:
            log.error("fetch_job_failed", error=str(e))
            self._finalize_aborted(task_id, tracker, e, log)
            raise

    def _finalize_aborted(
        self,
        task_id: str,
        tracker: ProgressTracker | None,
        error: Exception,
        log: structlog.BoundLogger,
    ) -> None:
        # Units that already reported back keep their counts
        progress, success, failed = 0, 0, 0
        if tracker is not None:
            snap = tracker.snapshot()
            progress, success, failed = snap.progress, snap.success, snap.failed

        try:
            self._tasks.finalize(
                task_id,
                TaskStatus.FAILED,
                progress,
                success,
                failed,
                error_msg=f"job aborted: {error}",
            )
        except (TaskStateError, SQLAlchemyError) as finalize_error:
            log.error("fetch_job_finalize_failed", error=str(finalize_error))

    def _dispatch(
        self,
        task_id: str,
        request: FetchRequest,
        units: Iterable[FetchUnit],
        tracker: ProgressTracker,
        notes: list[str],
        cancel: threading.Event,
        log: structlog.BoundLogger,
    ) -> FetchTaskOut:
        concurrency = request.concurrency or self._settings.concurrency
        plan = self._plans[request.frequency]
        total = tracker.snapshot().total

        with self._rate_limiter_factory(self._settings.rate_limit) as limiter:
            controller = ConcurrencyController(concurrency, limiter, logger=log)
            summary = controller.run(
                units,
                lambda unit: self._fetch_unit(plan, unit, log),
                on_complete=tracker.record,
                cancel=cancel,
            )

        snap = tracker.snapshot()
        status, message = self._outcome(summary, total, notes)
        progress = 100 if status is TaskStatus.COMPLETED else snap.progress

        task = self._tasks.finalize(
            task_id, status, progress, snap.success, snap.failed, error_msg=message
        )
        log.info(
            "fetch_job_finished",
            status=status.value,
            success=snap.success,
            failed=snap.failed,
            total=total,
            rows=summary.rows_inserted,
            dropped=summary.rows_dropped,
        )
        return task

    def _plan_units(
        self, frequency: Frequency, resolved: ResolvedDates
    ) -> tuple[Iterable[FetchUnit], int]:
        if frequency is Frequency.DAILY_BY_STOCK:
            codes = self._instruments.listed_codes() if resolved.dates else []
            units = (
                FetchUnit(trade_date=day, ts_code=code)
                for day, code in itertools.product(resolved.dates, codes)
            )
            return units, len(resolved.dates) * len(codes)

        return [FetchUnit(trade_date=day) for day in resolved.dates], len(resolved.dates)

    def _fetch_unit(
        self, plan: FrequencyPlan, unit: FetchUnit, log: structlog.BoundLogger
    ) -> InsertResult:
        records = plan.fetch(unit)
        if not records:
            log.debug("unit_empty", unit=str(unit))
            return InsertResult()

        result = plan.store(records)
        log.info(
            "unit_saved",
            unit=str(unit),
            inserted=result.inserted,
            dropped=result.dropped,
        )
        return result

    @staticmethod
    def _outcome(
        summary: DispatchSummary, total: int, notes: list[str]
    ) -> tuple[TaskStatus, str | None]:
        notes = list(notes)
        if summary.rows_dropped:
            notes.append(f"{summary.rows_dropped} rows dropped for unparseable dates")

        if summary.cancelled:
            notes.insert(0, f"cancelled after dispatching {summary.dispatched} of {total} units")
            return TaskStatus.FAILED, _join(notes)

        if summary.failed:
            notes.insert(0, f"{summary.failed} of {total} units failed")
            if summary.failed >= total:
                return TaskStatus.FAILED, _join(notes)

        return TaskStatus.COMPLETED, _join(notes)

    # Instruments and stored data

    def fetch_stock_basic(self) -> int:
        """Pull the listed-instrument list and upsert it; returns rows written"""
        instruments = self._client.get_stock_basic()
        written = self._instruments.upsert_many(instruments)
        self._logger.info("stock_basic_saved", fetched=len(instruments), written=written)
        return written

    def list_instruments(self, page: int = 1, page_size: int = 20) -> Page[StockBasicOut]:
        return self._instruments.list_instruments(page, page_size)

    def get_instrument(self, ts_code: str) -> StockBasicOut | None:
        return self._instruments.get_by_code(ts_code)

    def query_bars(
        self,
        frequency: Frequency | str,
        ts_code: str | None = None,
        trade_date: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        page: int = 1,
        page_size: int = 100,
    ) -> Page[BarOut]:
        return self._bars.query_bars(
            frequency, ts_code, trade_date, start_date, end_date, page, page_size
        )


def _join(notes: list[str]) -> str | None:
    return "; ".join(notes) if notes else None
