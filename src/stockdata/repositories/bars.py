"""
Price bar repository: chunked bulk inserts and paged queries
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import structlog
from sqlalchemy import Engine, and_, insert, select

from ..config import DEFAULT_BATCH_SIZE
from ..db.models import StockDaily, StockMonthly, StockWeekly
from ..dto import BarOut, Frequency, Page
from ..tushare.models import StockDailyData, StockWeekMonthData
from .base import BaseRepository

BarModel = type[StockDaily] | type[StockWeekly] | type[StockMonthly]

_MODELS: dict[Frequency, Any] = {
    Frequency.DAILY: StockDaily,
    Frequency.DAILY_BY_STOCK: StockDaily,
    Frequency.WEEKLY: StockWeekly,
    Frequency.MONTHLY: StockMonthly,
}


def parse_ymd(value: str) -> date:
    """Parse a provider YYYYMMDD string; raises ValueError on anything else"""
    return datetime.strptime(value, "%Y%m%d").date()


def daily_to_row(data: StockDailyData) -> dict[str, Any]:
    return {
        "ts_code": data.ts_code,
        "trade_date": parse_ymd(data.trade_date),
        "open": data.open,
        "high": data.high,
        "low": data.low,
        "close": data.close,
        "pre_close": data.pre_close,
        "change": data.change,
        "pct_chg": data.pct_chg,
        "vol": data.vol,
        "amount": data.amount,
    }


def week_month_to_row(data: StockWeekMonthData) -> dict[str, Any]:
    return {
        "ts_code": data.ts_code,
        "trade_date": parse_ymd(data.trade_date),
        "end_date": parse_ymd(data.end_date),
        "open": data.open,
        "high": data.high,
        "low": data.low,
        "close": data.close,
        "pre_close": data.pre_close,
        "open_qfq": data.open_qfq,
        "high_qfq": data.high_qfq,
        "low_qfq": data.low_qfq,
        "close_qfq": data.close_qfq,
        "open_hfq": data.open_hfq,
        "high_hfq": data.high_hfq,
        "low_hfq": data.low_hfq,
        "close_hfq": data.close_hfq,
        "vol": data.vol,
        "amount": data.amount,
        "change": data.change,
        "pct_chg": data.pct_chg,
    }


@dataclass
class InsertResult:
    """Outcome of one chunked insert call"""

    inserted: int = 0
    dropped: int = 0
    batches: int = 0


class BarRepository(BaseRepository[StockDaily]):
    """Insert-only storage for daily, weekly and monthly bars.

    Input is cut into ``batch_size`` chunks and each chunk is written with one
    bulk INSERT in its own transaction. Records with an unparseable date are
    dropped from their chunk and logged; the rest of the chunk is still written.
    A failing INSERT raises and leaves earlier chunks committed.
    """

    def __init__(
        self,
        engine: Engine,
        batch_size: int = DEFAULT_BATCH_SIZE,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        super().__init__(engine, StockDaily)
        self._batch_size = batch_size if batch_size > 0 else DEFAULT_BATCH_SIZE
        self._logger = logger or structlog.get_logger("bars")

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def _insert_chunked(
        self,
        model: BarModel,
        records: Sequence[Any],
        to_row: Callable[[Any], dict[str, Any]],
    ) -> InsertResult:
        result = InsertResult()

        for i in range(0, len(records), self._batch_size):
            chunk = records[i : i + self._batch_size]
            result.batches += 1

            rows = []
            for record in chunk:
                try:
                    rows.append(to_row(record))
                except ValueError:
                    result.dropped += 1
                    self._logger.warning(
                        "bar_dropped_bad_date",
                        table=model.__tablename__,
                        ts_code=record.ts_code,
                        trade_date=record.trade_date,
                        end_date=getattr(record, "end_date", None),
                    )

            if not rows:
                continue

            with self._session_scope() as session:
                session.execute(insert(model), rows)
            result.inserted += len(rows)

        return result

    def insert_daily(self, records: Sequence[StockDailyData]) -> InsertResult:
        return self._insert_chunked(StockDaily, records, daily_to_row)

    def insert_weekly(self, records: Sequence[StockWeekMonthData]) -> InsertResult:
        return self._insert_chunked(StockWeekly, records, week_month_to_row)

    def insert_monthly(self, records: Sequence[StockWeekMonthData]) -> InsertResult:
        return self._insert_chunked(StockMonthly, records, week_month_to_row)

    def query_bars(
        self,
        frequency: Frequency,
        ts_code: str | None = None,
        trade_date: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        page: int = 1,
        page_size: int = 100,
    ) -> Page[BarOut]:
        """Get bars filtered by instrument and/or date range, newest first"""
        model = _MODELS[Frequency(frequency)]
        page, page_size = self._normalize_page(page, page_size, 100)

        conditions = []
        if ts_code:
            conditions.append(model.ts_code == ts_code)
        if trade_date:
            conditions.append(model.trade_date == parse_ymd(trade_date))
        if start_date:
            conditions.append(model.trade_date >= parse_ymd(start_date))
        if end_date:
            conditions.append(model.trade_date <= parse_ymd(end_date))

        query = select(model).order_by(model.trade_date.desc(), model.ts_code)
        if conditions:
            query = query.where(and_(*conditions))

        with self._session_scope() as session:
            rows, total = self._fetch_page(session, query, page, page_size)
            items = [BarOut.model_validate(row) for row in rows]

        return Page[BarOut](items=items, total=total, page=page, page_size=page_size)
