"""Data models for Tushare API payloads.

The API answers every query with a column/row table. Columns can be missing or
reordered between endpoints, so rows are always read by column name through the
typed accessors on :class:`TushareRow`. Accessors never raise: a missing column,
a null cell or a cell of the wrong type reads as the zero value of the type.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, fields
from typing import Any


@dataclass
class TushareRow:
    """One row of a Tushare table with name-based, type-tolerant access."""

    index: dict[str, int]
    values: list[Any]

    def _cell(self, name: str) -> Any:
        i = self.index.get(name)
        if i is None or i >= len(self.values):
            return None
        return self.values[i]

    def get_str(self, name: str) -> str:
        value = self._cell(name)
        return value if isinstance(value, str) else ""

    def get_float(self, name: str) -> float:
        value = self._cell(name)
        # bool is an int subclass but never a numeric field
        if isinstance(value, bool) or not isinstance(value, int | float):
            return 0.0
        return float(value)

    def get_int(self, name: str) -> int:
        return int(self.get_float(name))


@dataclass
class TushareTable:
    """Column names plus heterogeneous rows, as returned in ``data``."""

    fields: list[str] = field(default_factory=list)
    items: list[list[Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TushareTable:
        data = data or {}
        columns = data.get("fields") or []
        items = data.get("items") or []
        return cls(
            fields=[str(c) for c in columns],
            items=[list(row) if isinstance(row, list | tuple) else [] for row in items],
        )

    def __len__(self) -> int:
        return len(self.items)

    def rows(self) -> Iterator[TushareRow]:
        index = {name: i for i, name in enumerate(self.fields)}
        for item in self.items:
            yield TushareRow(index, item)


def _string_fields(cls: type) -> set[str]:
    return {f.name for f in fields(cls) if f.type in ("str", str)}


def _read_row(cls: type, row: TushareRow) -> dict[str, Any]:
    strings = _string_fields(cls)
    return {
        f.name: row.get_str(f.name) if f.name in strings else row.get_float(f.name)
        for f in fields(cls)
    }


@dataclass
class StockBasicData:
    ts_code: str
    symbol: str = ""
    name: str = ""
    area: str = ""
    industry: str = ""
    market: str = ""
    list_date: str = ""
    list_status: str = ""

    @classmethod
    def from_row(cls, row: TushareRow) -> StockBasicData:
        return cls(**_read_row(cls, row))

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class TradeCal:
    """Trading calendar entry (exchange, day, open flag, previous open day)."""

    exchange: str
    cal_date: str
    is_open: int
    pretrade_date: str = ""

    @classmethod
    def from_row(cls, row: TushareRow) -> TradeCal:
        return cls(
            exchange=row.get_str("exchange"),
            cal_date=row.get_str("cal_date"),
            is_open=row.get_int("is_open"),
            pretrade_date=row.get_str("pretrade_date"),
        )


@dataclass
class StockDailyData:
    """Daily bar. Dates stay as YYYYMMDD strings until persisted."""

    ts_code: str
    trade_date: str
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0
    pre_close: float = 0.0
    change: float = 0.0
    pct_chg: float = 0.0
    vol: float = 0.0
    amount: float = 0.0

    @classmethod
    def from_row(cls, row: TushareRow) -> StockDailyData:
        return cls(**_read_row(cls, row))


@dataclass
class StockWeekMonthData:
    """Weekly or monthly bar from ``stk_week_month_adj``.

    Carries unadjusted, forward-adjusted (qfq) and backward-adjusted (hfq)
    prices; ``end_date`` is the last calendar day the bar covers.
    """

    ts_code: str
    trade_date: str
    end_date: str = ""

    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0
    pre_close: float = 0.0

    open_qfq: float = 0.0
    high_qfq: float = 0.0
    low_qfq: float = 0.0
    close_qfq: float = 0.0

    open_hfq: float = 0.0
    high_hfq: float = 0.0
    low_hfq: float = 0.0
    close_hfq: float = 0.0

    vol: float = 0.0
    amount: float = 0.0

    change: float = 0.0
    pct_chg: float = 0.0

    @classmethod
    def from_row(cls, row: TushareRow) -> StockWeekMonthData:
        return cls(**_read_row(cls, row))
