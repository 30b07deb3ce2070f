from datetime import date, timedelta
from typing import Any

import pytest

from stockdata.dto import Frequency
from stockdata.services.calendar import (
    SOURCE_CALENDAR,
    SOURCE_FALLBACK,
    TradingCalendar,
    fallback_month_end_dates,
    fallback_week_dates,
    last_per_week,
    to_date,
    weekday_dates,
)
from stockdata.tushare.client import TushareAPIError

CAL_FIELDS = ["exchange", "cal_date", "is_open", "pretrade_date"]

# New Year and Spring Festival closures inside the range
HOLIDAYS = {"20240101", "20240212", "20240213", "20240214", "20240215", "20240216"}


def calendar_rows(start: str, end: str, holidays: set[str] = HOLIDAYS) -> list[list[Any]]:
    rows = []
    day, last = to_date(start), to_date(end)
    while day <= last:
        value = day.strftime("%Y%m%d")
        is_open = int(day.weekday() < 5 and value not in holidays)
        rows.append(["SSE", value, is_open, ""])
        day += timedelta(days=1)
    # provider returns newest first
    return list(reversed(rows))


@pytest.fixture
def calendar(make_client: Any, table: Any) -> TradingCalendar:
    def handler(api: str, params: dict[str, Any]) -> dict[str, Any]:
        assert api == "trade_cal"
        return table(CAL_FIELDS, *calendar_rows(params["start_date"], params["end_date"]))

    return TradingCalendar(make_client(handler))


def test_daily_dates_are_open_days_ascending(calendar: TradingCalendar) -> None:
    resolved = calendar.resolve(Frequency.DAILY, "20240101", "20240110")

    assert resolved.source == SOURCE_CALENDAR
    assert resolved.dates == [
        "20240102", "20240103", "20240104", "20240105",
        "20240108", "20240109", "20240110",
    ]


def test_weekly_picks_last_open_day_per_iso_week(calendar: TradingCalendar) -> None:
    resolved = calendar.resolve(Frequency.WEEKLY, "20240205", "20240225")

    # Spring Festival week closes Monday to Friday, so it has no date at all
    assert resolved.dates == ["20240209", "20240223"]
    weeks = [to_date(d).isocalendar()[:2] for d in resolved.dates]
    assert len(weeks) == len(set(weeks))


def test_monthly_picks_last_open_day_per_month(calendar: TradingCalendar) -> None:
    resolved = calendar.resolve(Frequency.MONTHLY, "20240101", "20240331")
    assert resolved.dates == ["20240131", "20240229", "20240329"]


def test_monthly_partial_month_uses_range_end(calendar: TradingCalendar) -> None:
    resolved = calendar.resolve(Frequency.MONTHLY, "20240115", "20240214")
    assert resolved.dates == ["20240131", "20240209"]


def test_closed_day_range_is_empty_not_fallback(make_client: Any, table: Any) -> None:
    client = make_client(lambda api, params: table(CAL_FIELDS, ["SSE", "20231201", 0, "20231130"]))
    resolved = TradingCalendar(client).resolve(Frequency.DAILY, "20231201", "20231201")

    assert resolved.dates == []
    assert resolved.source == SOURCE_CALENDAR


def test_calendar_error_falls_back_to_weekdays(make_client: Any) -> None:
    def handler(api: str, params: dict[str, Any]) -> dict[str, Any]:
        return {"code": 2002, "msg": "权限不足", "data": None}

    resolved = TradingCalendar(make_client(handler, retry=0)).resolve(
        Frequency.DAILY, "20240101", "20240107"
    )

    assert resolved.is_fallback
    # holidays are not known to the fallback
    assert resolved.dates == ["20240101", "20240102", "20240103", "20240104", "20240105"]


def test_empty_calendar_falls_back(make_client: Any, table: Any) -> None:
    client = make_client(lambda api, params: table(CAL_FIELDS))
    resolved = TradingCalendar(client).resolve(Frequency.MONTHLY, "20240101", "20240331")

    assert resolved.source == SOURCE_FALLBACK
    # 20240331 is a Sunday, rolled back to Friday
    assert resolved.dates == ["20240131", "20240229", "20240329"]


def test_resolve_never_raises_on_client_exception() -> None:
    class Broken:
        def get_trade_cal(self, *args: Any, **kwargs: Any) -> Any:
            raise TushareAPIError("boom")

    resolved = TradingCalendar(Broken()).resolve(Frequency.WEEKLY, "20240101", "20240114")  # type: ignore[arg-type]
    assert resolved.dates == ["20240105", "20240112"]


def test_resolve_inverted_and_invalid_ranges(calendar: TradingCalendar) -> None:
    assert calendar.resolve(Frequency.DAILY, "20240110", "20240101").dates == []
    assert calendar.resolve(Frequency.DAILY, "2024-01-01", "20240110").dates == []


@pytest.mark.parametrize("start,end", [
    ("20240101", "20241231"),
    ("20230601", "20230615"),
    ("20240106", "20240107"),
    ("20240110", "20240101"),
    ("", ""),
    ("garbage", "20240101"),
])
def test_fallbacks_never_emit_weekends(start: str, end: str) -> None:
    for dates in (weekday_dates(start, end), fallback_week_dates(start, end), fallback_month_end_dates(start, end)):
        assert all(to_date(d).weekday() < 5 for d in dates)
        assert dates == sorted(dates)
        if start > end or not start:
            assert dates == []


def test_fallback_month_end_before_start_is_skipped() -> None:
    # 20240630 is a Sunday; rolled back to 20240628, which is before the start
    assert fallback_month_end_dates("20240629", "20240630") == []
    assert fallback_month_end_dates("20240601", "20240630") == ["20240628"]


def test_fallback_week_dates_one_per_week() -> None:
    dates = fallback_week_dates("20240101", "20240131")
    assert dates == ["20240105", "20240112", "20240119", "20240126", "20240131"]


def test_last_per_week_across_year_boundary() -> None:
    # 20241230 and 20250103 share ISO week 2025-W01
    assert last_per_week(["20241227", "20241230", "20241231", "20250102", "20250103"]) == [
        "20241227",
        "20250103",
    ]


def test_weekday_dates_count_over_a_year() -> None:
    dates = weekday_dates("20240101", "20241231")
    expected = sum(
        1 for i in range(366) if (date(2024, 1, 1) + timedelta(days=i)).weekday() < 5
    )
    assert len(dates) == expected
