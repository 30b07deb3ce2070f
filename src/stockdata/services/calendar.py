"""Trading calendar resolution: which dates of a range need a remote fetch.

Dates travel as ``YYYYMMDD`` strings, the provider's format, so for valid
values string order equals chronological order.
"""

from __future__ import annotations

import calendar
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

import structlog

from ..dto import Frequency
from ..tushare.client import TushareClient

DATE_FMT = "%Y%m%d"

SOURCE_CALENDAR = "trade_cal"
SOURCE_FALLBACK = "fallback"


def to_date(value: str) -> date:
    return datetime.strptime(value, DATE_FMT).date()


def to_str(value: date) -> str:
    return value.strftime(DATE_FMT)


@dataclass(frozen=True)
class ResolvedDates:
    """Ordered dates to fetch plus where they came from."""

    dates: list[str] = field(default_factory=list)
    source: str = SOURCE_CALENDAR

    @property
    def is_fallback(self) -> bool:
        return self.source == SOURCE_FALLBACK

    def __len__(self) -> int:
        return len(self.dates)


def last_per_week(dates: Sequence[str]) -> list[str]:
    """Keep the latest date of each ISO (year, week), in week order.

    Args:
        dates: Ascending YYYYMMDD dates

    Returns:
        One date per ISO week present in the input
    """
    weeks: dict[tuple[int, int], str] = {}
    for value in dates:
        year, week, _ = to_date(value).isocalendar()
        key = (year, week)
        if key not in weeks or value > weeks[key]:
            weeks[key] = value
    return list(weeks.values())


def last_per_month(dates: Sequence[str], start: str, end: str) -> list[str]:
    """Keep the latest date of each calendar month intersecting [start, end].

    Months without any date in the input contribute nothing.
    """
    latest: dict[str, str] = {}
    for value in dates:
        if not start <= value <= end:
            continue
        month = value[:6]
        if month not in latest or value > latest[month]:
            latest[month] = value

    result = []
    current = to_date(start).replace(day=1)
    last = to_date(end)
    while current <= last:
        month = current.strftime("%Y%m")
        if month in latest:
            result.append(latest[month])
        current = _next_month(current)
    return result


def _next_month(d: date) -> date:
    return date(d.year + d.month // 12, d.month % 12 + 1, 1)


def weekday_dates(start: str, end: str) -> list[str]:
    """Every Monday-Friday date in [start, end]; empty for bad or inverted input"""
    try:
        current, last = to_date(start), to_date(end)
    except (TypeError, ValueError):
        return []

    dates = []
    while current <= last:
        if current.weekday() < 5:  # Monday = 0, Friday = 4
            dates.append(to_str(current))
        current += timedelta(days=1)
    return dates


def fallback_week_dates(start: str, end: str) -> list[str]:
    return last_per_week(weekday_dates(start, end))


def fallback_month_end_dates(start: str, end: str) -> list[str]:
    """Month ends clipped to ``end`` and rolled back from the weekend to Friday"""
    try:
        first, last = to_date(start), to_date(end)
    except (TypeError, ValueError):
        return []

    dates = []
    current = first.replace(day=1)
    while current <= last:
        month_end = current.replace(day=calendar.monthrange(current.year, current.month)[1])
        if month_end > last:
            month_end = last

        if month_end.weekday() == 5:  # Saturday
            month_end -= timedelta(days=1)
        elif month_end.weekday() == 6:  # Sunday
            month_end -= timedelta(days=2)

        if month_end >= first:
            dates.append(to_str(month_end))

        current = _next_month(current)
    return dates


class TradingCalendar:
    """Resolves fetch dates from the exchange calendar.

    The authoritative path asks the provider for the full calendar of the
    range (open and closed days). When that call fails, or the provider knows
    no calendar for the range at all, a weekday-only approximation is used
    instead; it ignores public holidays. ``resolve`` never raises.
    """

    def __init__(self, client: TushareClient, logger: structlog.BoundLogger | None = None) -> None:
        self._client = client
        self._logger = logger or structlog.get_logger("calendar")

    def trading_days(self, start: str, end: str) -> list[str] | None:
        """Ascending open days in [start, end], or None when no calendar is known"""
        entries = self._client.get_trade_cal(start, end)
        if not entries:
            return None

        days = set()
        for entry in entries:
            if entry.is_open != 1 or not start <= entry.cal_date <= end:
                continue
            try:
                to_date(entry.cal_date)
            except ValueError:
                continue
            days.add(entry.cal_date)
        return sorted(days)

    def resolve(self, frequency: Frequency, start: str, end: str) -> ResolvedDates:
        frequency = Frequency(frequency)
        try:
            to_date(start), to_date(end)
        except (TypeError, ValueError):
            self._logger.error("calendar_invalid_range", start_date=start, end_date=end)
            return ResolvedDates([], SOURCE_FALLBACK)

        if start > end:
            return ResolvedDates([], SOURCE_CALENDAR)

        try:
            days = self.trading_days(start, end)
        except Exception as e:
            self._logger.warning(
                "calendar_fallback",
                source=SOURCE_FALLBACK,
                reason="trade_cal call failed",
                error=str(e),
                start_date=start,
                end_date=end,
            )
            return self._fallback(frequency, start, end)

        if days is None:
            self._logger.warning(
                "calendar_fallback",
                source=SOURCE_FALLBACK,
                reason="trade_cal returned no entries",
                start_date=start,
                end_date=end,
            )
            return self._fallback(frequency, start, end)

        if frequency is Frequency.WEEKLY:
            dates = last_per_week(days)
        elif frequency is Frequency.MONTHLY:
            dates = last_per_month(days, start, end)
        else:
            dates = days

        self._logger.info(
            "calendar_resolved",
            source=SOURCE_CALENDAR,
            frequency=frequency.value,
            trading_days=len(days),
            dates=len(dates),
        )
        return ResolvedDates(dates, SOURCE_CALENDAR)

    def _fallback(self, frequency: Frequency, start: str, end: str) -> ResolvedDates:
        if frequency is Frequency.WEEKLY:
            dates = fallback_week_dates(start, end)
        elif frequency is Frequency.MONTHLY:
            dates = fallback_month_end_dates(start, end)
        else:
            dates = weekday_dates(start, end)

        self._logger.warning(
            "calendar_fallback_dates",
            source=SOURCE_FALLBACK,
            frequency=frequency.value,
            dates=len(dates),
        )
        return ResolvedDates(dates, SOURCE_FALLBACK)
