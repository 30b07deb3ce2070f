"""Tushare Pro API client and payload models."""

from .client import TushareAPIError, TushareClient
from .models import (
    StockBasicData,
    StockDailyData,
    StockWeekMonthData,
    TradeCal,
    TushareRow,
    TushareTable,
)

__all__ = [
    "StockBasicData",
    "StockDailyData",
    "StockWeekMonthData",
    "TradeCal",
    "TushareAPIError",
    "TushareClient",
    "TushareRow",
    "TushareTable",
]
