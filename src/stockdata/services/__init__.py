from .calendar import ResolvedDates, TradingCalendar
from .dispatch import ConcurrencyController, DispatchSummary, FetchUnit
from .fetcher import FetchService
from .progress import ProgressSnapshot, ProgressTracker
from .rate_limiter import RateLimiter

__all__ = [
    "ConcurrencyController",
    "DispatchSummary",
    "FetchService",
    "FetchUnit",
    "ProgressSnapshot",
    "ProgressTracker",
    "RateLimiter",
    "ResolvedDates",
    "TradingCalendar",
]
