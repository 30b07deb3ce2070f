"""Exception hierarchy shared across the package."""

from __future__ import annotations


class StockDataError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(StockDataError):
    """Raised when required configuration is missing or invalid."""


class InvalidFetchRequest(StockDataError):
    """Raised when a fetch request cannot be started (bad dates, unknown frequency)."""


class TaskNotFoundError(StockDataError):
    """Raised when a fetch task id does not exist."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Fetch task not found: {task_id}")


class TaskStateError(StockDataError):
    """Raised on an illegal task lifecycle transition."""
