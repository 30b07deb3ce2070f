"""HTTP client for the Tushare Pro API with retry logic."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from ..config import TushareSettings
from ..errors import ConfigurationError, StockDataError
from .models import (
    StockBasicData,
    StockDailyData,
    StockWeekMonthData,
    TradeCal,
    TushareTable,
)


class TushareAPIError(StockDataError):
    """Transport failure or non-zero ``code`` answered by the API."""

    def __init__(
        self, message: str, code: int | None = None, status_code: int | None = None
    ) -> None:
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class TushareClient:
    """Synchronous Tushare client.

    One ``httpx.Client`` is shared by every caller so connections are reused
    across worker threads. Each query is retried ``retry`` extra times with a
    linear backoff (attempt *i* sleeps ``i * retry_backoff`` seconds).
    """

    def __init__(
        self,
        config: TushareSettings,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if not config.token:
            raise ConfigurationError(
                "Tushare token is required. Set TUSHARE_TOKEN in your .env file or environment."
            )
        self.config = config
        self._sleep = sleep
        self._logger = logger or structlog.get_logger("tushare")
        self._client = httpx.Client(
            timeout=config.timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def __enter__(self) -> TushareClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self._logger.warning(
            "tushare_retry",
            attempt=retry_state.attempt_number,
            sleep=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(exc),
        )

    def _retrying(self) -> Retrying:
        backoff = self.config.retry_backoff
        return Retrying(
            stop=stop_after_attempt(self.config.retry + 1),
            wait=wait_incrementing(start=backoff, increment=backoff),
            retry=retry_if_exception_type(TushareAPIError),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Single POST; every failure mode is raised as TushareAPIError."""
        try:
            response = self._client.post(self.config.base_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise TushareAPIError(f"Request timeout: {e}") from e
        except httpx.HTTPStatusError as e:
            raise TushareAPIError(
                f"HTTP error: {e.response.status_code}", status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise TushareAPIError(f"Request failed: {e}") from e
        except ValueError as e:
            raise TushareAPIError(f"Invalid response body: {e}") from e

        if not isinstance(body, dict):
            raise TushareAPIError("Invalid response body: expected a JSON object")

        code = body.get("code", 0)
        if code != 0:
            raise TushareAPIError(str(body.get("msg") or f"API error code {code}"), code=code)

        return body

    def query(
        self, api_name: str, params: dict[str, Any] | None = None, fields: str = ""
    ) -> TushareTable:
        """Call one API endpoint and return its column/row table.

        Args:
            api_name: Endpoint name, e.g. ``daily`` or ``trade_cal``
            params: Endpoint parameters
            fields: Optional comma-separated column filter

        Returns:
            Decoded table (possibly empty)

        Raises:
            TushareAPIError: After all attempts failed; carries the last error
        """
        payload: dict[str, Any] = {
            "api_name": api_name,
            "token": self.config.token,
            "params": params or {},
        }
        if fields:
            payload["fields"] = fields

        for attempt in self._retrying():
            with attempt:
                body = self._post(payload)

        return TushareTable.from_dict(body.get("data"))

    def get_stock_basic(self, list_status: str = "L") -> list[StockBasicData]:
        table = self.query("stock_basic", {"list_status": list_status})
        return [StockBasicData.from_row(row) for row in table.rows()]

    def get_daily_data(self, trade_date: str = "", ts_code: str = "") -> list[StockDailyData]:
        params: dict[str, Any] = {}
        if trade_date:
            params["trade_date"] = trade_date
        if ts_code:
            params["ts_code"] = ts_code

        table = self.query("daily", params)
        return [StockDailyData.from_row(row) for row in table.rows()]

    def get_trade_cal(
        self, start_date: str, end_date: str, is_open: int | None = None
    ) -> list[TradeCal]:
        """Trading calendar of the configured exchange.

        ``is_open=None`` returns open and closed days alike.
        """
        params: dict[str, Any] = {"exchange": self.config.exchange}
        if start_date:
            params["start_date"] = start_date
        if end_date:
            params["end_date"] = end_date
        if is_open is not None:
            params["is_open"] = is_open

        table = self.query("trade_cal", params)
        return [TradeCal.from_row(row) for row in table.rows()]

    def _get_week_month(self, freq: str, trade_date: str, ts_code: str) -> list[StockWeekMonthData]:
        params: dict[str, Any] = {"freq": freq}
        if trade_date:
            params["trade_date"] = trade_date
        if ts_code:
            params["ts_code"] = ts_code

        table = self.query("stk_week_month_adj", params)
        return [StockWeekMonthData.from_row(row) for row in table.rows()]

    def get_weekly_data(self, trade_date: str, ts_code: str = "") -> list[StockWeekMonthData]:
        return self._get_week_month("week", trade_date, ts_code)

    def get_monthly_data(self, trade_date: str, ts_code: str = "") -> list[StockWeekMonthData]:
        return self._get_week_month("month", trade_date, ts_code)
