from typing import Any

import httpx
import pytest

from stockdata.config import TushareSettings
from stockdata.errors import ConfigurationError
from stockdata.tushare.client import TushareAPIError, TushareClient

DAILY_FIELDS = ["ts_code", "trade_date", "open", "high", "low", "close", "vol"]


class Flip:
    def __init__(self, failures: int, status: int = 500) -> None:
        self.n = 0
        self.failures = failures
        self.status = status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.n += 1
        if self.n <= self.failures:
            return httpx.Response(self.status, request=request)
        body = {
            "code": 0,
            "msg": "",
            "data": {"fields": DAILY_FIELDS, "items": [["000001.SZ", "20240102", 9.1, 9.4, 9.0, 9.3, 1200.0]]},
        }
        return httpx.Response(200, json=body, request=request)


def _client(handler: Any, retry: int = 3) -> tuple[TushareClient, list[float]]:
    sleeps: list[float] = []
    config = TushareSettings(token="t", retry=retry, retry_backoff=0.5)
    client = TushareClient(config, transport=httpx.MockTransport(handler), sleep=sleeps.append)
    return client, sleeps


def test_retries_until_success() -> None:
    flip = Flip(failures=2)
    client, sleeps = _client(flip)
    with client:
        rows = client.get_daily_data(trade_date="20240102")

    assert flip.n == 3
    assert len(rows) == 1
    assert rows[0].close == 9.3
    # linear backoff: attempt i waits i * retry_backoff
    assert sleeps == [0.5, 1.0]


def test_gives_up_after_retry_budget() -> None:
    flip = Flip(failures=10, status=502)
    with _client(flip, retry=2)[0] as client:
        with pytest.raises(TushareAPIError) as exc:
            client.query("daily", {"trade_date": "20240102"})

    assert flip.n == 3
    assert exc.value.status_code == 502


def test_zero_retry_means_single_attempt() -> None:
    flip = Flip(failures=1)
    with _client(flip, retry=0)[0] as client:
        with pytest.raises(TushareAPIError):
            client.query("daily")
    assert flip.n == 1


def test_api_error_message_surfaced_verbatim(make_client: Any) -> None:
    client = make_client(lambda api, params: {"code": 40203, "msg": "抱歉，您每分钟最多访问该接口200次", "data": None}, retry=0)

    with pytest.raises(TushareAPIError) as exc:
        client.query("daily")

    assert str(exc.value) == "抱歉，您每分钟最多访问该接口200次"
    assert exc.value.code == 40203


def test_request_payload(make_client: Any, table: Any) -> None:
    seen: list[tuple[str, dict[str, Any]]] = []

    def handler(api: str, params: dict[str, Any]) -> dict[str, Any]:
        seen.append((api, params))
        return table(["ts_code"])

    client = make_client(handler)
    client.get_weekly_data("20240105")
    client.get_monthly_data("20240131", ts_code="600000.SH")
    client.get_trade_cal("20240101", "20240131")

    assert seen == [
        ("stk_week_month_adj", {"freq": "week", "trade_date": "20240105"}),
        ("stk_week_month_adj", {"freq": "month", "trade_date": "20240131", "ts_code": "600000.SH"}),
        ("trade_cal", {"exchange": "SSE", "start_date": "20240101", "end_date": "20240131"}),
    ]


def test_empty_data_is_empty_list(make_client: Any) -> None:
    client = make_client(lambda api, params: {"code": 0, "msg": "", "data": None})
    assert client.get_daily_data(trade_date="20240102") == []


def test_invalid_json_is_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>", request=request)

    with _client(handler, retry=0)[0] as client:
        with pytest.raises(TushareAPIError):
            client.query("daily")


def test_empty_token_rejected() -> None:
    with pytest.raises(ConfigurationError):
        TushareClient(TushareSettings(token=""))


def test_placeholder_token_rejected() -> None:
    with pytest.raises(ValueError):
        TushareSettings(token="your_tushare_token_here")
