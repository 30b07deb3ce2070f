from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest
from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from stockdata.config import DatabaseSettings, TushareSettings
from stockdata.db.dao import _mk_engine, init_db
from stockdata.tushare.client import TushareClient

Handler = Callable[[str, dict[str, Any]], dict[str, Any]]


def table(fields: list[str], *items: list[Any]) -> dict[str, Any]:
    """Successful Tushare response body"""
    return {"code": 0, "msg": "", "data": {"fields": fields, "items": [list(i) for i in items]}}


@pytest.fixture(name="table")
def table_fixture() -> Callable[..., dict[str, Any]]:
    return table


@pytest.fixture
def engine(tmp_path: Path) -> Engine:
    db = DatabaseSettings(url=f"sqlite:///{tmp_path / 'test.sqlite3'}")
    return init_db(_mk_engine(db))


@pytest.fixture
def row_count(engine: Engine) -> Callable[..., int]:
    """Count rows of a model, optionally filtered by column equality"""

    def count(model: Any, **filters: Any) -> int:
        query = select(func.count()).select_from(model)
        for name, value in filters.items():
            query = query.where(getattr(model, name) == value)
        with Session(engine) as session:
            return session.scalar(query) or 0

    return count


@pytest.fixture
def make_client() -> Iterator[Callable[..., TushareClient]]:
    """Build a client whose HTTP calls are answered by ``handler(api_name, params)``"""
    clients: list[TushareClient] = []

    def build(handler: Handler, retry: int = 3) -> TushareClient:
        def respond(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            return httpx.Response(200, json=handler(payload["api_name"], payload["params"]))

        config = TushareSettings(token="test-token", retry=retry, retry_backoff=0)
        client = TushareClient(config, transport=httpx.MockTransport(respond), sleep=lambda s: None)
        clients.append(client)
        return client

    yield build

    for client in clients:
        client.close()
