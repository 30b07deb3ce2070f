"""
Instrument (stock_basic) repository implementation
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import Engine, select

from ..config import DEFAULT_BATCH_SIZE
from ..db.models import StockBasic
from ..dto import Page, StockBasicOut
from ..tushare.models import StockBasicData
from .base import BaseRepository


class InstrumentRepository(BaseRepository[StockBasic]):
    """Repository for StockBasic entities"""

    def __init__(self, engine: Engine, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        super().__init__(engine, StockBasic)
        self._batch_size = batch_size if batch_size > 0 else DEFAULT_BATCH_SIZE

    def upsert_many(self, instruments: Sequence[StockBasicData]) -> int:
        """Upsert instruments by ts_code, one transaction per batch"""
        written = 0

        for i in range(0, len(instruments), self._batch_size):
            chunk = instruments[i : i + self._batch_size]

            with self._session_scope() as session:
                codes = [item.ts_code for item in chunk if item.ts_code]
                existing = {
                    obj.ts_code: obj
                    for obj in session.scalars(
                        select(StockBasic).where(StockBasic.ts_code.in_(codes))
                    )
                }

                for item in chunk:
                    if not item.ts_code:
                        continue

                    data = item.to_dict()
                    obj = existing.get(item.ts_code)
                    if obj:
                        for key, value in data.items():
                            setattr(obj, key, value)
                    else:
                        obj = StockBasic(**data)
                        session.add(obj)
                        existing[item.ts_code] = obj
                    written += 1

        return written

    def get_by_code(self, ts_code: str) -> StockBasicOut | None:
        with self._session_scope() as session:
            obj = session.scalar(select(StockBasic).where(StockBasic.ts_code == ts_code))
            return StockBasicOut.model_validate(obj) if obj else None

    def listed_codes(self) -> list[str]:
        """ts_codes of every instrument whose list_status is 'L'"""
        with self._session_scope() as session:
            query = (
                select(StockBasic.ts_code)
                .where(StockBasic.list_status == "L")
                .order_by(StockBasic.ts_code)
            )
            return list(session.scalars(query).all())

    def list_instruments(self, page: int = 1, page_size: int = 20) -> Page[StockBasicOut]:
        page, page_size = self._normalize_page(page, page_size, 20)
        query = select(StockBasic).order_by(StockBasic.ts_code)

        with self._session_scope() as session:
            rows, total = self._fetch_page(session, query, page, page_size)
            items = [StockBasicOut.model_validate(row) for row in rows]

        return Page[StockBasicOut](items=items, total=total, page=page, page_size=page_size)
