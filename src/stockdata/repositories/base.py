"""
Base repository pattern with generic type support
"""

from __future__ import annotations

from abc import ABC
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

from sqlalchemy import Engine, Select, func, select
from sqlalchemy.orm import Session

from ..db.models import Base

T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """Base repository with common query helpers"""

    def __init__(self, engine: Engine, model_class: type[T]) -> None:
        self._engine = engine
        self._model_class = model_class

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope for database operations"""
        with Session(self._engine, autoflush=False, expire_on_commit=False) as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    @staticmethod
    def _normalize_page(page: int, page_size: int, default_size: int) -> tuple[int, int]:
        return max(page, 1), page_size if page_size > 0 else default_size

    def _fetch_page(
        self, session: Session, query: Select[Any], page: int, page_size: int
    ) -> tuple[list[T], int]:
        """Run a select for one page and the unpaged total"""
        total = session.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
        rows = session.scalars(query.limit(page_size).offset((page - 1) * page_size)).all()
        return list(rows), total or 0
