from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

PRICE = Numeric(10, 2, asdecimal=False)
PCT = Numeric(10, 4, asdecimal=False)
VOLUME = Numeric(20, 2, asdecimal=False)


def _now() -> datetime:
    return datetime.now()


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class StockBasic(Base):
    __tablename__ = "stock_basic"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    symbol: Mapped[str | None] = mapped_column(String(10))
    name: Mapped[str | None] = mapped_column(String(50))
    area: Mapped[str | None] = mapped_column(String(20))
    industry: Mapped[str | None] = mapped_column(String(50))
    market: Mapped[str | None] = mapped_column(String(10))
    list_date: Mapped[str | None] = mapped_column(String(8))
    list_status: Mapped[str | None] = mapped_column(String(1))  # L/D/P
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


class FetchTask(Base):
    __tablename__ = "fetch_tasks"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    start_date: Mapped[str] = mapped_column(String(8))
    end_date: Mapped[str] = mapped_column(String(8))
    status: Mapped[str] = mapped_column(String(20))  # pending/running/completed/failed
    progress: Mapped[int] = mapped_column(Integer, default=0)
    total_count: Mapped[int] = mapped_column(Integer, default=0)
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, default=0)
    error_msg: Mapped[str | None] = mapped_column(Text)
    start_time: Mapped[datetime] = mapped_column(DateTime, default=_now)
    end_time: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


class StockDaily(Base):
    __tablename__ = "stock_daily"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts_code: Mapped[str] = mapped_column(String(20), nullable=False)
    trade_date: Mapped[date] = mapped_column(Date, nullable=False)
    open: Mapped[float | None] = mapped_column(PRICE)
    high: Mapped[float | None] = mapped_column(PRICE)
    low: Mapped[float | None] = mapped_column(PRICE)
    close: Mapped[float | None] = mapped_column(PRICE)
    pre_close: Mapped[float | None] = mapped_column(PRICE)
    change: Mapped[float | None] = mapped_column(PRICE)
    pct_chg: Mapped[float | None] = mapped_column(PCT)
    vol: Mapped[float | None] = mapped_column(VOLUME)  # lots
    amount: Mapped[float | None] = mapped_column(VOLUME)  # thousand CNY
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)

    __table_args__ = (
        Index("idx_ts_code_date", "ts_code", "trade_date"),
        Index("idx_trade_date", "trade_date"),
    )


class _AdjustedBarMixin:
    """Columns shared by the weekly and monthly adjusted bar tables."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts_code: Mapped[str] = mapped_column(String(20), nullable=False)
    trade_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)

    # Unadjusted
    open: Mapped[float | None] = mapped_column(PRICE)
    high: Mapped[float | None] = mapped_column(PRICE)
    low: Mapped[float | None] = mapped_column(PRICE)
    close: Mapped[float | None] = mapped_column(PRICE)
    pre_close: Mapped[float | None] = mapped_column(PRICE)

    # Forward adjusted
    open_qfq: Mapped[float | None] = mapped_column(PRICE)
    high_qfq: Mapped[float | None] = mapped_column(PRICE)
    low_qfq: Mapped[float | None] = mapped_column(PRICE)
    close_qfq: Mapped[float | None] = mapped_column(PRICE)

    # Backward adjusted
    open_hfq: Mapped[float | None] = mapped_column(PRICE)
    high_hfq: Mapped[float | None] = mapped_column(PRICE)
    low_hfq: Mapped[float | None] = mapped_column(PRICE)
    close_hfq: Mapped[float | None] = mapped_column(PRICE)

    vol: Mapped[float | None] = mapped_column(VOLUME)
    amount: Mapped[float | None] = mapped_column(VOLUME)

    change: Mapped[float | None] = mapped_column(PRICE)
    pct_chg: Mapped[float | None] = mapped_column(PCT)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


class StockWeekly(_AdjustedBarMixin, Base):
    __tablename__ = "stock_weekly"

    __table_args__ = (
        Index("idx_weekly_ts_code_date", "ts_code", "trade_date"),
        Index("idx_weekly_trade_date", "trade_date"),
    )


class StockMonthly(_AdjustedBarMixin, Base):
    __tablename__ = "stock_monthly"

    __table_args__ = (
        Index("idx_monthly_ts_code_date", "ts_code", "trade_date"),
        Index("idx_monthly_trade_date", "trade_date"),
    )
