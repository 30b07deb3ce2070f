from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    # One unit per (instrument, trading day) instead of one per trading day
    DAILY_BY_STOCK = "daily_by_stock"


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class FetchRequest(BaseModel):
    frequency: Frequency
    start_date: str = Field(..., min_length=8, max_length=8)
    end_date: str = Field(..., min_length=8, max_length=8)
    concurrency: Optional[int] = Field(None, gt=0)

    @field_validator("start_date", "end_date")
    @classmethod
    def yyyymmdd(cls, v: str) -> str:
        v = v.strip()
        datetime.strptime(v, "%Y%m%d")
        return v


class FetchTaskOut(BaseModel):
    task_id: str
    start_date: str
    end_date: str
    status: TaskStatus
    progress: int = 0
    total_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    error_msg: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int


class StockBasicOut(BaseModel):
    ts_code: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    area: Optional[str] = None
    industry: Optional[str] = None
    market: Optional[str] = None
    list_date: Optional[str] = None
    list_status: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BarOut(BaseModel):
    ts_code: str
    trade_date: date
    end_date: Optional[date] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    pre_close: Optional[float] = None
    change: Optional[float] = None
    pct_chg: Optional[float] = None
    vol: Optional[float] = None
    amount: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


TaskPage = Page[FetchTaskOut]
