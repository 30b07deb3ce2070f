from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_TOKEN = "your_tushare_token_here"

DEFAULT_CONCURRENCY = 10
DEFAULT_BATCH_SIZE = 1000


class TushareSettings(BaseSettings):
    token: str = ""
    base_url: str = "http://api.tushare.pro"
    timeout: int = 30
    retry: int = 3
    # Linear backoff unit: attempt i sleeps i * retry_backoff seconds
    retry_backoff: float = 1.0
    exchange: str = "SSE"

    model_config = SettingsConfigDict(env_prefix="TUSHARE_", env_file=".env", extra="ignore")

    @field_validator("token")
    @classmethod
    def reject_placeholder(cls, v: str) -> str:
        v = (v or "").strip()
        if v == PLACEHOLDER_TOKEN:
            raise ValueError("Tushare token is still the placeholder value")
        return v

    @field_validator("retry")
    @classmethod
    def non_negative_retry(cls, v: int) -> int:
        return max(v, 0)


class DatabaseSettings(BaseSettings):
    url: str = "sqlite:///stock_data.sqlite3"
    max_open_conns: int = 20
    max_idle_conns: int = 10
    conn_max_lifetime: int = 3600
    echo: bool = False

    model_config = SettingsConfigDict(env_prefix="DB_", env_file=".env", extra="ignore")


class FetcherSettings(BaseSettings):
    concurrency: int = DEFAULT_CONCURRENCY
    batch_size: int = DEFAULT_BATCH_SIZE
    rate_limit: int = 200  # requests per minute
    start_date: str | None = None
    end_date: str | None = None
    max_jobs: int = 4

    model_config = SettingsConfigDict(env_prefix="FETCHER_", env_file=".env", extra="ignore")

    @field_validator("concurrency")
    @classmethod
    def default_concurrency(cls, v: int) -> int:
        return v if v > 0 else DEFAULT_CONCURRENCY

    @field_validator("batch_size")
    @classmethod
    def default_batch_size(cls, v: int) -> int:
        return v if v > 0 else DEFAULT_BATCH_SIZE


class LogSettings(BaseSettings):
    level: str = "info"
    file: str | None = "logs/stock_data.log"

    model_config = SettingsConfigDict(env_prefix="LOG_", env_file=".env", extra="ignore")


class Settings(BaseSettings):
    # Nested settings
    tushare: TushareSettings = Field(default_factory=TushareSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    fetcher: FetcherSettings = Field(default_factory=FetcherSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(env_file=".env", env_prefix="", extra="ignore")


settings = Settings()
