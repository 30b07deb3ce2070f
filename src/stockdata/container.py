"""
Dependency Injection Container
Wires settings, database, Tushare client, repositories and the fetch service
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from pathlib import Path

import structlog
from dependency_injector import containers, providers
from sqlalchemy import Engine

from .config import TushareSettings, settings
from .db.dao import _mk_engine, init_db
from .repositories.bars import BarRepository
from .repositories.instrument import InstrumentRepository
from .repositories.task import TaskRepository
from .services.calendar import TradingCalendar
from .services.fetcher import FetchService
from .tushare.client import TushareClient


def configure_logging(level: str = "info", log_file: str | None = None) -> None:
    """Configure structured logging to stdout and, optionally, a log file"""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(message)s",
        handlers=handlers,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.render_to_log_kwargs,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _tushare_client(config: TushareSettings) -> Iterator[TushareClient]:
    client = TushareClient(config, logger=structlog.get_logger("tushare"))
    try:
        yield client
    finally:
        client.close()


class ApplicationContainer(containers.DeclarativeContainer):
    """Main DI container for the application"""

    # Configuration
    config = providers.Configuration()
    config.from_pydantic(settings)

    app_settings = providers.Object(settings)

    # Logging
    logging_setup = providers.Resource(
        configure_logging,
        level=config.log.level,
        log_file=config.log.file,
    )

    # Core Infrastructure
    db_engine: providers.Provider[Engine] = providers.Singleton(
        _mk_engine,
        db=app_settings.provided.database,
    )

    schema = providers.Singleton(init_db, engine=db_engine)

    tushare_client = providers.Resource(
        _tushare_client,
        config=app_settings.provided.tushare,
    )

    # Repositories

    task_repository = providers.Factory(
        TaskRepository,
        engine=db_engine,
    )

    bar_repository = providers.Factory(
        BarRepository,
        engine=db_engine,
        batch_size=config.fetcher.batch_size,
        logger=providers.Factory(structlog.get_logger, name="bars"),
    )

    instrument_repository = providers.Factory(
        InstrumentRepository,
        engine=db_engine,
        batch_size=config.fetcher.batch_size,
    )

    # Services

    trading_calendar = providers.Factory(
        TradingCalendar,
        client=tushare_client,
        logger=providers.Factory(structlog.get_logger, name="calendar"),
    )

    fetch_service = providers.Singleton(
        FetchService,
        client=tushare_client,
        calendar=trading_calendar,
        task_repository=task_repository,
        bar_repository=bar_repository,
        instrument_repository=instrument_repository,
        settings=app_settings.provided.fetcher,
        logger=providers.Factory(structlog.get_logger, name="fetcher"),
    )


# Global container instance
container = ApplicationContainer()


def get_container() -> ApplicationContainer:
    """Get the global container instance"""
    return container
