"""Command line entry point."""

from __future__ import annotations

import sys
import time
from argparse import ArgumentParser, ArgumentTypeError, Namespace
from collections.abc import Sequence
from datetime import datetime

import structlog
from pydantic import BaseModel

from .config import settings
from .container import ApplicationContainer, get_container
from .dto import Frequency, TaskStatus
from .errors import StockDataError


def ymd(value: str) -> str:
    """argparse type for YYYYMMDD dates"""
    value = value.strip()
    try:
        datetime.strptime(value, "%Y%m%d")
    except ValueError:
        raise ArgumentTypeError(f"expected a YYYYMMDD date, got {value!r}") from None
    return value


def _print(model: BaseModel) -> None:
    print(model.model_dump_json(indent=2))


def cmd_init_db(container: ApplicationContainer, args: Namespace) -> int:
    container.schema()
    print(f"Database ready: {settings.database.url}")
    return 0


def cmd_fetch_basic(container: ApplicationContainer, args: Namespace) -> int:
    container.schema()
    written = container.fetch_service().fetch_stock_basic()
    print(f"Saved {written} instruments")
    return 0


def cmd_fetch(container: ApplicationContainer, args: Namespace) -> int:
    start = args.start or settings.fetcher.start_date
    end = args.end or settings.fetcher.end_date
    if not start or not end:
        raise StockDataError("--start and --end are required (or set FETCHER_START_DATE/FETCHER_END_DATE)")

    container.schema()
    service = container.fetch_service()
    task_id = service.start_fetch(args.frequency, start, end, concurrency=args.concurrency)
    print(f"Started task {task_id}")

    try:
        while True:
            task = service.get_progress(task_id)
            if task.is_terminal:
                break
            print(
                f"{task.status.value} {task.progress}% "
                f"({task.success_count} ok, {task.failed_count} failed of {task.total_count})"
            )
            time.sleep(args.poll)
    except KeyboardInterrupt:
        service.cancel(task_id)
        print("Cancelling: waiting for in-flight units to finish")

    service.shutdown(wait=True, cancel=False)
    task = service.get_progress(task_id)
    _print(task)
    return 0 if task.status is TaskStatus.COMPLETED else 1


def cmd_progress(container: ApplicationContainer, args: Namespace) -> int:
    _print(container.task_repository().get_by_task_id(args.task_id))
    return 0


def cmd_tasks(container: ApplicationContainer, args: Namespace) -> int:
    _print(container.task_repository().list_tasks(args.page, args.page_size))
    return 0


def cmd_stocks(container: ApplicationContainer, args: Namespace) -> int:
    repo = container.instrument_repository()
    if args.code:
        instrument = repo.get_by_code(args.code)
        if instrument is None:
            print(f"Instrument not found: {args.code}", file=sys.stderr)
            return 1
        _print(instrument)
        return 0

    _print(repo.list_instruments(args.page, args.page_size))
    return 0


def cmd_bars(container: ApplicationContainer, args: Namespace) -> int:
    page = container.bar_repository().query_bars(
        args.frequency,
        ts_code=args.code,
        trade_date=args.date,
        start_date=args.start,
        end_date=args.end,
        page=args.page,
        page_size=args.page_size,
    )
    _print(page)
    return 0


def _add_paging(parser: ArgumentParser, page_size: int) -> None:
    parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    parser.add_argument(
        "--page-size", type=int, default=page_size, help=f"Rows per page (default: {page_size})"
    )


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="stockdata", description="Tushare stock data fetcher")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        help=f"Logging level (default: {settings.log.level})",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create database tables")
    p.set_defaults(handler=cmd_init_db)

    p = sub.add_parser("fetch-basic", help="Fetch the listed instrument list")
    p.set_defaults(handler=cmd_fetch_basic)

    p = sub.add_parser("fetch", help="Fetch bars for a date range")
    p.add_argument("frequency", choices=[f.value for f in Frequency])
    p.add_argument("--start", type=ymd, help="Start date, YYYYMMDD")
    p.add_argument("--end", type=ymd, help="End date, YYYYMMDD")
    p.add_argument(
        "--concurrency",
        type=int,
        help=f"Max concurrent units (default: {settings.fetcher.concurrency})",
    )
    p.add_argument(
        "--poll", type=float, default=5.0, help="Seconds between progress reports (default: 5)"
    )
    p.set_defaults(handler=cmd_fetch)

    p = sub.add_parser("progress", help="Show one fetch task")
    p.add_argument("task_id")
    p.set_defaults(handler=cmd_progress)

    p = sub.add_parser("tasks", help="List fetch tasks, newest first")
    _add_paging(p, 10)
    p.set_defaults(handler=cmd_tasks)

    p = sub.add_parser("stocks", help="List stored instruments")
    p.add_argument("--code", help="Show a single instrument by ts_code")
    _add_paging(p, 20)
    p.set_defaults(handler=cmd_stocks)

    p = sub.add_parser("bars", help="Query stored bars")
    p.add_argument("frequency", choices=[Frequency.DAILY.value, Frequency.WEEKLY.value, Frequency.MONTHLY.value])
    p.add_argument("--code", help="ts_code filter")
    p.add_argument("--date", type=ymd, help="Exact trade date, YYYYMMDD")
    p.add_argument("--start", type=ymd, help="Range start, YYYYMMDD")
    p.add_argument("--end", type=ymd, help="Range end, YYYYMMDD")
    _add_paging(p, 100)
    p.set_defaults(handler=cmd_bars)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    container = get_container()
    if args.log_level:
        container.config.log.level.from_value(args.log_level)
    container.logging_setup.init()
    logger = structlog.get_logger("cli")

    try:
        return args.handler(container, args)
    except StockDataError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        container.shutdown_resources()


if __name__ == "__main__":
    sys.exit(main())
