from __future__ import annotations

from typing import Any

import sqlalchemy.event
from sqlalchemy import Engine, create_engine

from ..config import DatabaseSettings, settings
from .models import Base


def _mk_engine(db: DatabaseSettings | None = None) -> Engine:
    db = db or settings.database
    kwargs: dict[str, Any] = {
        "future": True,
        "echo": db.echo,
        "pool_pre_ping": True,
        "pool_recycle": db.conn_max_lifetime,
    }

    is_sqlite = db.url.startswith("sqlite")
    if is_sqlite:
        # Units write from worker threads; rely on the busy timeout for lock contention
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
    else:
        kwargs["pool_size"] = max(db.max_idle_conns, 1)
        kwargs["max_overflow"] = max(db.max_open_conns - db.max_idle_conns, 0)

    engine = create_engine(db.url, **kwargs)

    if is_sqlite:

        @sqlalchemy.event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA temp_store=MEMORY")
            cursor.close()

    return engine


def init_db(engine: Engine) -> Engine:
    """Create all tables that do not exist yet"""
    Base.metadata.create_all(engine)
    return engine

