from __future__ import annotations

import os
import time

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _is_postgres(database_url: str) -> bool:
    return database_url.startswith("postgresql")


def _ensure_sqlite_dir(database_url: str) -> None:
    """
    Ensure the parent folder exists for SQLite file-based DB URLs like:
      sqlite:///./data/membership.sqlite
      sqlite:////absolute/path/to/db.sqlite
    """
    if not database_url.startswith("sqlite:///"):
        return

    path = database_url.replace("sqlite:///", "", 1)
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)


def _sqlite_pragmas(engine: Engine) -> None:
    """
    Pragmas that make SQLite usable for multi-request local dev.
    foreign_keys=ON matters here: RSVPs, views and audit rows reference members.
    """

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):  # noqa: ANN001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout=5000;")
        cursor.close()


def _postgres_session_settings(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_postgres_settings(dbapi_connection, connection_record):  # noqa: ANN001
        cursor = dbapi_connection.cursor()
        # 30 seconds; reporting queries are small aggregates
        cursor.execute("SET statement_timeout = 30000;")
        cursor.close()


def make_engine(database_url: str) -> Engine:
    """
    Create the SQLAlchemy engine for one process.

    - SQLite gets pragmas + check_same_thread=False for FastAPI's threadpool
    - Postgres works by changing DATABASE_URL
    - Connecting is lazy; an unreachable store only surfaces on first use
    """
    connect_args = {"check_same_thread": False} if _is_sqlite(database_url) else {}

    engine = create_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,
    )

    if _is_sqlite(database_url):
        _sqlite_pragmas(engine)

    if _is_postgres(database_url):
        _postgres_session_settings(engine)

    return engine


def register_models() -> None:
    """
    Central place to import ALL models so SQLModel registers them.
    Keep this list current as tables are added.
    """
    from .models.member import Member  # noqa: F401
    from .models.event import Event  # noqa: F401
    from .models.event_rsvp import EventRSVP  # noqa: F401
    from .models.announcement import Announcement, MemberAnnouncementView  # noqa: F401
    from .models.message import Message  # noqa: F401
    from .models.audit_log import AuditLog  # noqa: F401
    from .models.push_subscription import PushSubscription  # noqa: F401


def init_db(engine: Engine, create_tables: bool = True) -> None:
    """
    Register models, then create missing tables.
    Non-destructive: create_all will not drop or alter existing tables.
    """
    register_models()
    url = str(engine.url)
    if _is_sqlite(url):
        _ensure_sqlite_dir(url)
    if create_tables:
        SQLModel.metadata.create_all(engine)


def ping(engine: Engine) -> float:
    """
    Round-trip a trivial query. Returns latency in milliseconds.
    Raises whatever the driver raises when the store is unreachable.
    """
    start = time.perf_counter()
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return (time.perf_counter() - start) * 1000.0
