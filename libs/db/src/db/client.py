"""Centralized SQLAlchemy engine/session helpers for the local payment store.

Usage
-----
from db.client import get_engine, session_scope

with session_scope(database_url=url) as s:
    s.execute(...)

Engines are cached per database URL so a process can hold more than one
local store (tests create one SQLite file per case). SQLite connections get
``PRAGMA foreign_keys = ON`` and WAL journaling on first connect.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./payments.db"

_ENGINES: dict[str, Engine] = {}
_SESSION_MAKERS: dict[str, sessionmaker[Session]] = {}
_LOCK = threading.Lock()


def resolve_database_url(override: str | None = None) -> str:
    """Resolve the local database URL.

    Order: explicit ``override``, ``PAYMENT_SYNC_DATABASE_URL``,
    ``DATABASE_URL``, then a SQLite file in the working directory.
    """

    url = override or os.getenv("PAYMENT_SYNC_DATABASE_URL") or os.getenv("DATABASE_URL")
    return url or DEFAULT_DATABASE_URL


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _):  # pragma: no cover - tiny bridge
        cur = dbapi_conn.cursor()
        try:
            cur.execute("PRAGMA foreign_keys = ON")
            cur.execute("PRAGMA journal_mode = WAL")
        finally:
            cur.close()


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the shared engine for ``database_url``, creating it on first use."""

    url = resolve_database_url(database_url)
    with _LOCK:
        engine = _ENGINES.get(url)
        if engine is None:
            engine = create_engine(url, pool_pre_ping=True)
            if engine.dialect.name == "sqlite":
                _configure_sqlite(engine)
            _ENGINES[url] = engine
            _SESSION_MAKERS[url] = sessionmaker(
                bind=engine, expire_on_commit=False, class_=Session
            )
        return engine


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new SQLAlchemy session bound to the shared engine."""

    url = resolve_database_url(database_url)
    get_engine(database_url=url)
    return _SESSION_MAKERS[url]()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_schema(*, database_url: str | None = None) -> Engine:
    """Create all tables known to ``db.metadata`` (idempotent).

    Devices bootstrap their local store this way; Alembic migrations under
    ``libs/db/alembic`` describe the same schema for managed upgrades.
    """

    from . import metadata  # local import: models import nothing from here

    engine = get_engine(database_url=database_url)
    metadata.create_all(bind=engine)
    return engine


def dispose_engines() -> None:
    """Dispose and forget every cached engine (used by tests and on logout)."""

    with _LOCK:
        for engine in _ENGINES.values():
            engine.dispose()
        _ENGINES.clear()
        _SESSION_MAKERS.clear()


__all__ = [
    "DEFAULT_DATABASE_URL",
    "create_schema",
    "dispose_engines",
    "get_engine",
    "get_session",
    "resolve_database_url",
    "session_scope",
]
