"""DB helpers for tests: bootstrap a temporary SQLite DB for the local store."""

from __future__ import annotations

import os
from pathlib import Path

from db import PaymentRow
from db.client import create_schema, session_scope
from sqlalchemy import text as sql_text


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default), which the
    coordinator's delete workers rely on.
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    create_schema(database_url=url)
    _assert_payments_schema_in_sync(url)

    if set_default_env:
        os.environ.setdefault("PAYMENT_SYNC_DATABASE_URL", url)
    return url


def payments_columns(database_url: str) -> set[str]:
    with session_scope(database_url=database_url) as session:
        rows = session.execute(sql_text("PRAGMA table_info('payments')")).fetchall()
    return {row[1] for row in rows}  # (cid, name, type, notnull, dflt_value, pk)


def _assert_payments_schema_in_sync(database_url: str) -> None:
    """Quick sanity check: ORM column set matches SQLite table column set."""

    expected = {c.name for c in PaymentRow.__table__.columns}
    got = payments_columns(database_url)
    missing = expected - got
    extra = got - expected
    assert not missing and not extra, (
        f"payments schema drift: missing={missing or '∅'}, extra={extra or '∅'}"
    )
