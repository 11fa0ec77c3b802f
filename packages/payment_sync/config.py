"""Runtime settings resolved from the environment.

Entrypoints load ``.env`` (python-dotenv) first and then call
:meth:`SyncSettings.from_env`. Library code receives a ``SyncSettings`` value
and never reads the environment itself, except for the database URL fallback
shared with ``db.client``.

Variables
---------
``PAYMENT_SYNC_DATABASE_URL``
    Local store URL (falls back to ``DATABASE_URL``, then ``./payments.db``).
``PAYMENT_SYNC_REMOTE_URL`` / ``PAYMENT_SYNC_REMOTE_KEY``
    Supabase project URL and anon key for the remote store.
``PAYMENT_SYNC_REMOTE_TABLE``
    Remote table name (default ``payments``).
``PAYMENT_SYNC_HTTP_TIMEOUT``
    Per-request timeout in seconds (default 30).
``PAYMENT_SYNC_DELETE_CONCURRENCY``
    Parallel remote deletes during the deletion phase (default 4, max 16).
``PAYMENT_SYNC_AUTO_SYNC_SECONDS``
    Minimum age of the last successful pass before an automatic re-sync
    (default 3600).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

from db.client import resolve_database_url

from .remote_store import DEFAULT_TABLE, DEFAULT_TIMEOUT_S

_MAX_DELETE_CONCURRENCY = 16


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    try:
        value = float(raw) if raw else default
    except ValueError:
        return default
    return value if value > 0 else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        value = int(raw) if raw else default
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True, slots=True)
class SyncSettings:
    database_url: str
    remote_url: str | None = None
    remote_key: str | None = None
    remote_table: str = DEFAULT_TABLE
    http_timeout: float = DEFAULT_TIMEOUT_S
    delete_concurrency: int = 4
    auto_sync_interval: timedelta = timedelta(hours=1)

    @property
    def remote_configured(self) -> bool:
        return bool(self.remote_url and self.remote_key)

    @classmethod
    def from_env(cls, *, database_url: str | None = None) -> SyncSettings:
        return cls(
            database_url=resolve_database_url(database_url),
            remote_url=(os.getenv("PAYMENT_SYNC_REMOTE_URL") or "").strip() or None,
            remote_key=(os.getenv("PAYMENT_SYNC_REMOTE_KEY") or "").strip() or None,
            remote_table=(os.getenv("PAYMENT_SYNC_REMOTE_TABLE") or "").strip() or DEFAULT_TABLE,
            http_timeout=_env_float("PAYMENT_SYNC_HTTP_TIMEOUT", DEFAULT_TIMEOUT_S),
            delete_concurrency=min(
                _env_int("PAYMENT_SYNC_DELETE_CONCURRENCY", 4), _MAX_DELETE_CONCURRENCY
            ),
            auto_sync_interval=timedelta(
                seconds=_env_int("PAYMENT_SYNC_AUTO_SYNC_SECONDS", 3600)
            ),
        )


__all__ = ["SyncSettings"]
