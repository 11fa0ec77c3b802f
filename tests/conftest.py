"""Pytest configuration and shared fixtures.

Tests import ``payment_sync`` from ``packages/`` and ``db`` from
``libs/db/src`` without requiring an install, so both directories (and the
repo root, for ``tests.helpers``) are put on ``sys.path`` here.

Every test gets its own file-backed SQLite database and a clean environment:
``PAYMENT_SYNC_*`` / ``DATABASE_URL`` variables from the developer's shell are
removed and the working directory moves to ``tmp_path`` so the CLI's ``.env``
lookup and default database path never touch the repository.
"""

# ruff: noqa: E402, I001
from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import dispose_engines
from payment_sync.coordinator import SyncCoordinator
from payment_sync.local_store import LocalPaymentStore

from tests.helpers.db import bootstrap_sqlite_db
from tests.helpers.fakes import FakeAuth, FixedClock, RecordingSink
from tests.helpers.remote_stub import RemoteStub


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in list(os.environ):
        if name.startswith("PAYMENT_SYNC_") or name == "DATABASE_URL":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    dispose_engines()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "db" / "payments.db")


@pytest.fixture
def store(db_url: str) -> LocalPaymentStore:
    return LocalPaymentStore(database_url=db_url)


@pytest.fixture
def remote() -> RemoteStub:
    return RemoteStub()


@pytest.fixture
def auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def coordinator(
    store: LocalPaymentStore,
    remote: RemoteStub,
    auth: FakeAuth,
    sink: RecordingSink,
    clock: FixedClock,
) -> SyncCoordinator:
    return SyncCoordinator(store, remote, auth, events=sink, clock=clock)
