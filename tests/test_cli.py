"""Typer CLI tests driven through ``typer.testing.CliRunner``.

The backend is replaced by the in-memory ``RemoteStub`` through the
``_build_remote`` seam; everything else (settings, .env loading, SQLite store,
coordinator) is the real wiring.
"""

from __future__ import annotations

import json
import uuid
from pathlib import Path

import pytest
from typer.testing import CliRunner

import payment_sync.cli as cli
from payment_sync.local_store import LocalPaymentStore
from payment_sync.models import SyncStatus

from tests.helpers.fakes import USER_ID, make_payment, make_remote
from tests.helpers.remote_stub import RemoteStub

runner = CliRunner()


@pytest.fixture
def cli_env(db_url: str, monkeypatch: pytest.MonkeyPatch) -> RemoteStub:
    """Point the CLI at the test database, log a user in and stub the backend."""

    stub = RemoteStub()
    monkeypatch.setenv("PAYMENT_SYNC_DATABASE_URL", db_url)
    monkeypatch.setenv("PAYMENT_SYNC_USER_ID", str(USER_ID))
    monkeypatch.setenv("PAYMENT_SYNC_ACCESS_TOKEN", "jwt")
    monkeypatch.setattr(cli, "_build_remote", lambda settings, auth: stub)
    return stub


def _add(name: str = "Agua", amount: str = "45.9") -> uuid.UUID:
    result = runner.invoke(
        cli.app, ["add", "--name", name, "--amount", amount, "--due", "2025-12-20"]
    )
    assert result.exit_code == 0, result.output
    return uuid.UUID(result.stdout.strip().splitlines()[-1])


def test_add_then_list_as_json(cli_env: RemoteStub) -> None:
    pid = _add()

    result = runner.invoke(cli.app, ["list", "--json"])

    assert result.exit_code == 0, result.output
    [record] = json.loads(result.stdout)
    assert record["id"] == str(pid)
    assert record["amount"] == "45.90"
    assert record["currency"] == "PEN"
    assert record["syncStatus"] == "local"
    assert record["dueDate"].startswith("2025-12-20")


def test_list_as_text(cli_env: RemoteStub) -> None:
    pid = _add(name="Luz")

    result = runner.invoke(cli.app, ["list"])

    assert result.exit_code == 0, result.output
    line = result.stdout.strip()
    assert line.startswith(str(pid))
    assert "Luz" in line and "S/ 45.90" in line and "local" in line


def test_add_rejects_bad_input(cli_env: RemoteStub) -> None:
    result = runner.invoke(
        cli.app, ["add", "--name", "Agua", "--amount", "-3", "--due", "2025-12-20"]
    )
    assert result.exit_code == 1
    assert "Error:" in result.output

    result = runner.invoke(
        cli.app, ["add", "--name", "Agua", "--amount", "3", "--due", "someday"]
    )
    assert result.exit_code == 1

    result = runner.invoke(
        cli.app, ["add", "--name", "Agua", "--amount", "1e30", "--due", "2025-12-20"]
    )
    assert result.exit_code == 1
    assert "invalid amount" in result.output


def test_sync_uploads_and_reports_counts(cli_env: RemoteStub, db_url: str) -> None:
    pid = _add()
    cli_env.put(make_remote(name="Internet"))

    result = runner.invoke(cli.app, ["sync"])

    assert result.exit_code == 0, result.output
    assert "uploaded=1" in result.stdout
    assert "inserted=1" in result.stdout
    assert "pending=0" in result.stdout
    assert pid in cli_env.rows
    statuses = {p.sync_status for p in LocalPaymentStore(database_url=db_url).fetch_all()}
    assert statuses == {SyncStatus.SYNCED}


def test_sync_without_session_asks_for_login(
    cli_env: RemoteStub, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("PAYMENT_SYNC_ACCESS_TOKEN")

    result = runner.invoke(cli.app, ["sync"])

    assert result.exit_code == 1
    assert "SYNC_NOT_AUTHENTICATED" in result.output
    assert cli_env.calls == []


def test_sync_requires_remote_configuration(db_url: str, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAYMENT_SYNC_DATABASE_URL", db_url)

    result = runner.invoke(cli.app, ["sync"])

    assert result.exit_code == 1
    assert "PAYMENT_SYNC_REMOTE_URL" in result.output


def test_mark_paid_and_delete(cli_env: RemoteStub, db_url: str) -> None:
    store = LocalPaymentStore(database_url=db_url)
    synced = make_payment(sync_status=SyncStatus.SYNCED)
    store.upsert(synced)

    result = runner.invoke(cli.app, ["mark-paid", str(synced.id)])
    assert result.exit_code == 0, result.output
    assert "paid\tmodified" in result.stdout

    result = runner.invoke(cli.app, ["delete", str(synced.id)])
    assert result.exit_code == 0, result.output
    tomb = store.fetch_by_id(synced.id)
    assert tomb is not None and tomb.sync_status is SyncStatus.DELETED

    result = runner.invoke(cli.app, ["delete", str(synced.id)])
    assert result.exit_code == 1

    result = runner.invoke(cli.app, ["mark-paid", "not-an-id"])
    assert result.exit_code == 1
    assert "not a payment id" in result.output


def test_status_counts(cli_env: RemoteStub, db_url: str) -> None:
    LocalPaymentStore(database_url=db_url).upsert_many(
        [make_payment(), make_payment(sync_status=SyncStatus.SYNCED)]
    )

    result = runner.invoke(cli.app, ["status"])

    assert result.exit_code == 0, result.output
    lines = dict(line.split("\t") for line in result.stdout.strip().splitlines())
    assert lines["local"] == "1"
    assert lines["synced"] == "1"
    assert lines["pending"] == "1"
    assert lines["remote"] == "not configured"


def test_clear_local_needs_force_with_pending_changes(
    cli_env: RemoteStub, db_url: str
) -> None:
    _add()

    result = runner.invoke(cli.app, ["clear-local"])
    assert result.exit_code == 1
    assert "--force" in result.output
    assert len(LocalPaymentStore(database_url=db_url).fetch_all()) == 1

    result = runner.invoke(cli.app, ["clear-local", "--force"])
    assert result.exit_code == 0, result.output
    assert LocalPaymentStore(database_url=db_url).fetch_all() == []


def test_settings_come_from_dotenv(
    tmp_path: Path, db_url: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    # Registers the variable with monkeypatch so the value .env loads is undone.
    monkeypatch.setenv("PAYMENT_SYNC_DATABASE_URL", "unused")
    monkeypatch.delenv("PAYMENT_SYNC_DATABASE_URL")
    (tmp_path / ".env").write_text(f"PAYMENT_SYNC_DATABASE_URL={db_url}\n", encoding="utf-8")
    LocalPaymentStore(database_url=db_url).upsert(make_payment())

    result = runner.invoke(cli.app, ["status"])

    assert result.exit_code == 0, result.output
    assert "local\t1" in result.stdout


def test_database_url_option_overrides_env(db_url: str) -> None:
    LocalPaymentStore(database_url=db_url).upsert(make_payment())

    result = runner.invoke(cli.app, ["--database-url", db_url, "list", "--json"])

    assert result.exit_code == 0, result.output
    assert len(json.loads(result.stdout)) == 1


def test_clear_local_works_without_a_backend(db_url: str, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAYMENT_SYNC_DATABASE_URL", db_url)
    LocalPaymentStore(database_url=db_url).upsert(make_payment())

    result = runner.invoke(cli.app, ["clear-local", "--force"])

    assert result.exit_code == 0, result.output
    assert "local store cleared" in result.stdout
    assert LocalPaymentStore(database_url=db_url).fetch_all() == []
