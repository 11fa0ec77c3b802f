"""CLI for the ``payment_sync`` package.

A Typer console interface over the local store, the local mutation service
and the sync coordinator. The root callback loads ``.env`` from the working
directory with ``python-dotenv`` (never overriding variables that are already
set) and configures package logging before any command runs.

Failures are printed as ``Error: ...`` on stderr and exit with status 1.
"""

from __future__ import annotations

import json
import sys
import uuid
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from .auth import SessionAuthProvider
from .config import SyncSettings
from .coordinator import SyncCoordinator
from .errors import (
    PaymentNotFoundError,
    PaymentValidationError,
    SyncAlreadyRunningError,
    SyncError,
)
from .local_store import LocalPaymentStore
from .logging_setup import configure_logging
from .models import PaymentRecord, SyncStatus, parse_timestamp
from .payments import PaymentService
from .remote_store import OfflinePaymentStore, PostgrestPaymentStore, RemotePaymentStore

# ---- Wiring helpers ----------------------------------------------------------


def _fail(message: str) -> typer.Exit:
    print(f"Error: {message}", file=sys.stderr)
    return typer.Exit(1)


def _settings(ctx: typer.Context) -> SyncSettings:
    settings = ctx.obj
    if not isinstance(settings, SyncSettings):
        settings = SyncSettings.from_env()
        ctx.obj = settings
    return settings


def _open_store(settings: SyncSettings) -> LocalPaymentStore:
    return LocalPaymentStore(database_url=settings.database_url)


def _build_remote(settings: SyncSettings, auth: SessionAuthProvider) -> RemotePaymentStore:
    """Return the backend store; tests replace this seam with an in-memory stub."""

    if not settings.remote_configured:
        raise RuntimeError(
            "PAYMENT_SYNC_REMOTE_URL and PAYMENT_SYNC_REMOTE_KEY must be set to reach the backend"
        )
    return PostgrestPaymentStore(
        base_url=settings.remote_url or "",
        api_key=settings.remote_key or "",
        token_provider=auth.access_token,
        table=settings.remote_table,
        timeout=settings.http_timeout,
    )


def _build_coordinator(settings: SyncSettings, *, offline: bool = False) -> SyncCoordinator:
    """Wire a coordinator; ``offline`` skips the backend for local-only commands."""

    auth = SessionAuthProvider.from_env()
    remote = OfflinePaymentStore() if offline else _build_remote(settings, auth)
    return SyncCoordinator(
        _open_store(settings),
        remote,
        auth,
        delete_concurrency=settings.delete_concurrency,
        auto_sync_interval=settings.auto_sync_interval,
    )


def _parse_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw.strip())
    except ValueError:
        raise _fail(f"not a payment id: {raw!r}") from None


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Offline-first payment tracker: edit payments locally and synchronize "
        "them with the backend. Loads settings from a local .env."
    ),
)


@app.command("sync")
def sync_cmd(ctx: typer.Context) -> None:
    """Run one synchronization pass (upload, delete, download)."""

    settings = _settings(ctx)
    try:
        coordinator = _build_coordinator(settings)
    except (RuntimeError, ValueError) as e:
        raise _fail(str(e)) from e

    try:
        report = coordinator.perform_sync()
    except SyncAlreadyRunningError as e:
        raise _fail(str(e)) from e
    except SyncError as e:
        hint = " (log in again)" if e.kind.requires_login else ""
        raise _fail(f"sync failed: {e}{hint}") from e

    print(
        f"uploaded={report.uploaded} deleted={report.deleted} "
        f"inserted={report.inserted} updated={report.updated} "
        f"kept_local={report.kept_local}"
    )
    for failure in report.deletion_failures:
        print(
            f"warning: remote delete failed for {failure.payment_id}: "
            f"{failure.kind.error_code} {failure.detail}",
            file=sys.stderr,
        )
    print(f"pending={coordinator.pending_sync_count}")


@app.command("status")
def status_cmd(ctx: typer.Context) -> None:
    """Show record counts per sync status and the pending total."""

    settings = _settings(ctx)
    try:
        counts = _open_store(settings).count_by_status()
    except Exception as e:
        raise _fail(f"failed to read local store: {e}") from e

    for status in SyncStatus:
        print(f"{status.value}\t{counts.get(status, 0)}")
    pending = sum(n for st, n in counts.items() if st is not SyncStatus.SYNCED)
    print(f"pending\t{pending}")
    print(f"remote\t{'configured' if settings.remote_configured else 'not configured'}")


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    *,
    as_json: bool = typer.Option(False, "--json", help="Emit the storage layout as JSON."),
    include_deleted: bool = typer.Option(
        False, "--include-deleted", help="Also show tombstoned payments."
    ),
) -> None:
    """List local payments ordered by due date."""

    service = PaymentService(_open_store(_settings(ctx)))
    payments = service.list_payments(include_deleted=include_deleted)

    if as_json:
        records = [PaymentRecord.from_payment(p).to_json_dict() for p in payments]
        print(json.dumps(records, ensure_ascii=False, indent=2))
        return

    for p in payments:
        paid = "paid" if p.is_paid else "due"
        print(
            f"{p.id}\t{p.due_date.date().isoformat()}\t{p.name}\t"
            f"{p.currency.symbol} {p.amount:.2f}\t{p.category.value}\t{paid}\t"
            f"{p.sync_status.value}"
        )


@app.command("add")
def add_cmd(
    ctx: typer.Context,
    name: Annotated[str, typer.Option("--name", help="Display name.")],
    amount: Annotated[str, typer.Option("--amount", help="Exact amount, e.g. 120.50.")],
    due: Annotated[str, typer.Option("--due", help="Due date (YYYY-MM-DD or ISO-8601).")],
    *,
    category: str = typer.Option("Otro", help="Category label, e.g. Recibo, Ahorro."),
    currency: str = typer.Option("PEN", help="Currency code (PEN or USD)."),
    paid: bool = typer.Option(False, "--paid", help="Create the payment as already paid."),
) -> None:
    """Create a payment locally; it is uploaded on the next sync."""

    try:
        due_date = parse_timestamp(due)
    except ValueError as e:
        raise _fail(str(e)) from e

    service = PaymentService(_open_store(_settings(ctx)))
    try:
        payment = service.create(
            name=name,
            amount=amount,
            due_date=due_date,
            category=category,
            currency=currency,
            is_paid=paid,
        )
    except PaymentValidationError as e:
        raise _fail(str(e)) from e
    print(payment.id)


@app.command("mark-paid")
def mark_paid_cmd(
    ctx: typer.Context,
    payment_id: Annotated[str, typer.Argument(help="Payment id.")],
    *,
    unpaid: bool = typer.Option(False, "--unpaid", help="Mark as not paid instead."),
) -> None:
    """Set the paid flag of a payment."""

    pid = _parse_id(payment_id)
    service = PaymentService(_open_store(_settings(ctx)))
    try:
        payment = service.set_paid(pid, not unpaid)
    except PaymentNotFoundError as e:
        raise _fail(str(e)) from e
    print(f"{payment.id}\t{'paid' if payment.is_paid else 'due'}\t{payment.sync_status.value}")


@app.command("delete")
def delete_cmd(
    ctx: typer.Context,
    payment_id: Annotated[str, typer.Argument(help="Payment id.")],
) -> None:
    """Delete a payment (tombstoned until the next sync if it was uploaded)."""

    pid = _parse_id(payment_id)
    service = PaymentService(_open_store(_settings(ctx)))
    try:
        service.delete(pid)
    except PaymentNotFoundError as e:
        raise _fail(str(e)) from e
    print(f"deleted {pid}")


@app.command("clear-local")
def clear_local_cmd(
    ctx: typer.Context,
    *,
    force: bool = typer.Option(
        False, "--force", help="Discard unsynced changes too (used on logout)."
    ),
) -> None:
    """Wipe the local store. Refuses while unsynced changes exist unless forced."""

    settings = _settings(ctx)
    try:
        coordinator = _build_coordinator(settings, offline=True)
    except ValueError as e:
        raise _fail(str(e)) from e

    if not coordinator.clear_local_database(force=force):
        pending = coordinator.pending_sync_count
        raise _fail(
            f"local store not cleared ({pending} unsynced payments); "
            "run sync first or pass --force"
        )
    print("local store cleared")


@app.callback()
def _root(
    ctx: typer.Context,
    *,
    database_url: str | None = typer.Option(
        None, help="Override PAYMENT_SYNC_DATABASE_URL (falls back to env vars)."
    ),
    log_level: str | None = typer.Option(
        None, help="Logging level (falls back to PAYMENT_SYNC_LOG_LEVEL, then INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (override=False keeps
    the existing environment) and resolves settings for the subcommand.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging(log_level)

    ctx.obj = SyncSettings.from_env(database_url=database_url)


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    # Running as a module: `python -m payment_sync.cli`
    app()
