"""Local payment store over the shared ``db`` library.

Rows live in the ``payments`` table (``db.models.payments.PaymentRow``) and
are converted to immutable :class:`~payment_sync.models.Payment` records at
the boundary. Each public method runs in its own short transaction via
``db.client.session_scope``.

Writers serialize on :meth:`LocalPaymentStore.exclusive`, a re-entrant lock.
The sync coordinator holds it for the length of a phase so that edits made by
the UI land either before or after a phase, never in the middle of one.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from db.client import create_schema, session_scope
from db.models.payments import PaymentRow
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import (
    PENDING_STATUSES,
    Currency,
    Payment,
    PaymentCategory,
    SyncStatus,
    as_utc,
    to_amount,
)

_logger = get_logger("payment_sync.local_store")


def _uuid_or_none(raw: str | None) -> uuid.UUID | None:
    return uuid.UUID(raw) if raw else None


def _row_to_payment(row: PaymentRow) -> Payment:
    return Payment(
        id=uuid.UUID(row.id),
        name=row.name,
        amount=to_amount(row.amount),
        currency=Currency.parse(row.currency_code),
        due_date=as_utc(row.due_date),
        is_paid=bool(row.is_paid),
        category=PaymentCategory.parse(row.category),
        event_ref=_uuid_or_none(row.event_ref),
        group_id=_uuid_or_none(row.group_id),
        sync_status=SyncStatus(row.sync_status),
        last_synced_at=as_utc(row.last_synced_at) if row.last_synced_at else None,
        updated_at=as_utc(row.updated_at),
    )


def _payment_to_row(p: Payment) -> PaymentRow:
    return PaymentRow(
        id=str(p.id),
        name=p.name,
        amount=f"{to_amount(p.amount):.2f}",
        currency_code=p.currency.value,
        due_date=as_utc(p.due_date),
        is_paid=p.is_paid,
        category=p.category.value,
        event_ref=str(p.event_ref) if p.event_ref else None,
        group_id=str(p.group_id) if p.group_id else None,
        sync_status=p.sync_status.value,
        last_synced_at=as_utc(p.last_synced_at) if p.last_synced_at else None,
        updated_at=as_utc(p.updated_at),
    )


class LocalPaymentStore:
    """Keyed CRUD over locally persisted payments."""

    def __init__(self, *, database_url: str | None = None, create: bool = True) -> None:
        self._database_url = database_url
        self._lock = threading.RLock()
        if create:
            create_schema(database_url=database_url)

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold the writer lock (re-entrant) for a multi-step mutation."""

        with self._lock:
            yield

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with session_scope(database_url=self._database_url) as session:
            yield session

    # ---- Reads -------------------------------------------------------------

    def fetch_all(self) -> list[Payment]:
        with self._session() as s:
            rows = s.scalars(select(PaymentRow).order_by(PaymentRow.due_date, PaymentRow.id))
            return [_row_to_payment(r) for r in rows]

    def fetch_by_id(self, payment_id: uuid.UUID) -> Payment | None:
        with self._session() as s:
            row = s.get(PaymentRow, str(payment_id))
            return _row_to_payment(row) if row is not None else None

    def fetch_by_status(self, *statuses: SyncStatus) -> list[Payment]:
        if not statuses:
            return []
        with self._session() as s:
            rows = s.scalars(
                select(PaymentRow)
                .where(PaymentRow.sync_status.in_([st.value for st in statuses]))
                .order_by(PaymentRow.due_date, PaymentRow.id)
            )
            return [_row_to_payment(r) for r in rows]

    def count_by_status(self) -> dict[SyncStatus, int]:
        with self._session() as s:
            rows = s.execute(
                select(PaymentRow.sync_status, func.count()).group_by(PaymentRow.sync_status)
            ).all()
        counts = {st: 0 for st in SyncStatus}
        for status, n in rows:
            counts[SyncStatus(status)] = int(n)
        return counts

    def count_pending(self) -> int:
        with self._session() as s:
            n = s.scalar(
                select(func.count())
                .select_from(PaymentRow)
                .where(PaymentRow.sync_status.in_([st.value for st in PENDING_STATUSES]))
            )
        return int(n or 0)

    # ---- Writes ------------------------------------------------------------

    def upsert(self, payment: Payment) -> None:
        self.upsert_many([payment])

    def upsert_many(self, payments: Iterable[Payment]) -> int:
        """Insert or replace ``payments`` in a single transaction."""

        items = list(payments)
        if not items:
            return 0
        with self._lock, self._session() as s:
            for p in items:
                s.merge(_payment_to_row(p))
        _logger.debug("local_store:upsert count=%d", len(items))
        return len(items)

    def delete_by_id(self, payment_id: uuid.UUID) -> bool:
        return self.delete_many([payment_id]) == 1

    def delete_many(self, payment_ids: Iterable[uuid.UUID]) -> int:
        ids = [str(i) for i in payment_ids]
        if not ids:
            return 0
        with self._lock, self._session() as s:
            result = s.execute(delete(PaymentRow).where(PaymentRow.id.in_(ids)))
            removed = int(result.rowcount or 0)
        _logger.debug("local_store:delete requested=%d removed=%d", len(ids), removed)
        return removed

    def clear_all(self) -> int:
        with self._lock, self._session() as s:
            result = s.execute(delete(PaymentRow))
            removed = int(result.rowcount or 0)
        _logger.info("local_store:cleared removed=%d", removed)
        return removed


__all__ = ["LocalPaymentStore"]
