"""Local payment mutations.

:class:`PaymentService` is the write path presentation code uses between sync
passes. It owns the status transitions a local edit implies:

- create: new record in ``LOCAL`` status.
- update / mark paid: ``LOCAL`` stays ``LOCAL``; anything else becomes
  ``MODIFIED``.
- delete: a ``LOCAL`` record never reached the backend and is removed
  outright; any other record is tombstoned as ``DELETED`` for the next pass.

Every write holds the local store's ``exclusive()`` lock, emits a domain event
and then calls ``on_change`` (normally
:meth:`SyncCoordinator.update_pending_sync_count`) so observers see the new
pending count.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import Any

from .errors import PaymentNotFoundError, PaymentValidationError
from .events import (
    EventSink,
    NullEventSink,
    PaymentCreated,
    PaymentDeleted,
    PaymentStatusToggled,
    PaymentUpdated,
)
from .local_store import LocalPaymentStore
from .logging_setup import get_logger
from .models import Currency, Payment, PaymentCategory, SyncStatus, as_utc, to_amount, utc_now

_logger = get_logger("payment_sync.payments")

type ChangeCallback = Callable[[], Any]

# Fields a caller may edit; sync bookkeeping is never writable from here.
_EDITABLE_FIELDS = frozenset(
    {"name", "amount", "currency", "due_date", "category", "is_paid", "event_ref", "group_id"}
)


def _clean_name(raw: str) -> str:
    name = (raw or "").strip()
    if not name:
        raise PaymentValidationError("payment name must not be empty")
    return name


def _clean_amount(raw: Decimal | str | int | float) -> Decimal:
    try:
        amount = to_amount(raw)
    except ValueError as e:
        raise PaymentValidationError(str(e)) from e
    if amount <= 0:
        raise PaymentValidationError(f"payment amount must be positive, got {amount}")
    return amount


class PaymentService:
    """Create, edit and delete payments in the local store."""

    def __init__(
        self,
        store: LocalPaymentStore,
        *,
        events: EventSink | None = None,
        on_change: ChangeCallback | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._events: EventSink = events or NullEventSink()
        self._on_change = on_change
        self._clock = clock

    def list_payments(self, *, include_deleted: bool = False) -> list[Payment]:
        payments = self._store.fetch_all()
        if include_deleted:
            return payments
        return [p for p in payments if p.sync_status is not SyncStatus.DELETED]

    def get(self, payment_id: uuid.UUID) -> Payment:
        payment = self._store.fetch_by_id(payment_id)
        if payment is None or payment.sync_status is SyncStatus.DELETED:
            raise PaymentNotFoundError(payment_id)
        return payment

    def create(
        self,
        *,
        name: str,
        amount: Decimal | str | int | float,
        due_date: datetime,
        category: PaymentCategory | str = PaymentCategory.OTRO,
        currency: Currency | str | None = None,
        is_paid: bool = False,
        event_ref: uuid.UUID | None = None,
        group_id: uuid.UUID | None = None,
        payment_id: uuid.UUID | None = None,
    ) -> Payment:
        try:
            parsed_currency = Currency.parse(currency)
        except ValueError as e:
            raise PaymentValidationError(str(e)) from e
        payment = Payment(
            id=payment_id or uuid.uuid4(),
            name=_clean_name(name),
            amount=_clean_amount(amount),
            currency=parsed_currency,
            due_date=as_utc(due_date),
            is_paid=is_paid,
            category=PaymentCategory.parse(category),
            event_ref=event_ref,
            group_id=group_id,
            sync_status=SyncStatus.LOCAL,
            updated_at=as_utc(self._clock()),
        )
        with self._store.exclusive():
            if self._store.fetch_by_id(payment.id) is not None:
                raise PaymentValidationError(f"payment {payment.id} already exists")
            self._store.upsert(payment)
        _logger.info("payments:created id=%s", payment.id)
        self._events.publish(PaymentCreated(payment_id=payment.id))
        self._changed()
        return payment

    def update(self, payment_id: uuid.UUID, **changes: Any) -> Payment:
        """Apply ``changes`` to a payment and flag it for upload.

        Unknown or sync-bookkeeping fields raise :class:`PaymentValidationError`.
        """

        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise PaymentValidationError(f"fields not editable: {', '.join(sorted(unknown))}")
        if "name" in changes:
            changes["name"] = _clean_name(changes["name"])
        if "amount" in changes:
            changes["amount"] = _clean_amount(changes["amount"])
        if "currency" in changes:
            try:
                changes["currency"] = Currency.parse(changes["currency"])
            except ValueError as e:
                raise PaymentValidationError(str(e)) from e
        if "category" in changes:
            changes["category"] = PaymentCategory.parse(changes["category"])
        if "due_date" in changes:
            changes["due_date"] = as_utc(changes["due_date"])

        with self._store.exclusive():
            current = self.get(payment_id)
            updated = current.mark_modified(at=self._clock(), **changes)
            self._store.upsert(updated)
        _logger.info(
            "payments:updated id=%s status=%s fields=%s",
            payment_id,
            updated.sync_status.value,
            ",".join(sorted(changes)),
        )
        self._events.publish(PaymentUpdated(payment_id=payment_id))
        self._changed()
        return updated

    def set_paid(self, payment_id: uuid.UUID, is_paid: bool = True) -> Payment:
        with self._store.exclusive():
            current = self.get(payment_id)
            if current.is_paid == is_paid:
                return current
            updated = current.mark_modified(at=self._clock(), is_paid=is_paid)
            self._store.upsert(updated)
        _logger.info("payments:paid_toggled id=%s is_paid=%s", payment_id, is_paid)
        self._events.publish(PaymentStatusToggled(payment_id=payment_id, is_paid=is_paid))
        self._changed()
        return updated

    def toggle_paid(self, payment_id: uuid.UUID) -> Payment:
        with self._store.exclusive():
            return self.set_paid(payment_id, not self.get(payment_id).is_paid)

    def delete(self, payment_id: uuid.UUID) -> None:
        """Delete a payment locally.

        A never-synced record is removed at once; otherwise a ``DELETED``
        tombstone stays until the next pass confirms the remote delete.
        """

        with self._store.exclusive():
            current = self.get(payment_id)
            if current.sync_status is SyncStatus.LOCAL:
                self._store.delete_by_id(payment_id)
                mode = "hard"
            else:
                self._store.upsert(current.mark_deleted(at=self._clock()))
                mode = "tombstone"
        _logger.info("payments:deleted id=%s mode=%s", payment_id, mode)
        self._events.publish(PaymentDeleted(payment_id=payment_id))
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()


__all__ = ["PaymentService"]
