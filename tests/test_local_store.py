from __future__ import annotations

import threading
import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from db.client import session_scope
from db.models.payments import PaymentRow
from payment_sync.local_store import LocalPaymentStore
from payment_sync.models import Currency, PaymentCategory, SyncStatus

from tests.helpers.fakes import make_payment


def test_round_trip_preserves_every_field(store: LocalPaymentStore) -> None:
    p = make_payment(
        name="Tarjeta Interbank",
        amount=Decimal("2345.67"),
        currency=Currency.USD,
        category=PaymentCategory.TARJETA_CREDITO,
        is_paid=True,
        event_ref=uuid.uuid4(),
        group_id=uuid.uuid4(),
        sync_status=SyncStatus.SYNCED,
    )
    store.upsert(p)

    got = store.fetch_by_id(p.id)

    assert got == p


def test_amounts_are_stored_as_decimal_strings(store: LocalPaymentStore, db_url: str) -> None:
    p = make_payment(amount=Decimal("0.10"))
    store.upsert(p)

    with session_scope(database_url=db_url) as s:
        row = s.get(PaymentRow, str(p.id))
        assert row is not None
        assert row.amount == "0.10"


def test_upsert_replaces_existing_rows(store: LocalPaymentStore) -> None:
    p = make_payment()
    store.upsert(p)
    store.upsert_many([p.mark_modified(name="Renombrado")])

    [got] = store.fetch_all()
    assert got.name == "Renombrado"


def test_fetch_by_status_and_counts(store: LocalPaymentStore) -> None:
    local = make_payment()
    modified = make_payment(sync_status=SyncStatus.MODIFIED)
    tomb = make_payment(sync_status=SyncStatus.DELETED)
    synced = make_payment(sync_status=SyncStatus.SYNCED)
    assert store.upsert_many([local, modified, tomb, synced]) == 4

    ids = {p.id for p in store.fetch_by_status(SyncStatus.LOCAL, SyncStatus.MODIFIED)}
    assert ids == {local.id, modified.id}
    assert store.fetch_by_status() == []
    assert store.count_pending() == 3
    assert store.count_by_status() == {
        SyncStatus.LOCAL: 1,
        SyncStatus.SYNCED: 1,
        SyncStatus.MODIFIED: 1,
        SyncStatus.DELETED: 1,
    }


def test_fetch_all_orders_by_due_date(store: LocalPaymentStore) -> None:
    late = make_payment(due_date=datetime(2026, 1, 5, tzinfo=UTC))
    early = make_payment(due_date=datetime(2025, 12, 5, tzinfo=UTC))
    store.upsert_many([late, early])

    assert [p.id for p in store.fetch_all()] == [early.id, late.id]


def test_deletes_report_what_was_removed(store: LocalPaymentStore) -> None:
    a, b = make_payment(), make_payment()
    store.upsert_many([a, b])

    assert store.delete_by_id(a.id) is True
    assert store.delete_by_id(a.id) is False
    assert store.delete_many([b.id, uuid.uuid4()]) == 1
    assert store.delete_many([]) == 0
    assert store.fetch_all() == []


def test_clear_all(store: LocalPaymentStore) -> None:
    store.upsert_many([make_payment(), make_payment(sync_status=SyncStatus.DELETED)])

    assert store.clear_all() == 2
    assert store.fetch_all() == []


def test_synced_row_without_timestamp_violates_schema(db_url: str) -> None:
    now = datetime(2025, 12, 1, tzinfo=UTC)
    with pytest.raises(IntegrityError):
        with session_scope(database_url=db_url) as s:
            s.add(
                PaymentRow(
                    id=str(uuid.uuid4()),
                    name="x",
                    amount="1.00",
                    currency_code="PEN",
                    due_date=now,
                    is_paid=False,
                    category="Otro",
                    sync_status="synced",
                    last_synced_at=None,
                    updated_at=now,
                )
            )


def test_exclusive_blocks_writers_from_other_threads(store: LocalPaymentStore) -> None:
    p = make_payment()
    written = threading.Event()

    def _writer() -> None:
        store.upsert(p)
        written.set()

    with store.exclusive():
        t = threading.Thread(target=_writer)
        t.start()
        assert not written.wait(timeout=0.2)
        # Re-entrant for the holder.
        store.upsert(make_payment())
    t.join(timeout=5)

    assert written.is_set()
    assert len(store.fetch_all()) == 2


def test_second_store_on_same_url_sees_same_rows(db_url: str) -> None:
    first = LocalPaymentStore(database_url=db_url)
    second = LocalPaymentStore(database_url=db_url, create=False)
    p = make_payment()
    first.upsert(p)

    assert second.fetch_by_id(p.id) == p
