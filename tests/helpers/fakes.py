"""Small collaborators for coordinator tests: auth, event recording, factories."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from payment_sync.errors import NotAuthenticatedError, SessionExpiredError
from payment_sync.events import DomainEvent
from payment_sync.models import Payment, PaymentCategory, RemotePaymentDTO, SyncStatus

USER_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")
OTHER_USER_ID = uuid.UUID("22222222-2222-4222-8222-222222222222")

T0 = datetime(2025, 12, 1, 9, 0, tzinfo=UTC)


class FakeAuth:
    """Auth provider whose outcome tests flip via ``state``."""

    def __init__(self, user_id: uuid.UUID = USER_ID) -> None:
        self.user_id = user_id
        self.state = "ok"  # "ok" | "anonymous" | "expired"

    def get_current_user_id(self) -> uuid.UUID:
        if self.state == "anonymous":
            raise NotAuthenticatedError("no active session")
        if self.state == "expired":
            raise SessionExpiredError("session expired")
        return self.user_id

    def access_token(self) -> str:
        return "test-token"


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [type(e).__name__ for e in self.events]


class FixedClock:
    """Deterministic clock; ``advance`` moves it forward."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: Any) -> None:
        self.now = self.now + timedelta(**delta)


def make_payment(**overrides: Any) -> Payment:
    fields: dict[str, Any] = {
        "id": uuid.uuid4(),
        "name": "Luz del Sur",
        "amount": Decimal("120.50"),
        "due_date": datetime(2025, 12, 15, tzinfo=UTC),
        "category": PaymentCategory.RECIBO,
        "sync_status": SyncStatus.LOCAL,
        "updated_at": datetime(2025, 11, 30, 12, 0, tzinfo=UTC),
    }
    fields.update(overrides)
    if fields["sync_status"] is SyncStatus.SYNCED and fields.get("last_synced_at") is None:
        fields["last_synced_at"] = fields["updated_at"]
    return Payment(**fields)


def make_remote(payment: Payment | None = None, *, user_id: uuid.UUID = USER_ID, **overrides: Any):
    base = payment or make_payment(**overrides)
    dto = RemotePaymentDTO.from_payment(base, user_id=user_id)
    if payment is not None and overrides:
        dto = dto.model_copy(update=overrides)
    return dto
