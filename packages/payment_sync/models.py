"""Domain models and wire shapes for ``payment_sync``.

Three representations of a payment exist:

- :class:`Payment`: the immutable in-process domain record, including sync
  bookkeeping (``sync_status``, ``last_synced_at``, ``updated_at``).
- :class:`PaymentRecord`: the portable storage/export shape with camelCase
  keys (``dueDate``, ``isPaid``, ``syncStatus`` ...), amounts as decimal
  strings and timestamps as ISO-8601.
- :class:`RemotePaymentDTO`: the row shape of the backend ``payments`` table
  (snake_case, scoped by ``user_id``, no sync bookkeeping).

Amounts are ``Decimal`` end to end and quantized to cents; floats never touch
a stored amount.
"""

from __future__ import annotations

import dataclasses
import re
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .logging_setup import get_logger

_logger = get_logger("payment_sync.models")

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SyncStatus(StrEnum):
    """Per-record synchronization state.

    - ``LOCAL``: created on this device and never sent.
    - ``SYNCED``: matches the remote copy as of ``last_synced_at``.
    - ``MODIFIED``: edited locally after the last sync.
    - ``DELETED``: tombstoned locally, pending remote deletion.
    """

    LOCAL = "local"
    SYNCED = "synced"
    MODIFIED = "modified"
    DELETED = "deleted"


# Statuses that count toward ``pending_sync_count``.
PENDING_STATUSES: frozenset[SyncStatus] = frozenset(
    {SyncStatus.LOCAL, SyncStatus.MODIFIED, SyncStatus.DELETED}
)
# Statuses whose content must be pushed by the upload phase.
UPLOAD_STATUSES: frozenset[SyncStatus] = frozenset({SyncStatus.LOCAL, SyncStatus.MODIFIED})


class Currency(StrEnum):
    PEN = "PEN"
    USD = "USD"

    @property
    def symbol(self) -> str:
        return "S/" if self is Currency.PEN else "$"

    @classmethod
    def parse(cls, raw: Any) -> Currency:
        """Parse an ISO-4217 code; missing values default to ``PEN``."""

        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return cls.PEN
        code = str(raw).strip().upper()
        try:
            return cls(code)
        except ValueError:
            raise ValueError(f"unsupported currency code: {raw!r}") from None

    @classmethod
    def parse_lenient(cls, raw: Any) -> Currency:
        """Like :meth:`parse`, but unknown codes fall back to ``PEN``.

        Used for rows written by other clients, where one unexpected code must
        not make the whole download unreadable.
        """

        try:
            return cls.parse(raw)
        except ValueError:
            _logger.warning("models:unknown_currency code=%r fallback=PEN", raw)
            return cls.PEN


class PaymentCategory(StrEnum):
    RECIBO = "Recibo"
    TARJETA_CREDITO = "Tarjeta de Crédito"
    AHORRO = "Ahorro"
    SUSCRIPCION = "Suscripción"
    OTRO = "Otro"

    @classmethod
    def parse(cls, raw: Any) -> PaymentCategory:
        """Map a stored category label to the enum; unknown labels become ``OTRO``."""

        if isinstance(raw, PaymentCategory):
            return raw
        label = str(raw or "").strip()
        for member in cls:
            if member.value == label or member.name == label.upper():
                return member
        return cls.OTRO


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

_CENT = Decimal("0.01")
# PostgreSQL renders offsets as "+00" / "-05"; fromisoformat wants "+00:00".
_SHORT_OFFSET_RE = re.compile(r"([+-]\d{2})$")


def to_amount(raw: Any) -> Decimal:
    """Return ``raw`` as a Decimal quantized to cents (half-up).

    Floats are converted through ``str`` so ``12.1`` becomes ``Decimal("12.10")``
    rather than its binary expansion.
    """

    if isinstance(raw, bool):
        raise ValueError(f"invalid amount: {raw!r}")
    try:
        d = raw if isinstance(raw, Decimal) else Decimal(str(raw).strip())
        if not d.is_finite():
            raise ValueError(f"invalid amount: {raw!r}")
        # Raises InvalidOperation past the context precision (e.g. 1e30).
        return d.quantize(_CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValueError(f"invalid amount: {raw!r}") from None


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(raw: Any) -> datetime:
    """Parse ISO-8601 and PostgreSQL timestamp text into an aware UTC datetime.

    Accepted forms include ``2025-12-12T20:27:00Z``,
    ``2025-12-12T20:27:00.731+00:00``, ``2025-12-12 20:27:00+00`` and
    ``2025-12-03 20:30:48.731+00``. Date-only strings are midnight UTC.
    """

    if isinstance(raw, datetime):
        return as_utc(raw)
    s = str(raw or "").strip()
    if not s:
        raise ValueError("empty timestamp")
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    if "T" in s or " " in s:
        s = _SHORT_OFFSET_RE.sub(r"\1:00", s)
    try:
        return as_utc(datetime.fromisoformat(s))
    except ValueError:
        raise ValueError(f"unrecognized timestamp: {raw!r}") from None


def utc_now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Domain record
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Payment:
    """A payment as held by this device.

    Instances are immutable; status transitions produce new instances through
    :meth:`mark_synced`, :meth:`mark_modified` and :meth:`mark_deleted` so the
    sync invariants live in one place:

    - ``SYNCED`` implies ``last_synced_at`` is set and not earlier than
      ``updated_at``.
    - ``LOCAL`` records never existed remotely, so deleting one needs no
      tombstone.
    """

    id: uuid.UUID
    name: str
    amount: Decimal
    due_date: datetime
    category: PaymentCategory
    currency: Currency = Currency.PEN
    is_paid: bool = False
    event_ref: uuid.UUID | None = None
    group_id: uuid.UUID | None = None
    sync_status: SyncStatus = SyncStatus.LOCAL
    last_synced_at: datetime | None = None
    updated_at: datetime = dataclasses.field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        return self.sync_status in PENDING_STATUSES

    @property
    def needs_upload(self) -> bool:
        return self.sync_status in UPLOAD_STATUSES

    def mark_synced(self, synced_at: datetime) -> Payment:
        """Return this payment confirmed by the remote store at ``synced_at``.

        ``updated_at`` is kept as is. When the uploaded content was edited after
        ``synced_at`` (an edit made while the pass was starting), the record is
        stamped with its edit time instead, so ``last_synced_at`` never
        predates the mutation it confirms.
        """

        synced_at = max(as_utc(synced_at), self.updated_at)
        return dataclasses.replace(
            self,
            sync_status=SyncStatus.SYNCED,
            last_synced_at=synced_at,
        )

    def mark_modified(self, *, at: datetime | None = None, **changes: Any) -> Payment:
        """Apply a local edit. Never-synced records stay ``LOCAL``."""

        status = SyncStatus.LOCAL if self.sync_status is SyncStatus.LOCAL else SyncStatus.MODIFIED
        return dataclasses.replace(
            self, **changes, sync_status=status, updated_at=as_utc(at or utc_now())
        )

    def mark_deleted(self, *, at: datetime | None = None) -> Payment:
        return dataclasses.replace(
            self, sync_status=SyncStatus.DELETED, updated_at=as_utc(at or utc_now())
        )

    def same_content(self, other: Payment) -> bool:
        """Compare user-visible fields, ignoring sync bookkeeping."""

        return _content(self) == _content(other)


def _content(p: Payment) -> tuple[Any, ...]:
    return (
        p.id,
        p.name,
        p.amount,
        p.currency,
        p.due_date,
        p.is_paid,
        p.category,
        p.event_ref,
        p.group_id,
    )


# ---------------------------------------------------------------------------
# Wire shapes
# ---------------------------------------------------------------------------


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True, extra="ignore", str_strip_whitespace=True, populate_by_name=True
    )

    @field_validator("amount", mode="before", check_fields=False)
    @classmethod
    def _exact_amount(cls, v: Any) -> Decimal:
        return to_amount(v)

    @field_serializer("amount", check_fields=False)
    def _amount_as_string(self, v: Decimal) -> str:
        return f"{v:.2f}"


class PaymentRecord(_WireModel):
    """Storage/export layout of a payment (camelCase keys)."""

    id: uuid.UUID
    name: str
    amount: Decimal
    currency: Currency = Currency.PEN
    due_date: datetime = Field(alias="dueDate")
    is_paid: bool = Field(default=False, alias="isPaid")
    category: PaymentCategory = PaymentCategory.OTRO
    event_ref: uuid.UUID | None = Field(default=None, alias="eventRef")
    group_id: uuid.UUID | None = Field(default=None, alias="groupId")
    sync_status: SyncStatus = Field(default=SyncStatus.LOCAL, alias="syncStatus")
    last_synced_at: datetime | None = Field(default=None, alias="lastSyncedAt")

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, v: Any) -> Currency:
        return Currency.parse(v)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v: Any) -> PaymentCategory:
        return PaymentCategory.parse(v)

    @field_validator("due_date", "last_synced_at", mode="before")
    @classmethod
    def _timestamps(cls, v: Any) -> datetime | None:
        return None if v is None else parse_timestamp(v)

    @classmethod
    def from_payment(cls, payment: Payment) -> PaymentRecord:
        return cls(
            id=payment.id,
            name=payment.name,
            amount=payment.amount,
            currency=payment.currency,
            due_date=payment.due_date,
            is_paid=payment.is_paid,
            category=payment.category,
            event_ref=payment.event_ref,
            group_id=payment.group_id,
            sync_status=payment.sync_status,
            last_synced_at=payment.last_synced_at,
        )

    def to_payment(self) -> Payment:
        updated_at = self.last_synced_at or utc_now()
        return Payment(
            id=self.id,
            name=self.name,
            amount=self.amount,
            currency=self.currency,
            due_date=self.due_date,
            is_paid=self.is_paid,
            category=self.category,
            event_ref=self.event_ref,
            group_id=self.group_id,
            sync_status=self.sync_status,
            last_synced_at=self.last_synced_at,
            updated_at=updated_at,
        )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RemotePaymentDTO(_WireModel):
    """One row of the backend ``payments`` table."""

    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    amount: Decimal
    currency: Currency = Currency.PEN
    due_date: datetime
    is_paid: bool = False
    category: str
    event_identifier: uuid.UUID | None = None
    group_id: uuid.UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, v: Any) -> Currency:
        return Currency.parse_lenient(v)

    @field_validator("due_date", "created_at", "updated_at", mode="before")
    @classmethod
    def _timestamps(cls, v: Any) -> datetime | None:
        return None if v is None else parse_timestamp(v)

    @classmethod
    def from_payment(cls, payment: Payment, *, user_id: uuid.UUID) -> RemotePaymentDTO:
        return cls(
            id=payment.id,
            user_id=user_id,
            name=payment.name,
            amount=payment.amount,
            currency=payment.currency,
            due_date=payment.due_date,
            is_paid=payment.is_paid,
            category=payment.category.value,
            event_identifier=payment.event_ref,
            group_id=payment.group_id,
        )

    def to_payment(self, *, synced_at: datetime) -> Payment:
        """Return the local ``SYNCED`` copy of this remote row."""

        synced_at = as_utc(synced_at)
        return Payment(
            id=self.id,
            name=self.name,
            amount=self.amount,
            currency=self.currency,
            due_date=self.due_date,
            is_paid=self.is_paid,
            category=PaymentCategory.parse(self.category),
            event_ref=self.event_identifier,
            group_id=self.group_id,
            sync_status=SyncStatus.SYNCED,
            last_synced_at=synced_at,
            updated_at=synced_at,
        )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready body for the backend; server-managed timestamps are omitted."""

        return self.model_dump(mode="json", exclude={"created_at", "updated_at"})


__all__ = [
    "PENDING_STATUSES",
    "UPLOAD_STATUSES",
    "Currency",
    "Payment",
    "PaymentCategory",
    "PaymentRecord",
    "RemotePaymentDTO",
    "SyncStatus",
    "as_utc",
    "parse_timestamp",
    "to_amount",
    "utc_now",
]
