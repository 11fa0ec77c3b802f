from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CHAR,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: payments (device-local copy)
# ---------------------------


class PaymentRow(Base):
    __tablename__ = "payments"

    # UUIDs are stored as canonical 36-char strings so SQLite and Postgres
    # round-trip the same text representation.
    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # Decimal string ("12.50"); SQLite has no exact numeric column type.
    amount: Mapped[str] = mapped_column(String, nullable=False)
    currency_code: Mapped[str] = mapped_column(
        CHAR(3), nullable=False, server_default=text("'PEN'")
    )
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    category: Mapped[str] = mapped_column(String, nullable=False)
    event_ref: Mapped[str | None] = mapped_column(CHAR(36), nullable=True)
    # Shared by the payments of one recurring/dual-currency group.
    group_id: Mapped[str | None] = mapped_column(CHAR(36), nullable=True)
    sync_status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'local'")
    )
    # Set only when the remote store confirmed this version of the row.
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "sync_status in ('local','synced','modified','deleted')",
            name="ck_payments_sync_status",
        ),
        CheckConstraint(
            "sync_status <> 'synced' OR last_synced_at IS NOT NULL",
            name="ck_payments_synced_has_timestamp",
        ),
        Index("ix_payments_sync_status", "sync_status"),
        Index("ix_payments_group_id", "group_id"),
    )


__all__ = [
    "Base",
    "PaymentRow",
]
