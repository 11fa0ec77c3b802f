# ruff: noqa: I001
"""Create the device-local payments table with sync bookkeeping columns.

Revision ID: 0001_payments
Revises:
Create Date: 2025-12-01
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_payments"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "payments",
        sa.Column("id", sa.CHAR(36), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("amount", sa.String(), nullable=False),
        sa.Column(
            "currency_code", sa.CHAR(3), nullable=False, server_default=sa.text("'PEN'")
        ),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("event_ref", sa.CHAR(36), nullable=True),
        sa.Column("group_id", sa.CHAR(36), nullable=True),
        sa.Column(
            "sync_status", sa.String(), nullable=False, server_default=sa.text("'local'")
        ),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "sync_status in ('local','synced','modified','deleted')",
            name="ck_payments_sync_status",
        ),
        sa.CheckConstraint(
            "sync_status <> 'synced' OR last_synced_at IS NOT NULL",
            name="ck_payments_synced_has_timestamp",
        ),
    )

    # Pending-count and tombstone scans filter on status
    op.create_index("ix_payments_sync_status", "payments", ["sync_status"], unique=False)
    op.create_index("ix_payments_group_id", "payments", ["group_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_payments_group_id", table_name="payments")
    op.drop_index("ix_payments_sync_status", table_name="payments")
    op.drop_table("payments")
