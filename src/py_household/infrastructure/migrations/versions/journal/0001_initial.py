"""journal store: transactions, splits, transfer links, adjustment outbox

Revision ID: journal_0001
Revises:
Create Date: 2026-10-12

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "journal_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = ("journal",)
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("account_id", sa.String(length=32), nullable=False),
        sa.Column("category_id", sa.String(length=64), nullable=True),
        sa.Column("kind", sa.String(length=10), nullable=False),
        sa.Column("role", sa.String(length=10), nullable=True),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("value_date", sa.Date(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("recurring_parent_id", sa.String(length=64), nullable=True),
        sa.Column("goal_id", sa.String(length=32), nullable=True),
        sa.Column("is_opening", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_transactions_tenant_date", "transactions", ["tenant_id", "value_date"])
    op.create_index("ix_transactions_account_date", "transactions", ["account_id", "value_date"])
    op.create_index("ix_transactions_goal", "transactions", ["goal_id"])

    op.create_table(
        "category_splits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transaction_id", sa.String(length=32), nullable=False),
        sa.Column("category_id", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
    )
    op.create_index("ix_category_splits_transaction", "category_splits", ["transaction_id"])
    op.create_index("ix_category_splits_category", "category_splits", ["category_id"])

    op.create_table(
        "transfer_links",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("outgoing_transaction_id", sa.String(length=32), nullable=False),
        sa.Column("incoming_transaction_id", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("outgoing_transaction_id", name="uq_transfer_links_outgoing"),
        sa.UniqueConstraint("incoming_transaction_id", name="uq_transfer_links_incoming"),
    )

    op.create_table(
        "adjustment_outbox",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("transaction_id", sa.String(length=32), nullable=False),
        sa.Column("target_kind", sa.String(length=10), nullable=False),
        sa.Column("target_id", sa.String(length=32), nullable=False),
        sa.Column("delta", sa.BigInteger(), nullable=False),
        sa.Column("intent", sa.String(length=10), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=10), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("idempotency_key", name="uq_adjustment_outbox_key"),
    )
    op.create_index("ix_adjustment_outbox_status", "adjustment_outbox", ["status", "id"])
    op.create_index("ix_adjustment_outbox_transaction", "adjustment_outbox", ["transaction_id"])
    op.create_index("ix_adjustment_outbox_target", "adjustment_outbox", ["target_kind", "target_id", "status"])


def downgrade() -> None:
    op.drop_index("ix_adjustment_outbox_target", table_name="adjustment_outbox")
    op.drop_index("ix_adjustment_outbox_transaction", table_name="adjustment_outbox")
    op.drop_index("ix_adjustment_outbox_status", table_name="adjustment_outbox")
    op.drop_table("adjustment_outbox")
    op.drop_table("transfer_links")
    op.drop_index("ix_category_splits_category", table_name="category_splits")
    op.drop_index("ix_category_splits_transaction", table_name="category_splits")
    op.drop_table("category_splits")
    op.drop_index("ix_transactions_goal", table_name="transactions")
    op.drop_index("ix_transactions_account_date", table_name="transactions")
    op.drop_index("ix_transactions_tenant_date", table_name="transactions")
    op.drop_table("transactions")
