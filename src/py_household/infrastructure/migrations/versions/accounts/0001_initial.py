"""account store: accounts, applied adjustments, divergences

Revision ID: accounts_0001
Revises:
Create Date: 2026-10-12

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "accounts_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = ("accounts",)
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("opening_balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("current_balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_accounts_tenant_created", "accounts", ["tenant_id", "created_at"])
    op.create_index("ix_accounts_tenant_type", "accounts", ["tenant_id", "type"])

    op.create_table(
        "applied_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=False),
        sa.Column("account_id", sa.String(length=32), nullable=False),
        sa.Column("delta", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("idempotency_key", name="uq_applied_adjustments_key"),
    )
    op.create_index("ix_applied_adjustments_account", "applied_adjustments", ["account_id"])

    op.create_table(
        "ledger_divergences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("subject_kind", sa.String(length=16), nullable=False),
        sa.Column("subject_id", sa.String(length=32), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("expected", sa.BigInteger(), nullable=False),
        sa.Column("actual", sa.BigInteger(), nullable=False),
        sa.Column("difference", sa.BigInteger(), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(length=64), nullable=True),
        sa.Column("resolution_note", sa.Text(), nullable=True),
    )
    op.create_index("ix_divergences_subject", "ledger_divergences", ["subject_kind", "subject_id"])
    op.create_index("ix_divergences_resolved_at", "ledger_divergences", ["resolved_at"])


def downgrade() -> None:
    op.drop_index("ix_divergences_resolved_at", table_name="ledger_divergences")
    op.drop_index("ix_divergences_subject", table_name="ledger_divergences")
    op.drop_table("ledger_divergences")
    op.drop_index("ix_applied_adjustments_account", table_name="applied_adjustments")
    op.drop_table("applied_adjustments")
    op.drop_index("ix_accounts_tenant_type", table_name="accounts")
    op.drop_index("ix_accounts_tenant_created", table_name="accounts")
    op.drop_table("accounts")
