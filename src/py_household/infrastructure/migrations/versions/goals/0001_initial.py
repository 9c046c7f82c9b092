"""goal store: savings goals, contributions, applied goal effects

Revision ID: goals_0001
Revises:
Create Date: 2026-10-12

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "goals_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = ("goals",)
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "savings_goals",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("goal_type", sa.String(length=20), nullable=False, server_default="other"),
        sa.Column("target_amount", sa.BigInteger(), nullable=False),
        sa.Column("accumulated_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_savings_goals_tenant_created", "savings_goals", ["tenant_id", "created_at"])

    op.create_table(
        "goal_contributions",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("goal_id", sa.String(length=32), nullable=False),
        sa.Column("transaction_id", sa.String(length=32), nullable=False),
        sa.Column("account_id", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("contribution_date", sa.Date(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("transaction_id", name="uq_goal_contributions_transaction"),
    )
    op.create_index("ix_goal_contributions_goal_date", "goal_contributions", ["goal_id", "contribution_date"])

    op.create_table(
        "applied_goal_effects",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=False),
        sa.Column("goal_id", sa.String(length=32), nullable=False),
        sa.Column("delta", sa.BigInteger(), nullable=False),
        sa.Column("transaction_id", sa.String(length=32), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("idempotency_key", name="uq_applied_goal_effects_key"),
    )
    op.create_index("ix_applied_goal_effects_transaction", "applied_goal_effects", ["transaction_id"])


def downgrade() -> None:
    op.drop_index("ix_applied_goal_effects_transaction", table_name="applied_goal_effects")
    op.drop_table("applied_goal_effects")
    op.drop_index("ix_goal_contributions_goal_date", table_name="goal_contributions")
    op.drop_table("goal_contributions")
    op.drop_index("ix_savings_goals_tenant_created", table_name="savings_goals")
    op.drop_table("savings_goals")
