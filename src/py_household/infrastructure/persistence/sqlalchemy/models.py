"""
SQLAlchemy ORM schema declarations only (tables, columns, indexes).
No business logic, helpers, or factory functions should live here.

The ledger is partitioned into three independent stores, each with its own
declarative base and metadata so it can live in a separate database:

- AccountStoreBase: accounts, applied_adjustments, ledger_divergences
- JournalStoreBase: transactions, category_splits, transfer_links, adjustment_outbox
- GoalStoreBase:    savings_goals, goal_contributions, applied_goal_effects
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class AccountStoreBase(DeclarativeBase):
    pass


class JournalStoreBase(DeclarativeBase):
    pass


class GoalStoreBase(DeclarativeBase):
    pass


STORE_BASES: dict[str, type[DeclarativeBase]] = {
    "accounts": AccountStoreBase,
    "journal": JournalStoreBase,
    "goals": GoalStoreBase,
}


# --- account store -----------------------------------------------------------


class AccountORM(AccountStoreBase):
    __tablename__ = "accounts"
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    opening_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    current_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), server_default=func.now(), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_accounts_tenant_created", "tenant_id", "created_at"),
        Index("ix_accounts_tenant_type", "tenant_id", "type"),
    )


class AppliedAdjustmentORM(AccountStoreBase):
    __tablename__ = "applied_adjustments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)
    account_id: Mapped[str] = mapped_column(String(32), nullable=False)
    delta: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_applied_adjustments_key"),
        Index("ix_applied_adjustments_account", "account_id"),
    )


class LedgerDivergenceORM(AccountStoreBase):
    __tablename__ = "ledger_divergences"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject_kind: Mapped[str] = mapped_column(String(16), nullable=False)  # account/goal
    subject_id: Mapped[str] = mapped_column(String(32), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    expected: Mapped[int] = mapped_column(BigInteger, nullable=False)
    actual: Mapped[int] = mapped_column(BigInteger, nullable=False)
    difference: Mapped[int] = mapped_column(BigInteger, nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_divergences_subject", "subject_kind", "subject_id"),
        Index("ix_divergences_resolved_at", "resolved_at"),
    )


# --- journal store -----------------------------------------------------------


class TransactionORM(JournalStoreBase):
    __tablename__ = "transactions"
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    account_id: Mapped[str] = mapped_column(String(32), nullable=False)
    category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)  # income/expense/transfer
    role: Mapped[str | None] = mapped_column(String(10), nullable=True)  # outgoing/incoming for transfers
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    value_date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    recurring_parent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    goal_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_opening: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_transactions_tenant_date", "tenant_id", "value_date"),
        Index("ix_transactions_account_date", "account_id", "value_date"),
        Index("ix_transactions_goal", "goal_id"),
    )


class CategorySplitORM(JournalStoreBase):
    __tablename__ = "category_splits"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(32), nullable=False)
    category_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_category_splits_transaction", "transaction_id"),
        Index("ix_category_splits_category", "category_id"),
    )


class TransferLinkORM(JournalStoreBase):
    __tablename__ = "transfer_links"
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    outgoing_transaction_id: Mapped[str] = mapped_column(String(32), nullable=False)
    incoming_transaction_id: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("outgoing_transaction_id", name="uq_transfer_links_outgoing"),
        UniqueConstraint("incoming_transaction_id", name="uq_transfer_links_incoming"),
    )


class AdjustmentOutboxORM(JournalStoreBase):
    __tablename__ = "adjustment_outbox"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(32), nullable=False)
    target_kind: Mapped[str] = mapped_column(String(10), nullable=False)  # account/goal
    target_id: Mapped[str] = mapped_column(String(32), nullable=False)
    delta: Mapped[int] = mapped_column(BigInteger, nullable=False)
    intent: Mapped[str] = mapped_column(String(10), nullable=False)  # apply/reverse
    revision: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="pending", server_default="pending")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_adjustment_outbox_key"),
        Index("ix_adjustment_outbox_status", "status", "id"),
        Index("ix_adjustment_outbox_transaction", "transaction_id"),
        Index("ix_adjustment_outbox_target", "target_kind", "target_id", "status"),
    )


# --- goal store --------------------------------------------------------------


class SavingsGoalORM(GoalStoreBase):
    __tablename__ = "savings_goals"
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    goal_type: Mapped[str] = mapped_column(String(20), nullable=False, default="other", server_default="other")
    target_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    accumulated_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    deadline: Mapped[date | None] = mapped_column(Date, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_savings_goals_tenant_created", "tenant_id", "created_at"),)


class GoalContributionORM(GoalStoreBase):
    __tablename__ = "goal_contributions"
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    goal_id: Mapped[str] = mapped_column(String(32), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(32), nullable=False)
    account_id: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    contribution_date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("transaction_id", name="uq_goal_contributions_transaction"),
        Index("ix_goal_contributions_goal_date", "goal_id", "contribution_date"),
    )


class AppliedGoalEffectORM(GoalStoreBase):
    __tablename__ = "applied_goal_effects"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)
    goal_id: Mapped[str] = mapped_column(String(32), nullable=False)
    delta: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_applied_goal_effects_key"),
        Index("ix_applied_goal_effects_transaction", "transaction_id"),
    )
