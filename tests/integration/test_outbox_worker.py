from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from py_household.application.use_cases_async.accounts import AsyncCreateAccount, AsyncGetAccount
from py_household.application.use_cases_async.adjustments import AdjustmentDispatcher, AsyncProcessPendingAdjustments
from py_household.application.use_cases_async.goals import (
    AsyncCreateGoal,
    AsyncCreateGoalContribution,
    AsyncGetGoal,
    AsyncListGoalContributions,
)
from py_household.application.use_cases_async.reconciliation import AsyncReconcileBalances
from py_household.application.use_cases_async.transactions import (
    AsyncCreateTransaction,
    AsyncDeleteTransaction,
    AsyncGetTransaction,
)
from py_household.domain.errors import ValidationError
from py_household.infrastructure.persistence.sqlalchemy.repositories_async import AsyncSqlAlchemyOutboxRepository

TENANT = "tenant-a"


async def _balance(ledger, account_id) -> int:
    return (await AsyncGetAccount(ledger.stores, ledger.policy)(TENANT, account_id)).current_balance


async def _unavailable(self, entry):
    raise RuntimeError("account store unavailable")


@pytest.mark.asyncio
async def test_failed_dispatch_leaves_entry_pending_until_worker_runs(ledger, monkeypatch: pytest.MonkeyPatch):
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "BCA", "bank", None, 500_000)

    monkeypatch.setattr(AdjustmentDispatcher, "_apply", _unavailable)
    txn = await AsyncCreateTransaction(ledger.stores, ledger.clock, ledger.policy)(
        TENANT, acc.id, "expense", 200_000, date(2026, 3, 9)
    )
    assert txn.status == "pending"
    assert await _balance(ledger, acc.id) == 500_000

    async with ledger.stores.journal() as uow:
        (row,) = await uow.outbox.list_for_transaction(txn.id)
    assert (row.status, row.attempts) == ("pending", 1)
    assert "account store unavailable" in (row.last_error or "")

    # In-flight accounts are skipped by the reconciler, not flagged
    report = await AsyncReconcileBalances(ledger.stores, ledger.clock)()
    assert report.in_flight == [acc.id]
    assert report.consistent

    monkeypatch.undo()
    result = await AsyncProcessPendingAdjustments(ledger.stores, ledger.clock, ledger.policy)()
    assert (result.processed, result.applied, result.deferred, result.failed) == (1, 1, 0, 0)
    assert await _balance(ledger, acc.id) == 300_000
    assert (await AsyncGetTransaction(ledger.stores)(TENANT, txn.id)).status == "applied"

    # Nothing left to do
    again = await AsyncProcessPendingAdjustments(ledger.stores, ledger.clock, ledger.policy)()
    assert again.processed == 0


@pytest.mark.asyncio
async def test_entry_fails_after_max_attempts(ledger, monkeypatch: pytest.MonkeyPatch):
    policy = replace(ledger.policy, adjustment_max_attempts=2)
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, policy)(TENANT, "BCA", "bank", None, 500_000)
    monkeypatch.setattr(AdjustmentDispatcher, "_apply", _unavailable)

    txn = await AsyncCreateTransaction(ledger.stores, ledger.clock, policy)(
        TENANT, acc.id, "income", 1_000, date(2026, 3, 9)
    )
    assert txn.status == "pending"
    result = await AsyncProcessPendingAdjustments(ledger.stores, ledger.clock, policy)()
    assert result.failed == 1
    monkeypatch.undo()

    assert (await AsyncGetTransaction(ledger.stores)(TENANT, txn.id)).status == "failed"
    assert (await AsyncProcessPendingAdjustments(ledger.stores, ledger.clock, policy)()).processed == 0

    report = await AsyncReconcileBalances(ledger.stores, ledger.clock)()
    assert report.failed_adjustments == 1
    (divergence,) = report.divergences
    assert (divergence.subject_id, divergence.expected, divergence.actual, divergence.difference) == (
        acc.id,
        501_000,
        500_000,
        1_000,
    )


@pytest.mark.asyncio
async def test_opening_balance_stays_pending_when_dispatch_fails(ledger, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(AdjustmentDispatcher, "_apply", _unavailable)
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "BCA", "bank", None, 750_000)
    assert acc.current_balance == 0
    monkeypatch.undo()

    await AsyncProcessPendingAdjustments(ledger.stores, ledger.clock, ledger.policy)()
    assert await _balance(ledger, acc.id) == 750_000


@pytest.mark.asyncio
async def test_redelivered_entry_is_not_applied_twice(ledger, monkeypatch: pytest.MonkeyPatch):
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "BCA", "bank", None, 100_000)

    async def lost_ack(self, entry_id, at):
        raise RuntimeError("journal store went away")

    # The effect lands but the outbox row cannot be marked applied
    monkeypatch.setattr(AsyncSqlAlchemyOutboxRepository, "mark_applied", lost_ack)
    txn = await AsyncCreateTransaction(ledger.stores, ledger.clock, ledger.policy)(
        TENANT, acc.id, "income", 40_000, date(2026, 3, 9)
    )
    assert txn.status == "pending"
    assert await _balance(ledger, acc.id) == 140_000
    monkeypatch.undo()

    result = await AsyncProcessPendingAdjustments(ledger.stores, ledger.clock, ledger.policy)()
    assert result.applied == 1
    assert await _balance(ledger, acc.id) == 140_000


@pytest.mark.asyncio
async def test_goal_effect_is_retried_by_the_worker(ledger, monkeypatch: pytest.MonkeyPatch):
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "BCA", "bank", None, 100_000)
    goal = await AsyncCreateGoal(ledger.stores, ledger.clock)(TENANT, "Holiday", 1_000_000, "vacation")
    original = AdjustmentDispatcher._apply

    async def goal_store_down(self, entry):
        if entry.target_kind == "goal":
            raise RuntimeError("goal store unavailable")
        return await original(self, entry)

    monkeypatch.setattr(AdjustmentDispatcher, "_apply", goal_store_down)
    result = await AsyncCreateGoalContribution(ledger.stores, ledger.clock, ledger.policy)(
        TENANT, goal.id, acc.id, 30_000, date(2026, 3, 9)
    )
    assert result.status == "pending"
    assert await _balance(ledger, acc.id) == 70_000
    assert (await AsyncGetGoal(ledger.stores)(TENANT, goal.id)).accumulated_amount == 0

    report = await AsyncReconcileBalances(ledger.stores, ledger.clock)()
    assert report.in_flight == [goal.id]
    assert report.consistent

    monkeypatch.undo()
    await AsyncProcessPendingAdjustments(ledger.stores, ledger.clock, ledger.policy)()
    assert (await AsyncGetGoal(ledger.stores)(TENANT, goal.id)).accumulated_amount == 30_000
    assert (await AsyncReconcileBalances(ledger.stores, ledger.clock)()).consistent


@pytest.mark.asyncio
async def test_pending_goal_apply_after_the_contribution_was_deleted(ledger, monkeypatch: pytest.MonkeyPatch):
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "BCA", "bank", None, 100_000)
    goal = await AsyncCreateGoal(ledger.stores, ledger.clock)(TENANT, "Holiday", 1_000_000, "vacation")
    original = AdjustmentDispatcher._apply

    async def goal_store_down(self, entry):
        if entry.target_kind == "goal":
            raise RuntimeError("goal store unavailable")
        return await original(self, entry)

    monkeypatch.setattr(AdjustmentDispatcher, "_apply", goal_store_down)
    result = await AsyncCreateGoalContribution(ledger.stores, ledger.clock, ledger.policy)(
        TENANT, goal.id, acc.id, 30_000, date(2026, 3, 9)
    )
    assert result.status == "pending"
    monkeypatch.undo()

    # The reverse reaches the goal store before the original apply
    deleted = await AsyncDeleteTransaction(ledger.stores, ledger.clock, ledger.policy)(TENANT, result.outgoing.id)
    assert deleted.status == "applied"
    assert (await AsyncGetGoal(ledger.stores)(TENANT, goal.id)).accumulated_amount == 0

    await AsyncProcessPendingAdjustments(ledger.stores, ledger.clock, ledger.policy)()
    assert (await AsyncGetGoal(ledger.stores)(TENANT, goal.id)).accumulated_amount == 0
    items, total = await AsyncListGoalContributions(ledger.stores, ledger.policy)(TENANT, goal.id)
    assert (items, total) == ([], 0)
    assert await _balance(ledger, acc.id) == 100_000

    report = await AsyncReconcileBalances(ledger.stores, ledger.clock)()
    assert report.consistent
    assert report.in_flight == []


@pytest.mark.asyncio
async def test_batch_size_must_be_positive(ledger):
    with pytest.raises(ValidationError):
        await AsyncProcessPendingAdjustments(ledger.stores, ledger.clock, ledger.policy)(0)
