from __future__ import annotations

from datetime import date

import pytest

from py_household.application.dto.models import TransactionFilterDTO
from py_household.application.use_cases_async.accounts import AsyncCreateAccount, AsyncGetAccount, AsyncUpdateAccount
from py_household.application.use_cases_async.goals import (
    AsyncCreateGoal,
    AsyncCreateGoalContribution,
    AsyncDeleteGoal,
    AsyncDeleteGoalContribution,
    AsyncGetGoal,
    AsyncListGoalContributions,
    AsyncListGoals,
    AsyncUpdateGoal,
)
from py_household.application.use_cases_async.transactions import (
    AsyncDeleteTransaction,
    AsyncListTransactions,
    AsyncUpdateTransaction,
)
from py_household.application.use_cases_async.transfers import AsyncCreateTransfer, AsyncResolveTransferTarget
from py_household.domain.errors import DomainRuleError, NotFoundError, ValidationError
from py_household.domain.goals import GOAL_LABEL_PREFIX
from py_household.domain.transfers import AccountTarget, GoalTarget

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"
DAY = date(2026, 3, 9)


async def _account(ledger, name, account_type="bank", opening=1_000_000, tenant=TENANT):
    return await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(tenant, name, account_type, None, opening)


async def _balance(ledger, account_id, tenant=TENANT) -> int:
    return (await AsyncGetAccount(ledger.stores, ledger.policy)(tenant, account_id)).current_balance


async def _goal(ledger, name="Emergency", target=5_000_000, tenant=TENANT):
    return await AsyncCreateGoal(ledger.stores, ledger.clock)(tenant, name, target, "emergency-fund")


@pytest.mark.asyncio
async def test_account_transfer_is_symmetric(ledger):
    bca = await _account(ledger, "BCA")
    cash = await _account(ledger, "Cash", "cash", opening=0)

    result = await AsyncCreateTransfer(ledger.stores, ledger.clock, ledger.policy)(
        TENANT, bca.id, cash.id, 200_000, DAY, note="ATM"
    )

    assert result.target_kind == "account"
    assert result.status == "applied"
    assert result.transfer_link_id
    out, inc = result.outgoing, result.incoming
    assert (out.role, inc.role) == ("outgoing", "incoming")
    assert (out.amount, inc.amount) == (200_000, 200_000)
    assert out.transfer.counterparty_id == cash.id
    assert inc.transfer.counterparty_id == bca.id
    assert out.transfer.paired_transaction_id == inc.id
    assert await _balance(ledger, bca.id) == 800_000
    assert await _balance(ledger, cash.id) == 200_000


@pytest.mark.asyncio
async def test_transfer_listing_shows_one_row_per_pair(ledger):
    bca = await _account(ledger, "BCA")
    cash = await _account(ledger, "Cash", "cash", opening=0)
    result = await AsyncCreateTransfer(ledger.stores, ledger.clock, ledger.policy)(TENANT, bca.id, cash.id, 1_000, DAY)
    list_ = AsyncListTransactions(ledger.stores, ledger.policy)

    transfers = await list_(TENANT, TransactionFilterDTO(kind="transfer"))
    assert [t.id for t in transfers.items] == [result.outgoing.id]
    assert transfers.items[0].transfer.counterparty_label == "Cash"

    both = await list_(TENANT, TransactionFilterDTO(kind="transfer", include_incoming=True))
    assert both.total == 2

    on_cash = await list_(TENANT, TransactionFilterDTO(account_id=cash.id))
    assert [(t.id, t.transfer.direction) for t in on_cash.items] == [(result.incoming.id, "incoming")]


@pytest.mark.asyncio
async def test_transfer_rules(ledger):
    bca = await _account(ledger, "BCA", opening=100_000)
    usd = await _account(ledger, "Wise", opening=0)
    await AsyncUpdateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, usd.id, currency="USD")
    cash = await _account(ledger, "Cash", "cash", opening=0)
    foreign = await _account(ledger, "Foreign", tenant=OTHER_TENANT)
    foreign_goal = await _goal(ledger, tenant=OTHER_TENANT)
    transfer = AsyncCreateTransfer(ledger.stores, ledger.clock, ledger.policy)

    with pytest.raises(DomainRuleError):
        await transfer(TENANT, bca.id, bca.id, 1_000, DAY)
    with pytest.raises(DomainRuleError):
        await transfer(TENANT, bca.id, usd.id, 1_000, DAY)
    with pytest.raises(DomainRuleError):
        await transfer(TENANT, bca.id, foreign.id, 1_000, DAY)
    with pytest.raises(DomainRuleError):
        await transfer(TENANT, bca.id, AccountTarget(foreign.id), 1_000, DAY)
    with pytest.raises(DomainRuleError):
        await transfer(TENANT, bca.id, foreign_goal.id, 1_000, DAY)
    with pytest.raises(DomainRuleError):
        await transfer(TENANT, bca.id, cash.id, 100_001, DAY)
    with pytest.raises(NotFoundError):
        await transfer(TENANT, bca.id, "nowhere", 1_000, DAY)
    with pytest.raises(ValidationError):
        await transfer(TENANT, bca.id, usd.id, 0, DAY)

    assert await _balance(ledger, bca.id) == 100_000


@pytest.mark.asyncio
async def test_credit_card_payment_reduces_debt(ledger):
    bca = await _account(ledger, "BCA")
    card = await _account(ledger, "Visa", "credit-card", opening=400_000)

    await AsyncCreateTransfer(ledger.stores, ledger.clock, ledger.policy)(TENANT, bca.id, card.id, 150_000, DAY)
    assert await _balance(ledger, card.id) == -250_000
    assert await _balance(ledger, bca.id) == 850_000


@pytest.mark.asyncio
async def test_deleting_either_leg_removes_the_pair(ledger):
    bca = await _account(ledger, "BCA")
    cash = await _account(ledger, "Cash", "cash", opening=0)
    result = await AsyncCreateTransfer(ledger.stores, ledger.clock, ledger.policy)(TENANT, bca.id, cash.id, 50_000, DAY)

    await AsyncDeleteTransaction(ledger.stores, ledger.clock, ledger.policy)(TENANT, result.incoming.id)

    assert await _balance(ledger, bca.id) == 1_000_000
    assert await _balance(ledger, cash.id) == 0
    page = await AsyncListTransactions(ledger.stores, ledger.policy)(TENANT, TransactionFilterDTO(kind="transfer"))
    assert page.total == 0
    async with ledger.stores.journal() as uow:
        assert await uow.transfers.for_transactions([result.outgoing.id, result.incoming.id]) == {}


@pytest.mark.asyncio
async def test_transfer_legs_accept_only_descriptive_edits(ledger):
    bca = await _account(ledger, "BCA")
    cash = await _account(ledger, "Cash", "cash", opening=0)
    result = await AsyncCreateTransfer(ledger.stores, ledger.clock, ledger.policy)(TENANT, bca.id, cash.id, 50_000, DAY)
    update = AsyncUpdateTransaction(ledger.stores, ledger.clock, ledger.policy)

    with pytest.raises(DomainRuleError):
        await update(TENANT, result.outgoing.id, amount=10)
    edited = await update(TENANT, result.outgoing.id, note="Pocket money", value_date=date(2026, 3, 8))
    assert (edited.note, edited.value_date) == ("Pocket money", date(2026, 3, 8))
    assert await _balance(ledger, bca.id) == 950_000


@pytest.mark.asyncio
async def test_resolve_transfer_target(ledger):
    bca = await _account(ledger, "BCA")
    goal = await _goal(ledger)
    resolve = AsyncResolveTransferTarget(ledger.stores)

    assert await resolve(TENANT, goal.id) == GoalTarget(goal_id=goal.id)
    assert await resolve(TENANT, bca.id) == AccountTarget(account_id=bca.id)
    with pytest.raises(NotFoundError):
        await resolve(TENANT, "unknown")
    with pytest.raises(DomainRuleError):
        await resolve(OTHER_TENANT, bca.id)


@pytest.mark.asyncio
async def test_goal_contribution_moves_money_into_the_goal(ledger):
    bca = await _account(ledger, "BCA")
    goal = await _goal(ledger, target=1_000_000)

    result = await AsyncCreateGoalContribution(ledger.stores, ledger.clock, ledger.policy)(
        TENANT, goal.id, bca.id, 250_000, DAY, note="March"
    )

    assert result.target_kind == "goal"
    assert result.status == "applied"
    assert result.contribution_id
    assert result.incoming.account_id == goal.id
    assert result.incoming.account_name == f"{GOAL_LABEL_PREFIX}Emergency"
    assert result.outgoing.transfer.counterparty_kind == "goal"
    assert await _balance(ledger, bca.id) == 750_000

    fresh = await AsyncGetGoal(ledger.stores)(TENANT, goal.id)
    assert fresh.accumulated_amount == 250_000
    assert fresh.progress_percent == 25.0
    assert fresh.remaining_amount == 750_000

    items, total = await AsyncListGoalContributions(ledger.stores, ledger.policy)(TENANT, goal.id)
    assert total == 1
    assert (items[0].id, items[0].amount, items[0].account_id) == (result.contribution_id, 250_000, bca.id)

    async with ledger.stores.journal() as uow:
        rows = await uow.outbox.list_for_transaction(result.outgoing.id)
    assert sorted(r.idempotency_key for r in rows) == sorted(
        [f"{result.outgoing.id}@0:apply", f"{result.outgoing.id}@0:apply:goal"]
    )

    listed = await AsyncListTransactions(ledger.stores, ledger.policy)(TENANT, TransactionFilterDTO(kind="transfer"))
    assert listed.items[0].transfer.transfer_id == result.contribution_id


@pytest.mark.asyncio
async def test_deleting_a_contribution_reverses_both_sides(ledger):
    bca = await _account(ledger, "BCA")
    goal = await _goal(ledger)
    contribute = AsyncCreateGoalContribution(ledger.stores, ledger.clock, ledger.policy)
    first = await contribute(TENANT, goal.id, bca.id, 100_000, DAY)
    await contribute(TENANT, goal.id, bca.id, 50_000, date(2026, 3, 10))

    with pytest.raises(DomainRuleError):
        await AsyncDeleteGoal(ledger.stores, ledger.clock)(TENANT, goal.id)

    await AsyncDeleteGoalContribution(ledger.stores, ledger.clock, ledger.policy)(TENANT, first.contribution_id)
    assert await _balance(ledger, bca.id) == 950_000
    assert (await AsyncGetGoal(ledger.stores)(TENANT, goal.id)).accumulated_amount == 50_000
    items, total = await AsyncListGoalContributions(ledger.stores, ledger.policy)(TENANT, goal.id)
    assert total == 1 and items[0].amount == 50_000

    with pytest.raises(NotFoundError):
        await AsyncDeleteGoalContribution(ledger.stores, ledger.clock, ledger.policy)(TENANT, first.contribution_id)
    with pytest.raises(NotFoundError):
        await AsyncDeleteGoalContribution(ledger.stores, ledger.clock, ledger.policy)(OTHER_TENANT, items[0].id)


@pytest.mark.asyncio
async def test_goal_crud(ledger):
    goal = await _goal(ledger, target=2_000_000)
    assert goal.goal_type == "emergency-fund"
    assert goal.progress_percent == 0.0

    updated = await AsyncUpdateGoal(ledger.stores, ledger.clock)(
        TENANT, goal.id, name="Rainy day", target_amount=3_000_000, deadline=date(2027, 1, 1)
    )
    assert (updated.name, updated.target_amount, updated.deadline) == ("Rainy day", 3_000_000, date(2027, 1, 1))
    with pytest.raises(ValidationError):
        await AsyncUpdateGoal(ledger.stores, ledger.clock)(TENANT, goal.id)
    with pytest.raises(ValidationError):
        await AsyncUpdateGoal(ledger.stores, ledger.clock)(TENANT, goal.id, goal_type="yacht")
    with pytest.raises(ValidationError):
        await AsyncCreateGoal(ledger.stores, ledger.clock)(TENANT, "Bad", 0)

    await AsyncDeleteGoal(ledger.stores, ledger.clock)(TENANT, goal.id)
    with pytest.raises(NotFoundError):
        await AsyncGetGoal(ledger.stores)(TENANT, goal.id)
    assert (await AsyncListGoals(ledger.stores, ledger.policy)(TENANT)).total == 0
    assert (await AsyncListGoals(ledger.stores, ledger.policy)(TENANT, include_deleted=True)).total == 1


@pytest.mark.asyncio
async def test_contribution_requires_funds_and_own_goal(ledger):
    cash = await _account(ledger, "Cash", "cash", opening=10_000)
    goal = await _goal(ledger)
    foreign_goal = await _goal(ledger, tenant=OTHER_TENANT)
    contribute = AsyncCreateGoalContribution(ledger.stores, ledger.clock, ledger.policy)

    with pytest.raises(DomainRuleError):
        await contribute(TENANT, goal.id, cash.id, 10_001, DAY)
    with pytest.raises(NotFoundError):
        await contribute(TENANT, foreign_goal.id, cash.id, 1_000, DAY)
    assert (await AsyncGetGoal(ledger.stores)(TENANT, goal.id)).accumulated_amount == 0
