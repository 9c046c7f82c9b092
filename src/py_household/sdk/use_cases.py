"""Thin async facades over the application use cases for SDK consumers.

Each facade takes an ``AppContext``, runs the matching use case and re-raises
internal errors as public SDK exceptions (see ``sdk.errors``). Amounts are
integer minor units; ``parse_amount`` converts user-entered major units.

Public surface:
- parse_amount(text, scale=None)
- create_account / get_account / list_accounts / adjust_balance
- create_transaction / update_transaction / list_transactions
- create_transfer / create_goal_contribution / list_goal_contributions
"""
from __future__ import annotations

from collections.abc import Awaitable
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar

from py_household.application.dto.models import (
    AccountDTO,
    AccountPageDTO,
    GoalContributionDTO,
    SplitDTO,
    TransactionDTO,
    TransactionFilterDTO,
    TransactionPageDTO,
    TransferResultDTO,
)
from py_household.application.use_cases_async.accounts import (
    AsyncCreateAccount,
    AsyncGetAccount,
    AsyncListAccounts,
)
from py_household.application.use_cases_async.adjustments import AsyncAdjustBalance
from py_household.application.use_cases_async.goals import (
    AsyncCreateGoalContribution,
    AsyncListGoalContributions,
)
from py_household.application.use_cases_async.transactions import (
    AsyncCreateTransaction,
    AsyncListTransactions,
    AsyncUpdateTransaction,
)
from py_household.application.use_cases_async.transfers import AsyncCreateTransfer
from py_household.domain.money import DEFAULT_SCALE, to_minor
from py_household.sdk.bootstrap import AppContext

from .errors import map_exception

__all__ = [
    "parse_amount",
    "create_account",
    "adjust_balance",
    "get_account",
    "list_accounts",
    "create_transaction",
    "update_transaction",
    "list_transactions",
    "create_transfer",
    "create_goal_contribution",
    "list_goal_contributions",
]

T = TypeVar("T")


async def _run(awaitable: Awaitable[T]) -> T:
    try:
        return await awaitable
    except Exception as exc:
        raise map_exception(exc) from exc


def parse_amount(value: str | Decimal | int, scale: int | None = None) -> int:
    """Parse a major-unit amount ("1,250.50", Decimal, int) into minor units."""
    try:
        return to_minor(value, DEFAULT_SCALE if scale is None else scale)
    except Exception as exc:
        raise map_exception(exc) from exc


async def create_account(
    ctx: AppContext, tenant_id: str, name: str, account_type: str, currency: str | None = None, opening_balance: int = 0
) -> AccountDTO:
    return await _run(AsyncCreateAccount(ctx.stores, ctx.clock, ctx.policy)(tenant_id, name, account_type, currency, opening_balance))


async def adjust_balance(ctx: AppContext, account_id: str, delta: int, idempotency_key: str) -> int:
    return await _run(AsyncAdjustBalance(ctx.stores, ctx.clock)(account_id, delta, idempotency_key))


async def get_account(ctx: AppContext, tenant_id: str, account_id: str) -> AccountDTO:
    return await _run(AsyncGetAccount(ctx.stores, ctx.policy)(tenant_id, account_id))


async def list_accounts(ctx: AppContext, tenant_id: str, **kwargs: Any) -> AccountPageDTO:
    return await _run(AsyncListAccounts(ctx.stores, ctx.policy)(tenant_id, **kwargs))


async def create_transaction(
    ctx: AppContext,
    tenant_id: str,
    account_id: str,
    kind: str,
    amount: int,
    value_date: date,
    *,
    splits: list[SplitDTO] | None = None,
    **kwargs: Any,
) -> TransactionDTO:
    use_case = AsyncCreateTransaction(ctx.stores, ctx.clock, ctx.policy)
    return await _run(use_case(tenant_id, account_id, kind, amount, value_date, splits=splits, **kwargs))


async def update_transaction(ctx: AppContext, tenant_id: str, transaction_id: str, **changes: Any) -> TransactionDTO:
    return await _run(AsyncUpdateTransaction(ctx.stores, ctx.clock, ctx.policy)(tenant_id, transaction_id, **changes))


async def list_transactions(ctx: AppContext, tenant_id: str, filters: TransactionFilterDTO | None = None) -> TransactionPageDTO:
    return await _run(AsyncListTransactions(ctx.stores, ctx.policy)(tenant_id, filters))


async def create_transfer(
    ctx: AppContext,
    tenant_id: str,
    source_account_id: str,
    destination_id: str,
    amount: int,
    value_date: date,
    **kwargs: Any,
) -> TransferResultDTO:
    use_case = AsyncCreateTransfer(ctx.stores, ctx.clock, ctx.policy)
    return await _run(use_case(tenant_id, source_account_id, destination_id, amount, value_date, **kwargs))


async def create_goal_contribution(
    ctx: AppContext,
    tenant_id: str,
    goal_id: str,
    account_id: str,
    amount: int,
    contribution_date: date,
    note: str | None = None,
) -> TransferResultDTO:
    use_case = AsyncCreateGoalContribution(ctx.stores, ctx.clock, ctx.policy)
    return await _run(use_case(tenant_id, goal_id, account_id, amount, contribution_date, note))


async def list_goal_contributions(
    ctx: AppContext, tenant_id: str, goal_id: str, *, limit: int | None = None, offset: int = 0
) -> tuple[list[GoalContributionDTO], int]:
    return await _run(AsyncListGoalContributions(ctx.stores, ctx.policy)(tenant_id, goal_id, limit=limit, offset=offset))
