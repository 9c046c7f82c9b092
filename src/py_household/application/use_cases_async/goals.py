from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import uuid4

from py_household.application.dto.models import (
    GoalContributionDTO,
    GoalDTO,
    GoalPageDTO,
    TransactionDTO,
    TransferResultDTO,
)
from py_household.application.ports import Clock, LedgerPolicy, LedgerStores
from py_household.application.use_cases_async.transactions import AsyncDeleteTransaction
from py_household.application.use_cases_async.transfers import AsyncCreateTransfer
from py_household.domain.errors import DomainRuleError, NotFoundError, ValidationError
from py_household.domain.goals import Goal, parse_goal_type, progress_percent
from py_household.domain.money import ensure_amount
from py_household.domain.transfers import GoalTarget
from py_household.infrastructure.logging.config import get_logger

__all__ = [
    "AsyncCreateGoal",
    "AsyncGetGoal",
    "AsyncListGoals",
    "AsyncUpdateGoal",
    "AsyncDeleteGoal",
    "AsyncCreateGoalContribution",
    "AsyncListGoalContributions",
    "AsyncDeleteGoalContribution",
]


def _with_progress(goal: GoalDTO) -> GoalDTO:
    goal.progress_percent = progress_percent(goal.accumulated_amount, goal.target_amount)
    goal.remaining_amount = max(0, goal.target_amount - goal.accumulated_amount)
    return goal


async def _load_goal(stores: LedgerStores, tenant_id: str, goal_id: str) -> GoalDTO:
    async with stores.goals() as uow:
        goal = await uow.goals.get(goal_id, tenant_id=tenant_id)
    if not goal:
        raise NotFoundError(f"Goal not found: {goal_id}")
    return goal


@dataclass(slots=True)
class AsyncCreateGoal:
    stores: LedgerStores
    clock: Clock

    async def __call__(
        self,
        tenant_id: str,
        name: str,
        target_amount: int,
        goal_type: str | None = None,
        deadline: date | None = None,
        note: str | None = None,
    ) -> GoalDTO:
        goal = Goal(tenant_id=tenant_id, name=name, target_amount=target_amount, goal_type=goal_type, deadline=deadline)  # type: ignore[arg-type]
        now = self.clock.now()
        async with self.stores.goals() as uow:
            created = await uow.goals.create(
                GoalDTO(
                    id=uuid4().hex,
                    tenant_id=goal.tenant_id,
                    name=goal.name,
                    goal_type=str(goal.goal_type),
                    target_amount=goal.target_amount,
                    deadline=goal.deadline,
                    note=note,
                    created_at=now,
                    updated_at=now,
                )
            )
        get_logger(__name__).info("goal_created", tenant_id=created.tenant_id, goal_id=created.id, target=created.target_amount)
        return _with_progress(created)


@dataclass(slots=True)
class AsyncGetGoal:
    """Return a goal with ``progress_percent`` and ``remaining_amount``."""

    stores: LedgerStores

    async def __call__(self, tenant_id: str, goal_id: str) -> GoalDTO:
        return _with_progress(await _load_goal(self.stores, tenant_id, goal_id))


@dataclass(slots=True)
class AsyncListGoals:
    stores: LedgerStores
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self, tenant_id: str, *, include_deleted: bool = False, limit: int | None = None, offset: int = 0
    ) -> GoalPageDTO:
        if offset < 0:
            raise ValidationError("offset must not be negative")
        page_size = limit if limit is not None else self.policy.page_size
        if page_size <= 0:
            raise ValidationError("limit must be positive")
        async with self.stores.goals() as uow:
            items, total = await uow.goals.list(tenant_id, include_deleted=include_deleted, limit=page_size, offset=offset)
        return GoalPageDTO(items=[_with_progress(g) for g in items], total=total)


@dataclass(slots=True)
class AsyncUpdateGoal:
    """Edit goal metadata. ``accumulated_amount`` only moves through contributions."""

    stores: LedgerStores
    clock: Clock

    async def __call__(
        self,
        tenant_id: str,
        goal_id: str,
        *,
        name: str | None = None,
        goal_type: str | None = None,
        target_amount: int | None = None,
        deadline: date | None = None,
        note: str | None = None,
    ) -> GoalDTO:
        values: dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Goal name must not be empty")
            values["name"] = name.strip()
        if goal_type is not None:
            values["goal_type"] = str(parse_goal_type(goal_type))
        if target_amount is not None:
            values["target_amount"] = ensure_amount(target_amount, field="target_amount")
        if deadline is not None:
            values["deadline"] = deadline
        if note is not None:
            values["note"] = note
        if not values:
            raise ValidationError("No fields to update")
        await _load_goal(self.stores, tenant_id, goal_id)
        async with self.stores.goals() as uow:
            updated = await uow.goals.update_details(goal_id, values, self.clock.now())
        if not updated:
            raise NotFoundError(f"Goal not found: {goal_id}")
        return _with_progress(updated)


@dataclass(slots=True)
class AsyncDeleteGoal:
    """Soft-delete a goal; rejected while it still holds contributions."""

    stores: LedgerStores
    clock: Clock

    async def __call__(self, tenant_id: str, goal_id: str) -> None:
        goal = await _load_goal(self.stores, tenant_id, goal_id)
        if goal.accumulated_amount > 0:
            raise DomainRuleError("Goal still holds contributions; delete them before deleting the goal")
        async with self.stores.goals() as uow:
            await uow.goals.soft_delete(goal_id, self.clock.now())
        get_logger(__name__).info("goal_deleted", tenant_id=tenant_id, goal_id=goal_id)


@dataclass(slots=True)
class AsyncCreateGoalContribution:
    """Contribute to a goal from an account: a transfer with an explicit ``GoalTarget``."""

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self,
        tenant_id: str,
        goal_id: str,
        account_id: str,
        amount: int,
        contribution_date: date,
        note: str | None = None,
        actor_id: str | None = None,
    ) -> TransferResultDTO:
        await _load_goal(self.stores, tenant_id, goal_id)
        create = AsyncCreateTransfer(self.stores, self.clock, self.policy)
        return await create(
            tenant_id, account_id, GoalTarget(goal_id=goal_id), amount, contribution_date, note=note, actor_id=actor_id
        )


@dataclass(slots=True)
class AsyncListGoalContributions:
    """Contributions of a tenant goal, newest contribution date first."""

    stores: LedgerStores
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self, tenant_id: str, goal_id: str, *, limit: int | None = None, offset: int = 0
    ) -> tuple[list[GoalContributionDTO], int]:
        await _load_goal(self.stores, tenant_id, goal_id)
        if offset < 0:
            raise ValidationError("offset must not be negative")
        async with self.stores.goals() as uow:
            return await uow.contributions.list(goal_id, limit=limit or self.policy.page_size, offset=offset)


@dataclass(slots=True)
class AsyncDeleteGoalContribution:
    """Delete a contribution by deleting its outgoing transfer entry.

    The journal delete reverses both the source account debit and the goal's
    accumulated amount; the contribution row is removed by the goal-store step.
    """

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(self, tenant_id: str, contribution_id: str) -> TransactionDTO:
        async with self.stores.goals() as uow:
            contribution = await uow.contributions.get(contribution_id)
            goal = await uow.goals.get(contribution.goal_id, tenant_id=tenant_id) if contribution else None
        if not contribution or not goal:
            raise NotFoundError(f"Goal contribution not found: {contribution_id}")
        return await AsyncDeleteTransaction(self.stores, self.clock, self.policy)(tenant_id, contribution.transaction_id)
