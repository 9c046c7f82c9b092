"""Savings goal CLI commands, including contributions."""
from __future__ import annotations

from datetime import date

from typer import Argument, Option, Typer

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
from py_household.domain.errors import ValidationError
from py_household.domain.money import format_major, to_minor
from py_household.sdk.bootstrap import AppContext
from py_household.sdk.json import to_json

from .formatters import fmt_goal, fmt_transaction
from .infra import run_with_context

goal = Typer(help="Savings goals: add, list, get, update, delete, contribute.")

TENANT = Option(..., "--tenant", "-t", envvar="HOUSEHOLD_TENANT", help="Tenant (user) id.")
JSON = Option(False, "--json", help="Output JSON instead of human-readable lines.")


def _date(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"date must be YYYY-MM-DD: {value!r}") from exc


@goal.command("add")
def goal_add(
    name: str,
    target: str = Argument(..., help="Target amount in major units."),
    tenant: str = TENANT,
    goal_type: str | None = Option(None, "--type", help="emergency-fund, house, vehicle, vacation, education, retirement or other."),
    deadline: str | None = Option(None, "--deadline"),
    note: str | None = Option(None, "--note"),
    json_output: bool = JSON,
) -> None:
    async def _logic(ctx: AppContext):
        scale = ctx.policy.money_scale
        dto = await AsyncCreateGoal(ctx.stores, ctx.clock)(
            tenant, name, to_minor(target, scale), goal_type, _date(deadline), note
        )
        return dto, scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else fmt_goal(dto, scale))


@goal.command("list")
def goal_list(
    tenant: str = TENANT,
    include_deleted: bool = Option(False, "--include-deleted"),
    limit: int | None = Option(None, "--limit"),
    offset: int = Option(0, "--offset"),
    json_output: bool = JSON,
) -> None:
    async def _logic(ctx: AppContext):
        page = await AsyncListGoals(ctx.stores, ctx.policy)(tenant, include_deleted=include_deleted, limit=limit, offset=offset)
        return page, ctx.policy.money_scale

    page, scale = run_with_context(_logic)
    if json_output:
        print(to_json(page))
        return
    for g in page.items:
        print(fmt_goal(g, scale))
    print(f"Total: {page.total}")


@goal.command("get")
def goal_get(goal_id: str, tenant: str = TENANT, json_output: bool = JSON) -> None:
    async def _logic(ctx: AppContext):
        return await AsyncGetGoal(ctx.stores)(tenant, goal_id), ctx.policy.money_scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else fmt_goal(dto, scale))


@goal.command("update")
def goal_update(
    goal_id: str,
    tenant: str = TENANT,
    name: str | None = Option(None, "--name"),
    goal_type: str | None = Option(None, "--type"),
    target: str | None = Option(None, "--target"),
    deadline: str | None = Option(None, "--deadline"),
    note: str | None = Option(None, "--note"),
    json_output: bool = JSON,
) -> None:
    async def _logic(ctx: AppContext):
        scale = ctx.policy.money_scale
        dto = await AsyncUpdateGoal(ctx.stores, ctx.clock)(
            tenant,
            goal_id,
            name=name,
            goal_type=goal_type,
            target_amount=to_minor(target, scale) if target is not None else None,
            deadline=_date(deadline),
            note=note,
        )
        return dto, scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else fmt_goal(dto, scale))


@goal.command("delete")
def goal_delete(goal_id: str, tenant: str = TENANT) -> None:
    async def _logic(ctx: AppContext):
        await AsyncDeleteGoal(ctx.stores, ctx.clock)(tenant, goal_id)

    run_with_context(_logic)
    print(f"Deleted goal {goal_id}")


@goal.command("contribute")
def goal_contribute(
    goal_id: str,
    account_id: str,
    amount: str = Argument(..., help="Positive amount in major units."),
    tenant: str = TENANT,
    contribution_date: str | None = Option(None, "--date"),
    note: str | None = Option(None, "--note"),
    json_output: bool = JSON,
) -> None:
    """Move money from an account into the goal."""

    async def _logic(ctx: AppContext):
        scale = ctx.policy.money_scale
        result = await AsyncCreateGoalContribution(ctx.stores, ctx.clock, ctx.policy)(
            tenant, goal_id, account_id, to_minor(amount, scale), _date(contribution_date) or ctx.clock.now().date(), note
        )
        return result, scale

    result, scale = run_with_context(_logic)
    if json_output:
        print(to_json(result))
        return
    print(f"Contribution {result.contribution_id} status={result.status}")
    print(fmt_transaction(result.outgoing, scale))


@goal.command("contributions")
def goal_contributions(
    goal_id: str,
    tenant: str = TENANT,
    limit: int | None = Option(None, "--limit"),
    offset: int = Option(0, "--offset"),
    json_output: bool = JSON,
) -> None:
    async def _logic(ctx: AppContext):
        items, total = await AsyncListGoalContributions(ctx.stores, ctx.policy)(tenant, goal_id, limit=limit, offset=offset)
        return items, total, ctx.policy.money_scale

    items, total, scale = run_with_context(_logic)
    if json_output:
        print(to_json({"items": items, "total": total}))
        return
    for c in items:
        print(f"Contribution {c.id} {c.contribution_date.isoformat()} {format_major(c.amount, scale)} from={c.account_id}")
    print(f"Total: {total}")


@goal.command("uncontribute")
def goal_uncontribute(contribution_id: str, tenant: str = TENANT) -> None:
    """Delete a contribution; the account debit and goal total are both reversed."""

    async def _logic(ctx: AppContext):
        return await AsyncDeleteGoalContribution(ctx.stores, ctx.clock, ctx.policy)(tenant, contribution_id)

    dto = run_with_context(_logic)
    print(f"Deleted contribution {contribution_id} (transaction {dto.id}, status={dto.status})")
