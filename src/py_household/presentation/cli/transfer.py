"""Transfer CLI commands: move money to another account or into a savings goal."""
from __future__ import annotations

from datetime import date

from typer import Argument, Option, Typer

from py_household.application.use_cases_async.transfers import AsyncCreateTransfer, AsyncResolveTransferTarget
from py_household.domain.errors import ValidationError
from py_household.domain.money import to_minor
from py_household.domain.transfers import GoalTarget
from py_household.sdk.bootstrap import AppContext
from py_household.sdk.json import to_json

from .formatters import fmt_transaction
from .infra import run_with_context

transfer = Typer(help="Transfers between accounts and into goals.")

TENANT = Option(..., "--tenant", "-t", envvar="HOUSEHOLD_TENANT", help="Tenant (user) id.")


@transfer.command("create")
def transfer_create(
    source_account_id: str,
    destination_id: str = Argument(..., help="Destination account id or goal id."),
    amount: str = Argument(..., help="Positive amount in major units."),
    tenant: str = TENANT,
    value_date: str | None = Option(None, "--date", help="Value date (YYYY-MM-DD); defaults to today."),
    note: str | None = Option(None, "--note"),
    json_output: bool = Option(False, "--json"),
) -> None:
    """Create a transfer; the destination kind is resolved from the id."""
    try:
        when = date.fromisoformat(value_date) if value_date else None
    except ValueError as exc:
        raise ValidationError(f"date must be YYYY-MM-DD: {value_date!r}") from exc

    async def _logic(ctx: AppContext):
        scale = ctx.policy.money_scale
        result = await AsyncCreateTransfer(ctx.stores, ctx.clock, ctx.policy)(
            tenant,
            source_account_id,
            destination_id,
            to_minor(amount, scale),
            when or ctx.clock.now().date(),
            note=note,
        )
        return result, scale

    result, scale = run_with_context(_logic)
    if json_output:
        print(to_json(result))
        return
    print(f"Transfer to {result.target_kind} status={result.status}")
    print(fmt_transaction(result.outgoing, scale))
    print(fmt_transaction(result.incoming, scale))


@transfer.command("resolve")
def transfer_resolve(destination_id: str, tenant: str = TENANT) -> None:
    """Show whether a destination id is an account or a goal."""

    async def _logic(ctx: AppContext):
        return await AsyncResolveTransferTarget(ctx.stores)(tenant, destination_id)

    target = run_with_context(_logic)
    kind = "goal" if isinstance(target, GoalTarget) else "account"
    print(f"{kind} {destination_id}")
