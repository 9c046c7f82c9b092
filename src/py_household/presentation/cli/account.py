"""Account CLI commands: add, list, get, update, delete.

Thin controllers over the async account use cases. Human output by default,
JSON with ``--json``. Amounts are entered in major units and converted to
minor units here; error classification happens in ``main.cli``.
"""
from __future__ import annotations

from typer import Argument, Option, Typer

from py_household.application.use_cases_async.accounts import (
    AsyncCreateAccount,
    AsyncDeleteAccount,
    AsyncGetAccount,
    AsyncListAccounts,
    AsyncUpdateAccount,
)
from py_household.domain.money import to_minor
from py_household.sdk.bootstrap import AppContext
from py_household.sdk.json import to_json

from .formatters import fmt_account
from .infra import run_with_context

account = Typer(help="Account management: add, list, get, update, delete.")

TENANT = Option(..., "--tenant", "-t", envvar="HOUSEHOLD_TENANT", help="Tenant (user) id.")
JSON = Option(False, "--json", help="Output JSON instead of human-readable lines.")


@account.command("add")
def account_add(
    name: str,
    account_type: str = Argument(..., help="cash, bank, e-wallet, credit-card, loan or generic-asset."),
    tenant: str = TENANT,
    currency: str | None = Option(None, "--currency", help="ISO code; defaults to the configured currency."),
    opening: str = Option("0", "--opening", help="Opening balance magnitude in major units."),
    json_output: bool = JSON,
) -> None:
    """Create an account with an optional opening balance.

    For debt accounts (credit-card, loan) ``--opening`` is the amount owed.
    """

    async def _logic(ctx: AppContext):
        opening_minor = to_minor(opening, ctx.policy.money_scale)
        dto = await AsyncCreateAccount(ctx.stores, ctx.clock, ctx.policy)(tenant, name, account_type, currency, opening_minor)
        return dto, ctx.policy.money_scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else fmt_account(dto, scale))


@account.command("list")
def account_list(
    tenant: str = TENANT,
    account_type: str | None = Option(None, "--type", help="Filter by account type."),
    include_deleted: bool = Option(False, "--include-deleted"),
    limit: int | None = Option(None, "--limit"),
    offset: int = Option(0, "--offset"),
    json_output: bool = JSON,
) -> None:
    async def _logic(ctx: AppContext):
        page = await AsyncListAccounts(ctx.stores, ctx.policy)(
            tenant, account_type, include_deleted=include_deleted, limit=limit, offset=offset
        )
        return page, ctx.policy.money_scale

    page, scale = run_with_context(_logic)
    if json_output:
        print(to_json(page))
        return
    for a in page.items:
        print(fmt_account(a, scale))
    print(f"Total: {page.total}")


@account.command("get")
def account_get(account_id: str, tenant: str = TENANT, json_output: bool = JSON) -> None:
    async def _logic(ctx: AppContext):
        return await AsyncGetAccount(ctx.stores, ctx.policy)(tenant, account_id), ctx.policy.money_scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else fmt_account(dto, scale))


@account.command("update")
def account_update(
    account_id: str,
    tenant: str = TENANT,
    name: str | None = Option(None, "--name"),
    currency: str | None = Option(None, "--currency"),
    json_output: bool = JSON,
) -> None:
    """Rename an account or change its currency. Balances are never edited here."""

    async def _logic(ctx: AppContext):
        dto = await AsyncUpdateAccount(ctx.stores, ctx.clock, ctx.policy)(tenant, account_id, name=name, currency=currency)
        return dto, ctx.policy.money_scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else fmt_account(dto, scale))


@account.command("delete")
def account_delete(account_id: str, tenant: str = TENANT) -> None:
    async def _logic(ctx: AppContext):
        await AsyncDeleteAccount(ctx.stores, ctx.clock)(tenant, account_id)

    run_with_context(_logic)
    print(f"Deleted account {account_id}")
