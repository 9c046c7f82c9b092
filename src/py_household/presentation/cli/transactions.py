"""Journal CLI commands: add, update, delete, get, list, history, export.

``--split CATEGORY=AMOUNT`` may be repeated; split amounts must add up to the
transaction amount. Dates are ISO ``YYYY-MM-DD``.
"""
from __future__ import annotations

from datetime import date
from pathlib import Path

from typer import Argument, Option, Typer

from py_household.application.dto.models import SplitDTO, TransactionFilterDTO
from py_household.application.use_cases_async.export import AsyncExportTransactions
from py_household.application.use_cases_async.transactions import (
    AsyncCreateTransaction,
    AsyncDeleteTransaction,
    AsyncGetAccountHistory,
    AsyncGetTransaction,
    AsyncListTransactions,
    AsyncUpdateTransaction,
)
from py_household.domain.errors import ValidationError
from py_household.domain.money import format_major, to_minor
from py_household.sdk.bootstrap import AppContext
from py_household.sdk.json import to_json

from .formatters import fmt_transaction
from .infra import run_with_context

tx = Typer(help="Journal entries: add, update, delete, get, list, history, export.")

TENANT = Option(..., "--tenant", "-t", envvar="HOUSEHOLD_TENANT", help="Tenant (user) id.")
JSON = Option(False, "--json", help="Output JSON instead of human-readable lines.")


def _parse_date(value: str | None, field: str) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be YYYY-MM-DD: {value!r}") from exc


def _parse_splits(raw: list[str] | None, scale: int) -> list[SplitDTO] | None:
    if not raw:
        return None
    splits: list[SplitDTO] = []
    for item in raw:
        category, sep, amount = item.partition("=")
        if not sep or not category.strip():
            raise ValidationError(f"Split must be CATEGORY=AMOUNT: {item!r}")
        splits.append(SplitDTO(category_id=category.strip(), amount=to_minor(amount, scale)))
    return splits


def _filters(
    account_id: str | None,
    category_id: str | None,
    kind: str | None,
    date_from: str | None,
    date_to: str | None,
    search: str | None,
    limit: int | None = None,
    offset: int = 0,
) -> TransactionFilterDTO:
    return TransactionFilterDTO(
        account_id=account_id,
        category_id=category_id,
        kind=kind,
        date_from=_parse_date(date_from, "date_from"),
        date_to=_parse_date(date_to, "date_to"),
        search=search,
        limit=limit,
        offset=offset,
    )


@tx.command("add")
def tx_add(
    account_id: str,
    kind: str = Argument(..., help="income or expense."),
    amount: str = Argument(..., help="Positive amount in major units."),
    tenant: str = TENANT,
    value_date: str | None = Option(None, "--date", help="Value date; defaults to today (UTC)."),
    category: str | None = Option(None, "--category"),
    split: list[str] | None = Option(None, "--split", help="CATEGORY=AMOUNT, repeatable."),
    note: str | None = Option(None, "--note"),
    json_output: bool = JSON,
) -> None:
    """Record an income or expense and apply its balance effect."""

    async def _logic(ctx: AppContext):
        scale = ctx.policy.money_scale
        when = _parse_date(value_date, "date") or ctx.clock.now().date()
        dto = await AsyncCreateTransaction(ctx.stores, ctx.clock, ctx.policy)(
            tenant,
            account_id,
            kind,
            to_minor(amount, scale),
            when,
            category_id=category,
            splits=_parse_splits(split, scale),
            note=note,
        )
        return dto, scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else fmt_transaction(dto, scale))


@tx.command("update")
def tx_update(
    transaction_id: str,
    tenant: str = TENANT,
    amount: str | None = Option(None, "--amount"),
    kind: str | None = Option(None, "--kind"),
    account_id: str | None = Option(None, "--account"),
    category: str | None = Option(None, "--category"),
    split: list[str] | None = Option(None, "--split"),
    value_date: str | None = Option(None, "--date"),
    note: str | None = Option(None, "--note"),
    json_output: bool = JSON,
) -> None:
    """Edit an entry; the old effect is reversed and the new one applied."""

    async def _logic(ctx: AppContext):
        scale = ctx.policy.money_scale
        dto = await AsyncUpdateTransaction(ctx.stores, ctx.clock, ctx.policy)(
            tenant,
            transaction_id,
            amount=to_minor(amount, scale) if amount is not None else None,
            kind=kind,
            account_id=account_id,
            category_id=category,
            splits=_parse_splits(split, scale),
            value_date=_parse_date(value_date, "date"),
            note=note,
        )
        return dto, scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else fmt_transaction(dto, scale))


@tx.command("delete")
def tx_delete(transaction_id: str, tenant: str = TENANT, json_output: bool = JSON) -> None:
    async def _logic(ctx: AppContext):
        dto = await AsyncDeleteTransaction(ctx.stores, ctx.clock, ctx.policy)(tenant, transaction_id)
        return dto, ctx.policy.money_scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else f"Deleted {fmt_transaction(dto, scale)}")


@tx.command("get")
def tx_get(transaction_id: str, tenant: str = TENANT, json_output: bool = JSON) -> None:
    async def _logic(ctx: AppContext):
        return await AsyncGetTransaction(ctx.stores)(tenant, transaction_id), ctx.policy.money_scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else fmt_transaction(dto, scale))


@tx.command("list")
def tx_list(
    tenant: str = TENANT,
    account_id: str | None = Option(None, "--account"),
    category: str | None = Option(None, "--category"),
    kind: str | None = Option(None, "--kind"),
    date_from: str | None = Option(None, "--from"),
    date_to: str | None = Option(None, "--to"),
    search: str | None = Option(None, "--search"),
    limit: int | None = Option(None, "--limit"),
    offset: int = Option(0, "--offset"),
    json_output: bool = JSON,
) -> None:
    """List journal entries, newest first; incoming transfer legs are hidden."""
    flt = _filters(account_id, category, kind, date_from, date_to, search, limit, offset)

    async def _logic(ctx: AppContext):
        return await AsyncListTransactions(ctx.stores, ctx.policy)(tenant, flt), ctx.policy.money_scale

    page, scale = run_with_context(_logic)
    if json_output:
        print(to_json(page))
        return
    for t in page.items:
        print(fmt_transaction(t, scale))
    print(f"Total: {page.total}")


@tx.command("history")
def tx_history(
    account_id: str,
    tenant: str = TENANT,
    date_from: str | None = Option(None, "--from"),
    date_to: str | None = Option(None, "--to"),
    limit: int | None = Option(None, "--limit"),
    offset: int = Option(0, "--offset"),
    json_output: bool = JSON,
) -> None:
    """Account statement with the running balance after each entry."""
    flt = _filters(None, None, None, date_from, date_to, None, limit, offset)

    async def _logic(ctx: AppContext):
        history = await AsyncGetAccountHistory(ctx.stores, ctx.policy)(tenant, account_id, flt)
        return history, ctx.policy.money_scale

    history, scale = run_with_context(_logic)
    if json_output:
        print(to_json(history))
        return
    print(f"Account {history.account.name!r} balance={format_major(history.account.current_balance, scale)}")
    for entry in history.entries:
        print(
            f"{fmt_transaction(entry.transaction, scale)} "
            f"effect={format_major(entry.signed_amount, scale)} balance={format_major(entry.balance_after, scale)}"
        )


@tx.command("export")
def tx_export(
    tenant: str = TENANT,
    fmt: str = Option("csv", "--format", help="csv or json."),
    account_id: str | None = Option(None, "--account"),
    category: str | None = Option(None, "--category"),
    kind: str | None = Option(None, "--kind"),
    date_from: str | None = Option(None, "--from"),
    date_to: str | None = Option(None, "--to"),
    output_dir: Path | None = Option(None, "--output-dir", help="Write the file here instead of printing it."),
) -> None:
    flt = _filters(account_id, category, kind, date_from, date_to, None)

    async def _logic(ctx: AppContext):
        return await AsyncExportTransactions(ctx.stores, ctx.clock, ctx.policy)(tenant, flt, fmt)

    result = run_with_context(_logic)
    if output_dir is None:
        print(result.content, end="")
        return
    target = output_dir / result.filename
    target.write_text(result.content, encoding="utf-8")
    print(f"Exported {result.rows} rows to {target}")
