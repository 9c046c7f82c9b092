"""Reconciliation CLI: run checks, drain pending adjustments, review divergences.

``reconcile run`` exits 0 even when divergences are found; it reports and
records them. Corrections only happen through ``reconcile resolve --apply``.
"""
from __future__ import annotations

from typer import Option, Typer

from py_household.application.use_cases_async.adjustments import AsyncProcessPendingAdjustments
from py_household.application.use_cases_async.reconciliation import (
    AsyncListDivergences,
    AsyncReconcileBalances,
    AsyncResolveDivergence,
    ReconciliationScheduler,
)
from py_household.sdk.bootstrap import AppContext
from py_household.sdk.json import to_json

from .formatters import fmt_divergence, fmt_report
from .infra import run_with_context

reconcile = Typer(help="Ledger consistency: reconcile, process pending adjustments, divergences.")


@reconcile.command("run")
def reconcile_run(
    tenant: str | None = Option(None, "--tenant", "-t", help="Limit the check to one tenant."),
    json_output: bool = Option(False, "--json"),
) -> None:
    """Compare stored balances with the journal and record divergences."""

    async def _logic(ctx: AppContext):
        return await AsyncReconcileBalances(ctx.stores, ctx.clock)(tenant), ctx.policy.money_scale

    report, scale = run_with_context(_logic)
    if json_output:
        print(to_json({"consistent": report.consistent, "report": report}))
        return
    for line in fmt_report(report, scale):
        print(line)


@reconcile.command("process-pending")
def reconcile_process_pending(
    batch_size: int | None = Option(None, "--batch-size"),
    json_output: bool = Option(False, "--json"),
) -> None:
    """Apply pending balance and goal adjustments (idempotent)."""

    async def _logic(ctx: AppContext):
        return await AsyncProcessPendingAdjustments(ctx.stores, ctx.clock, ctx.policy)(batch_size)

    report = run_with_context(_logic)
    if json_output:
        print(to_json({"status": report.status, "report": report}))
        return
    print(f"processed={report.processed} applied={report.applied} deferred={report.deferred} failed={report.failed}")


@reconcile.command("schedule")
def reconcile_schedule(
    interval: float | None = Option(None, "--interval", help="Seconds between cycles; defaults to settings."),
    iterations: int | None = Option(None, "--iterations", help="Stop after N cycles (runs forever when omitted)."),
) -> None:
    """Periodically process pending adjustments and reconcile."""

    async def _logic(ctx: AppContext):
        seconds = interval if interval is not None else ctx.settings.reconcile_interval_sec
        scheduler = ReconciliationScheduler(ctx.stores, ctx.clock, ctx.policy)
        return await scheduler.run_periodically(seconds, iterations), ctx.policy.money_scale

    reports, scale = run_with_context(_logic)
    for idx, report in enumerate(reports, start=1):
        print(f"Cycle {idx}:")
        for line in fmt_report(report, scale):
            print(f"  {line}")


@reconcile.command("divergences")
def reconcile_divergences(
    tenant: str | None = Option(None, "--tenant", "-t"),
    show_all: bool = Option(False, "--all", help="Include resolved records."),
    limit: int | None = Option(None, "--limit"),
    json_output: bool = Option(False, "--json"),
) -> None:
    async def _logic(ctx: AppContext):
        items = await AsyncListDivergences(ctx.stores)(unresolved_only=not show_all, tenant_id=tenant, limit=limit)
        return items, ctx.policy.money_scale

    items, scale = run_with_context(_logic)
    if json_output:
        print(to_json(items))
        return
    for d in items:
        print(fmt_divergence(d, scale))
    if not items:
        print("No divergences")


@reconcile.command("resolve")
def reconcile_resolve(
    divergence_id: int,
    actor: str = Option(..., "--actor", help="Operator closing the record."),
    note: str | None = Option(None, "--note"),
    apply_correction: bool = Option(False, "--apply", help="Apply the recorded difference before closing."),
    json_output: bool = Option(False, "--json"),
) -> None:
    """Close a divergence record, optionally applying the audited correction."""

    async def _logic(ctx: AppContext):
        dto = await AsyncResolveDivergence(ctx.stores, ctx.clock)(
            divergence_id, actor=actor, note=note, apply_correction=apply_correction
        )
        return dto, ctx.policy.money_scale

    dto, scale = run_with_context(_logic)
    print(to_json(dto) if json_output else fmt_divergence(dto, scale))
