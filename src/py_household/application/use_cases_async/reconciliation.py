"""Ledger reconciliation: detect, record and (on operator request) correct divergences.

The reconciler recomputes every account balance from the journal and every
goal total from its contributions, compares them with the stored aggregates
and records a ``LedgerDivergenceRecord`` for each mismatch. It never corrects
anything on its own; ``AsyncResolveDivergence`` is the explicit, audited
correction path.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from py_household.application.dto.models import DivergenceDTO, ReconciliationReportDTO
from py_household.application.ports import Clock, LedgerPolicy, LedgerStores
from py_household.application.use_cases_async.adjustments import (
    AsyncAdjustBalance,
    AsyncProcessPendingAdjustments,
    apply_goal_effect,
)
from py_household.domain.errors import DomainRuleError, LedgerDivergence, NotFoundError, ValidationError
from py_household.infrastructure.logging.config import bind_operation, clear_operation, get_logger

__all__ = [
    "AsyncReconcileBalances",
    "AsyncListDivergences",
    "AsyncResolveDivergence",
    "ReconciliationScheduler",
]


@dataclass(slots=True)
class AsyncReconcileBalances:
    """Compare stored aggregates with the values recomputed from their source of truth.

    Steps:
      1. Journal snapshot: Σ signed effects per account over non-deleted
         entries, targets with pending outbox rows, outbox status counts.
      2. Accounts with pending rows are reported as in flight and skipped;
         every other active account must satisfy
         ``current_balance == opening_balance + Σ signed effects of non-opening
         entries``; an opening balance whose seed never reached the journal or
         the balance therefore shows up as a divergence.
      3. Goals without pending rows must satisfy
         ``accumulated_amount == Σ contributions``.
      4. Each mismatch is re-checked once (a write may have landed between
         the snapshots); a confirmed mismatch is logged as ``ledger_divergence``
         and recorded unless an identical open record exists.
    """

    stores: LedgerStores
    clock: Clock

    async def __call__(self, tenant_id: str | None = None) -> ReconciliationReportDTO:
        report = ReconciliationReportDTO(started_at=self.clock.now())
        async with self.stores.journal() as uow:
            status_counts = await uow.outbox.count_by_status()
        report.failed_adjustments = status_counts.get("failed", 0)

        findings = await self._check_accounts(tenant_id, report)
        findings += await self._check_goals(tenant_id, report)

        log = get_logger(__name__)
        async with self.stores.accounts() as uow:
            for finding, owner in findings:
                log.warning(
                    "ledger_divergence",
                    subject_kind=finding.subject_kind,
                    subject_id=finding.subject_id,
                    tenant_id=owner,
                    expected=finding.expected,
                    actual=finding.actual,
                    difference=finding.difference,
                )
                existing = await uow.divergences.find_open(finding.subject_kind, finding.subject_id)
                if existing and existing.expected == finding.expected and existing.actual == finding.actual:
                    report.divergences.append(existing)
                    continue
                record = await uow.divergences.add(
                    DivergenceDTO(
                        id=None,
                        subject_kind=finding.subject_kind,
                        subject_id=finding.subject_id,
                        tenant_id=owner,
                        expected=finding.expected,
                        actual=finding.actual,
                        difference=finding.difference,
                        detected_at=self.clock.now(),
                    )
                )
                report.divergences.append(record)

        report.finished_at = self.clock.now()
        log.info(
            "reconciliation_finished",
            checked_accounts=report.checked_accounts,
            checked_goals=report.checked_goals,
            in_flight=len(report.in_flight),
            divergences=len(report.divergences),
            failed_adjustments=report.failed_adjustments,
        )
        return report

    async def _account_mismatches(self, tenant_id: str | None, ids: set[str] | None = None) -> tuple[list[tuple[LedgerDivergence, str]], set[str], int]:
        async with self.stores.journal() as uow:
            in_flight = await uow.outbox.pending_targets("account")
            effects = await uow.transactions.effects_by_account(ids, include_opening=False)
        async with self.stores.accounts() as uow:
            accounts = await uow.accounts.list_active(tenant_id)
        out: list[tuple[LedgerDivergence, str]] = []
        checked = 0
        for acc in accounts:
            if ids is not None and acc.id not in ids:
                continue
            if acc.id in in_flight:
                continue
            checked += 1
            want = acc.opening_balance + effects.get(acc.id, 0)
            if want != acc.current_balance:
                out.append((LedgerDivergence("account", acc.id, want, acc.current_balance), acc.tenant_id))
        return out, {a.id for a in accounts if a.id in in_flight}, checked

    async def _check_accounts(self, tenant_id: str | None, report: ReconciliationReportDTO) -> list[tuple[LedgerDivergence, str]]:
        suspects, in_flight, checked = await self._account_mismatches(tenant_id)
        report.checked_accounts = checked
        report.in_flight.extend(sorted(in_flight))
        if not suspects:
            return []
        confirmed, _, _ = await self._account_mismatches(tenant_id, {d.subject_id for d, _ in suspects})
        return confirmed

    async def _goal_mismatches(self, tenant_id: str | None, ids: set[str] | None = None) -> tuple[list[tuple[LedgerDivergence, str]], set[str], int]:
        async with self.stores.journal() as uow:
            in_flight = await uow.outbox.pending_targets("goal")
        async with self.stores.goals() as uow:
            goals = await uow.goals.list_active(tenant_id)
            sums = await uow.contributions.sums_by_goal(ids)
        out: list[tuple[LedgerDivergence, str]] = []
        checked = 0
        for goal in goals:
            if ids is not None and goal.id not in ids:
                continue
            if goal.id in in_flight:
                continue
            checked += 1
            want = sums.get(goal.id, 0)
            if want != goal.accumulated_amount:
                out.append((LedgerDivergence("goal", goal.id, want, goal.accumulated_amount), goal.tenant_id))
        return out, {g.id for g in goals if g.id in in_flight}, checked

    async def _check_goals(self, tenant_id: str | None, report: ReconciliationReportDTO) -> list[tuple[LedgerDivergence, str]]:
        suspects, in_flight, checked = await self._goal_mismatches(tenant_id)
        report.checked_goals = checked
        report.in_flight.extend(sorted(in_flight))
        if not suspects:
            return []
        confirmed, _, _ = await self._goal_mismatches(tenant_id, {d.subject_id for d, _ in suspects})
        return confirmed


@dataclass(slots=True)
class AsyncListDivergences:
    stores: LedgerStores

    async def __call__(
        self, *, unresolved_only: bool = True, tenant_id: str | None = None, limit: int | None = None
    ) -> list[DivergenceDTO]:
        async with self.stores.accounts() as uow:
            return await uow.divergences.list(unresolved_only=unresolved_only, tenant_id=tenant_id, limit=limit)


@dataclass(slots=True)
class AsyncResolveDivergence:
    """Close a divergence record, optionally applying the recorded correction.

    With ``apply_correction`` the recorded ``difference`` is applied through the
    idempotent store primitive using the key ``divergence:{id}:correct`` (goal
    subjects get the ``:goal`` suffix), so resolving twice never double-corrects.
    """

    stores: LedgerStores
    clock: Clock

    async def __call__(
        self, divergence_id: int, *, actor: str, note: str | None = None, apply_correction: bool = False
    ) -> DivergenceDTO:
        if not actor or not actor.strip():
            raise ValidationError("actor is required")
        async with self.stores.accounts() as uow:
            record = await uow.divergences.get(divergence_id)
        if not record:
            raise NotFoundError(f"Divergence not found: {divergence_id}")
        if record.resolved_at is not None:
            raise DomainRuleError(f"Divergence {divergence_id} is already resolved")

        log = get_logger(__name__).bind(divergence_id=divergence_id, subject_kind=record.subject_kind, subject_id=record.subject_id)
        if apply_correction and record.difference:
            key = f"divergence:{divergence_id}:correct"
            if record.subject_kind == "goal":
                await apply_goal_effect(
                    self.stores, record.subject_id, record.difference, f"{key}:goal", None, self.clock.now()
                )
            else:
                await AsyncAdjustBalance(self.stores, self.clock)(record.subject_id, record.difference, key)
            log.warning("divergence_corrected", difference=record.difference, actor=actor)

        async with self.stores.accounts() as uow:
            resolved = await uow.divergences.resolve(divergence_id, actor=actor.strip(), note=note, at=self.clock.now())
        if resolved is None:
            raise NotFoundError(f"Divergence not found: {divergence_id}")
        log.info("divergence_resolved", actor=actor, corrected=apply_correction)
        return resolved


@dataclass(slots=True)
class ReconciliationScheduler:
    """Periodic driver: process pending adjustments, then reconcile."""

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def run_once(self, tenant_id: str | None = None) -> ReconciliationReportDTO:
        bind_operation("reconcile_cycle", tenant_id=tenant_id)
        try:
            await AsyncProcessPendingAdjustments(self.stores, self.clock, self.policy)()
            return await AsyncReconcileBalances(self.stores, self.clock)(tenant_id)
        finally:
            clear_operation()

    async def run_periodically(self, interval_seconds: float, iterations: int | None = None) -> list[ReconciliationReportDTO]:
        """Run ``iterations`` cycles (forever when None), sleeping ``interval_seconds`` between them.

        Returns the reports of the cycles run (only the latest is kept when
        running forever).
        """
        if interval_seconds < 0:
            raise ValidationError("interval_seconds must not be negative")
        reports: list[ReconciliationReportDTO] = []
        done = 0
        while iterations is None or done < iterations:
            report = await self.run_once()
            if iterations is None:
                reports[:] = [report]
            else:
                reports.append(report)
            done += 1
            if iterations is None or done < iterations:
                await asyncio.sleep(interval_seconds)
        return reports
