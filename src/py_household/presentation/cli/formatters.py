"""Human-readable renderers shared by CLI sub-apps. Amounts shown in major units."""

from __future__ import annotations

from py_household.application.dto.models import (
    AccountDTO,
    DivergenceDTO,
    GoalDTO,
    ReconciliationReportDTO,
    TransactionDTO,
)
from py_household.domain.money import format_major


def fmt_account(a: AccountDTO, scale: int) -> str:
    status = f" status={a.balance_status}" if a.balance_status else ""
    deleted = " (deleted)" if a.deleted_at else ""
    return f"Account {a.id} {a.name!r} type={a.type} balance={format_major(a.current_balance, scale)} {a.currency}{status}{deleted}"


def fmt_transaction(t: TransactionDTO, scale: int) -> str:
    parts = [
        f"Tx {t.id or '-'}",
        t.value_date.isoformat(),
        t.kind if not t.role else f"{t.kind}/{t.role}",
        f"{format_major(t.amount, scale)} {t.currency}",
        f"account={t.account_name or t.account_id}",
    ]
    if t.category_id:
        parts.append(f"category={t.category_id}")
    if t.splits:
        parts.append("splits=" + ",".join(f"{s.category_id}:{format_major(s.amount, scale)}" for s in t.splits))
    if t.transfer:
        arrow = "->" if t.transfer.direction == "outgoing" else "<-"
        parts.append(f"{arrow} {t.transfer.counterparty_label or t.transfer.counterparty_id}")
    if t.status:
        parts.append(f"status={t.status}")
    if t.note:
        parts.append(f"note={t.note!r}")
    return " ".join(parts)


def fmt_goal(g: GoalDTO, scale: int) -> str:
    progress = f" {g.progress_percent:.1f}%" if g.progress_percent is not None else ""
    deadline = f" deadline={g.deadline.isoformat()}" if g.deadline else ""
    return (
        f"Goal {g.id} {g.name!r} type={g.goal_type} "
        f"{format_major(g.accumulated_amount, scale)}/{format_major(g.target_amount, scale)}{progress}{deadline}"
    )


def fmt_divergence(d: DivergenceDTO, scale: int) -> str:
    state = f"resolved by {d.resolved_by}" if d.resolved_at else "open"
    return (
        f"Divergence {d.id} {d.subject_kind}={d.subject_id} tenant={d.tenant_id} "
        f"expected={format_major(d.expected, scale)} actual={format_major(d.actual, scale)} "
        f"difference={format_major(d.difference, scale)} [{state}]"
    )


def fmt_report(r: ReconciliationReportDTO, scale: int) -> list[str]:
    lines = [
        f"Checked accounts={r.checked_accounts} goals={r.checked_goals} "
        f"in_flight={len(r.in_flight)} failed_adjustments={r.failed_adjustments}",
        "Consistent" if r.consistent else f"Divergences: {len(r.divergences)}",
    ]
    lines.extend(fmt_divergence(d, scale) for d in r.divergences)
    return lines
