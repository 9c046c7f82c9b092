from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

__all__ = [
    "AccountDTO",
    "AccountPageDTO",
    "SplitDTO",
    "TransferInfoDTO",
    "TransactionDTO",
    "TransactionFilterDTO",
    "TransactionPageDTO",
    "TransferLinkDTO",
    "HistoryEntryDTO",
    "AccountHistoryDTO",
    "ExportResultDTO",
    "TransferResultDTO",
    "GoalDTO",
    "GoalPageDTO",
    "GoalContributionDTO",
    "OutboxEntryDTO",
    "AdjustmentOutcomeDTO",
    "DispatchReportDTO",
    "DivergenceDTO",
    "ReconciliationReportDTO",
]


@dataclass(slots=True)
class AccountDTO:
    """Account snapshot; balances in minor units (debt accounts negative)."""

    id: str
    tenant_id: str
    name: str
    type: str
    currency: str
    opening_balance: int = 0
    current_balance: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    balance_status: str | None = None  # filled by read use cases only


@dataclass(slots=True)
class AccountPageDTO:
    items: list[AccountDTO]
    total: int


@dataclass(slots=True)
class SplitDTO:
    category_id: str
    amount: int


@dataclass(slots=True)
class TransferInfoDTO:
    """Pairing details of a transfer leg.

    ``transfer_id`` is the TransferLink id for account transfers and the
    GoalContribution id (when already applied) for goal transfers.
    """

    direction: str  # outgoing/incoming
    counterparty_kind: str  # account/goal
    counterparty_id: str
    counterparty_label: str | None = None
    transfer_id: str | None = None
    paired_transaction_id: str | None = None


@dataclass(slots=True)
class TransactionDTO:
    """Journal entry; ``amount`` is always positive, direction lives in kind/role."""

    id: str
    tenant_id: str
    account_id: str
    kind: str
    amount: int
    currency: str
    value_date: date
    note: str | None = None
    category_id: str | None = None
    role: str | None = None
    actor_id: str | None = None
    recurring_parent_id: str | None = None
    goal_id: str | None = None
    is_opening: bool = False
    revision: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    splits: list[SplitDTO] = field(default_factory=list)
    # Read-side enrichment
    status: str | None = None  # applied/pending/failed
    account_name: str | None = None
    transfer: TransferInfoDTO | None = None


@dataclass(slots=True)
class TransactionFilterDTO:
    account_id: str | None = None
    category_id: str | None = None
    kind: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    search: str | None = None
    include_incoming: bool = False
    include_deleted: bool = False
    limit: int | None = None
    offset: int = 0


@dataclass(slots=True)
class TransactionPageDTO:
    items: list[TransactionDTO]
    total: int


@dataclass(slots=True)
class TransferLinkDTO:
    id: str
    tenant_id: str
    outgoing_transaction_id: str
    incoming_transaction_id: str
    created_at: datetime | None = None

    def paired_with(self, transaction_id: str) -> str:
        if transaction_id == self.outgoing_transaction_id:
            return self.incoming_transaction_id
        return self.outgoing_transaction_id


@dataclass(slots=True)
class HistoryEntryDTO:
    transaction: TransactionDTO
    signed_amount: int
    balance_after: int


@dataclass(slots=True)
class AccountHistoryDTO:
    account: AccountDTO
    entries: list[HistoryEntryDTO]
    total: int


@dataclass(slots=True)
class ExportResultDTO:
    filename: str
    content_type: str
    content: str
    rows: int


@dataclass(slots=True)
class TransferResultDTO:
    """Symmetric transfer receipt.

    For goal destinations ``incoming`` is a synthetic, non-persisted view whose
    ``account_id`` is the goal id and whose ``id`` is empty.
    """

    outgoing: TransactionDTO
    incoming: TransactionDTO
    target_kind: str
    status: str
    transfer_link_id: str | None = None
    contribution_id: str | None = None


@dataclass(slots=True)
class GoalDTO:
    id: str
    tenant_id: str
    name: str
    goal_type: str
    target_amount: int
    accumulated_amount: int = 0
    deadline: date | None = None
    note: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    progress_percent: float | None = None
    remaining_amount: int | None = None


@dataclass(slots=True)
class GoalPageDTO:
    items: list[GoalDTO]
    total: int


@dataclass(slots=True)
class GoalContributionDTO:
    id: str
    goal_id: str
    transaction_id: str
    account_id: str
    amount: int
    contribution_date: date
    note: str | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class OutboxEntryDTO:
    """One pending balance/goal effect written together with its journal entry."""

    idempotency_key: str
    tenant_id: str
    transaction_id: str
    target_kind: str  # account/goal
    target_id: str
    delta: int
    intent: str  # apply/reverse
    revision: int
    payload: dict[str, Any] | None = None
    status: str = "pending"
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None
    id: int | None = None


@dataclass(slots=True)
class AdjustmentOutcomeDTO:
    """Result of the store-level adjustment primitive."""

    balance: int
    replayed: bool = False


@dataclass(slots=True)
class DispatchReportDTO:
    processed: int = 0
    applied: int = 0
    deferred: int = 0
    failed: int = 0

    @property
    def status(self) -> str:
        if self.failed:
            return "failed"
        if self.deferred:
            return "pending"
        return "applied"


@dataclass(slots=True)
class DivergenceDTO:
    id: int | None
    subject_kind: str
    subject_id: str
    tenant_id: str
    expected: int
    actual: int
    difference: int
    detected_at: datetime
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_note: str | None = None


@dataclass(slots=True)
class ReconciliationReportDTO:
    checked_accounts: int = 0
    checked_goals: int = 0
    in_flight: list[str] = field(default_factory=list)
    divergences: list[DivergenceDTO] = field(default_factory=list)
    failed_adjustments: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def consistent(self) -> bool:
        return not self.divergences
