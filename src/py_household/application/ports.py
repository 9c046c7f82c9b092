from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from py_household.application.dto.models import (
    AccountDTO,
    AdjustmentOutcomeDTO,
    DivergenceDTO,
    GoalContributionDTO,
    GoalDTO,
    OutboxEntryDTO,
    SplitDTO,
    TransactionDTO,
    TransactionFilterDTO,
    TransferLinkDTO,
)

__all__ = [
    "Clock",
    "AsyncAccountRepository",
    "AsyncDivergenceRepository",
    "AsyncTransactionRepository",
    "AsyncTransferLinkRepository",
    "AsyncOutboxRepository",
    "AsyncGoalRepository",
    "AsyncGoalContributionRepository",
    "AccountStoreUoW",
    "JournalUoW",
    "GoalStoreUoW",
    "LedgerStores",
    "LedgerPolicy",
]


@runtime_checkable
class Clock(Protocol):
    """Clock abstraction to decouple time in tests.

    Implementations return timezone-aware UTC datetimes.
    """

    def now(self) -> datetime: ...


@runtime_checkable
class AsyncAccountRepository(Protocol):
    async def create(self, dto: AccountDTO) -> AccountDTO: ...
    async def get(self, account_id: str, *, tenant_id: str | None = None, include_deleted: bool = False) -> AccountDTO | None: ...
    async def get_many(self, account_ids: Iterable[str]) -> dict[str, AccountDTO]: ...
    async def list(
        self, tenant_id: str, *, account_type: str | None = None, include_deleted: bool = False, limit: int | None = None, offset: int = 0
    ) -> tuple[list[AccountDTO], int]: ...
    async def list_active(self, tenant_id: str | None = None) -> list[AccountDTO]: ...
    async def update_details(self, account_id: str, values: dict[str, Any], at: datetime) -> AccountDTO | None: ...
    async def soft_delete(self, account_id: str, at: datetime) -> bool: ...
    async def discard(self, account_id: str) -> None: ...
    async def adjust_balance(self, account_id: str, delta: int, idempotency_key: str, at: datetime) -> AdjustmentOutcomeDTO: ...


@runtime_checkable
class AsyncDivergenceRepository(Protocol):
    async def add(self, dto: DivergenceDTO) -> DivergenceDTO: ...
    async def get(self, divergence_id: int) -> DivergenceDTO | None: ...
    async def find_open(self, subject_kind: str, subject_id: str) -> DivergenceDTO | None: ...
    async def list(self, *, unresolved_only: bool = True, tenant_id: str | None = None, limit: int | None = None) -> list[DivergenceDTO]: ...
    async def resolve(self, divergence_id: int, *, actor: str, note: str | None, at: datetime) -> DivergenceDTO | None: ...


@runtime_checkable
class AsyncTransactionRepository(Protocol):
    """Journal entries; ``list`` applies TransactionFilterDTO semantics."""

    async def add(self, dto: TransactionDTO) -> TransactionDTO: ...
    async def get(self, transaction_id: str, *, tenant_id: str | None = None, include_deleted: bool = False) -> TransactionDTO | None: ...
    async def get_many(self, transaction_ids: Iterable[str]) -> dict[str, TransactionDTO]: ...
    async def splits_for(self, transaction_ids: Iterable[str]) -> dict[str, list[SplitDTO]]: ...
    async def save(self, dto: TransactionDTO, *, expected_revision: int) -> TransactionDTO: ...
    async def replace_splits(self, transaction_id: str, splits: list[SplitDTO]) -> None: ...
    async def soft_delete(self, transaction_id: str, at: datetime, *, expected_revision: int) -> None: ...
    async def list(self, tenant_id: str, flt: TransactionFilterDTO, *, limit: int) -> tuple[list[TransactionDTO], int]: ...
    async def effect_timeline(self, account_id: str) -> list[tuple[str, int]]: ...
    async def effects_by_account(
        self, account_ids: Iterable[str] | None = None, *, include_opening: bool = True
    ) -> dict[str, int]: ...


@runtime_checkable
class AsyncTransferLinkRepository(Protocol):
    async def add(self, dto: TransferLinkDTO) -> TransferLinkDTO: ...
    async def for_transactions(self, transaction_ids: Iterable[str]) -> dict[str, TransferLinkDTO]: ...
    async def delete_for(self, transaction_id: str) -> int: ...


@runtime_checkable
class AsyncOutboxRepository(Protocol):
    async def add_many(self, entries: list[OutboxEntryDTO]) -> list[OutboxEntryDTO]: ...
    async def list_pending(self, limit: int) -> list[OutboxEntryDTO]: ...
    async def mark_applied(self, entry_id: int, at: datetime) -> None: ...
    async def record_failure(self, entry_id: int, error: str, at: datetime, *, max_attempts: int, permanent: bool = False) -> str: ...
    async def statuses_for_transactions(self, transaction_ids: Iterable[str]) -> dict[str, str]: ...
    async def pending_targets(self, target_kind: str) -> set[str]: ...
    async def count_by_status(self) -> dict[str, int]: ...


@runtime_checkable
class AsyncGoalRepository(Protocol):
    async def create(self, dto: GoalDTO) -> GoalDTO: ...
    async def get(self, goal_id: str, *, tenant_id: str | None = None, include_deleted: bool = False) -> GoalDTO | None: ...
    async def get_many(self, goal_ids: Iterable[str]) -> dict[str, GoalDTO]: ...
    async def list(self, tenant_id: str, *, include_deleted: bool = False, limit: int | None = None, offset: int = 0) -> tuple[list[GoalDTO], int]: ...
    async def list_active(self, tenant_id: str | None = None) -> list[GoalDTO]: ...
    async def update_details(self, goal_id: str, values: dict[str, Any], at: datetime) -> GoalDTO | None: ...
    async def soft_delete(self, goal_id: str, at: datetime) -> bool: ...
    async def apply_effect(
        self, goal_id: str, delta: int, idempotency_key: str, payload: dict[str, Any] | None, at: datetime
    ) -> AdjustmentOutcomeDTO: ...


@runtime_checkable
class AsyncGoalContributionRepository(Protocol):
    async def get(self, contribution_id: str) -> GoalContributionDTO | None: ...
    async def for_transactions(self, transaction_ids: Iterable[str]) -> dict[str, GoalContributionDTO]: ...
    async def list(self, goal_id: str, *, limit: int | None = None, offset: int = 0) -> tuple[list[GoalContributionDTO], int]: ...
    async def sums_by_goal(self, goal_ids: Iterable[str] | None = None) -> dict[str, int]: ...


class _AsyncUoW(Protocol):
    async def __aenter__(self) -> Any: ...
    async def __aexit__(self, exc_type, exc: BaseException | None, tb: Any) -> None: ...
    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...


@runtime_checkable
class AccountStoreUoW(_AsyncUoW, Protocol):
    @property
    def accounts(self) -> AsyncAccountRepository: ...
    @property
    def divergences(self) -> AsyncDivergenceRepository: ...


@runtime_checkable
class JournalUoW(_AsyncUoW, Protocol):
    @property
    def transactions(self) -> AsyncTransactionRepository: ...
    @property
    def transfers(self) -> AsyncTransferLinkRepository: ...
    @property
    def outbox(self) -> AsyncOutboxRepository: ...


@runtime_checkable
class GoalStoreUoW(_AsyncUoW, Protocol):
    @property
    def goals(self) -> AsyncGoalRepository: ...
    @property
    def contributions(self) -> AsyncGoalContributionRepository: ...


@dataclass(slots=True)
class LedgerStores:
    """Factories producing a fresh single-use Unit of Work per store.

    Every use case opens its own UoW for each step; a UoW never spans stores.
    """

    accounts: Callable[[], AccountStoreUoW]
    journal: Callable[[], JournalUoW]
    goals: Callable[[], GoalStoreUoW]


@dataclass(slots=True)
class LedgerPolicy:
    """Posting limits and tuning derived from settings (see ``LedgerPolicy.from_settings``)."""

    max_transaction_amount: int = 99_999_999_999_999
    low_balance_threshold: int = 100_000
    adjustment_max_attempts: int = 5
    adjustment_batch_size: int = 100
    page_size: int = 50
    default_currency: str = "IDR"
    money_scale: int = 2

    @classmethod
    def from_settings(cls, settings: Any) -> LedgerPolicy:
        return cls(
            max_transaction_amount=int(settings.max_transaction_amount),
            low_balance_threshold=int(settings.low_balance_threshold),
            adjustment_max_attempts=int(settings.adjustment_max_attempts),
            adjustment_batch_size=int(settings.adjustment_batch_size),
            page_size=int(settings.page_size),
            default_currency=str(settings.default_currency),
            money_scale=int(settings.money_scale),
        )
