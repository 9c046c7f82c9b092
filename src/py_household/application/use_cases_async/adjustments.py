"""Balance adjustment primitive, outbox dispatch and the pending-adjustment worker.

Every journal write commits its balance/goal effects as ``adjustment_outbox``
rows in the same journal transaction. After that commit the effects are
dispatched to the account and goal stores through idempotent store
primitives. A failed dispatch leaves the row ``pending`` for
``AsyncProcessPendingAdjustments`` to retry; replaying a row that was
already applied is a no-op thanks to its idempotency key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from py_household.application.dto.models import (
    AdjustmentOutcomeDTO,
    DispatchReportDTO,
    OutboxEntryDTO,
    TransactionDTO,
)
from py_household.application.ports import Clock, LedgerPolicy, LedgerStores
from py_household.domain.errors import (
    ConcurrentWriteError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from py_household.domain.transactions import AdjustmentIntent, adjustment_key
from py_household.infrastructure.logging.config import get_logger

__all__ = [
    "build_outbox_entry",
    "apply_goal_effect",
    "AsyncAdjustBalance",
    "AdjustmentDispatcher",
    "AsyncProcessPendingAdjustments",
]


def build_outbox_entry(
    txn: TransactionDTO,
    *,
    delta: int,
    intent: AdjustmentIntent,
    revision: int,
    at: datetime,
    target_kind: str = "account",
    target_id: str | None = None,
    payload: dict[str, Any] | None = None,
) -> OutboxEntryDTO:
    """Describe one effect of ``txn`` on an account (default) or a goal."""
    return OutboxEntryDTO(
        idempotency_key=adjustment_key(txn.id, revision, intent, target_kind),
        tenant_id=txn.tenant_id,
        transaction_id=txn.id,
        target_kind=target_kind,
        target_id=target_id or txn.account_id,
        delta=delta,
        intent=str(intent),
        revision=revision,
        payload=payload,
        created_at=at,
    )


async def _adjust_account(stores: LedgerStores, account_id: str, delta: int, key: str, at: datetime) -> AdjustmentOutcomeDTO:
    try:
        async with stores.accounts() as uow:
            return await uow.accounts.adjust_balance(account_id, delta, key, at)
    except ConcurrentWriteError:
        # The concurrent writer committed the key; the retry takes the replay path.
        async with stores.accounts() as uow:
            return await uow.accounts.adjust_balance(account_id, delta, key, at)


async def apply_goal_effect(
    stores: LedgerStores, goal_id: str, delta: int, key: str, payload: dict[str, Any] | None, at: datetime
) -> AdjustmentOutcomeDTO:
    try:
        async with stores.goals() as uow:
            return await uow.goals.apply_effect(goal_id, delta, key, payload, at)
    except ConcurrentWriteError:
        async with stores.goals() as uow:
            return await uow.goals.apply_effect(goal_id, delta, key, payload, at)


@dataclass(slots=True)
class AsyncAdjustBalance:
    """Apply a signed delta to an account balance exactly once per idempotency key.

    Contract:
      AsyncAdjustBalance(stores, clock)(account_id, delta, idempotency_key) -> int (new balance)

    Steps:
      1. Validate inputs (ValidationError on empty id/key or non-integer delta).
      2. Run the account-store primitive in its own Unit of Work: replay check,
         single ``current_balance = current_balance + :delta`` UPDATE, key insert.
      3. On a concurrent duplicate key, retry once in a fresh Unit of Work; the
         retry returns the balance recorded by the winner.

    Error classification:
      - ValidationError: malformed input.
      - NotFoundError: account absent or soft-deleted.
      - ConflictError: key replayed with a different account or delta.
    """

    stores: LedgerStores
    clock: Clock

    async def __call__(self, account_id: str, delta: int, idempotency_key: str) -> int:
        if not account_id:
            raise ValidationError("account_id is required")
        if not idempotency_key or not idempotency_key.strip():
            raise ValidationError("idempotency_key is required")
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("delta must be an integer number of minor units")
        outcome = await _adjust_account(self.stores, account_id, delta, idempotency_key, self.clock.now())
        get_logger(__name__).info(
            "balance_adjusted",
            account_id=account_id,
            delta=delta,
            idempotency_key=idempotency_key,
            balance=outcome.balance,
            replayed=outcome.replayed,
        )
        return outcome.balance


@dataclass(slots=True)
class AdjustmentDispatcher:
    """Deliver committed outbox rows to their target store.

    Per row:
      - success (fresh or replayed) -> row marked ``applied`` in a separate journal UoW
      - NotFoundError / ConflictError -> row marked ``failed`` at once (not retryable)
      - any other error -> attempt counted, row stays ``pending`` until
        ``adjustment_max_attempts`` is reached, then ``failed``

    Dispatch never raises for a per-row failure: the journal entry is already
    committed, so the operation reports ``pending``/``failed`` instead.
    """

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def dispatch(self, entries: list[OutboxEntryDTO]) -> DispatchReportDTO:
        report = DispatchReportDTO()
        for entry in entries:
            report.processed += 1
            status = await self._dispatch_one(entry)
            if status == "applied":
                report.applied += 1
            elif status == "failed":
                report.failed += 1
            else:
                report.deferred += 1
        return report

    async def _apply(self, entry: OutboxEntryDTO) -> AdjustmentOutcomeDTO:
        at = self.clock.now()
        if entry.target_kind == "goal":
            return await apply_goal_effect(self.stores, entry.target_id, entry.delta, entry.idempotency_key, entry.payload, at)
        return await _adjust_account(self.stores, entry.target_id, entry.delta, entry.idempotency_key, at)

    async def _dispatch_one(self, entry: OutboxEntryDTO) -> str:
        entry_id = entry.id
        if entry_id is None:
            raise ValueError(f"Outbox entry {entry.idempotency_key!r} must be persisted before dispatch")
        log = get_logger(__name__).bind(
            outbox_id=entry.id,
            idempotency_key=entry.idempotency_key,
            transaction_id=entry.transaction_id,
            target_kind=entry.target_kind,
            target_id=entry.target_id,
            delta=entry.delta,
            tenant_id=entry.tenant_id,
        )
        try:
            outcome = await self._apply(entry)
        except (NotFoundError, ConflictError) as exc:
            log.error("adjustment_failed", error=str(exc), error_type=type(exc).__name__, attempts=entry.attempts + 1)
            return await self._record_failure(entry_id, exc, permanent=True)
        except Exception as exc:  # noqa: BLE001 - the journal entry is committed; the row stays pending
            log.warning("adjustment_deferred", error=str(exc), error_type=type(exc).__name__, attempts=entry.attempts + 1)
            return await self._record_failure(entry_id, exc, permanent=False)

        try:
            async with self.stores.journal() as uow:
                await uow.outbox.mark_applied(entry_id, self.clock.now())
        except Exception:  # noqa: BLE001 - effect is applied; the worker replays the row later
            log.exception("adjustment_mark_applied_failed")
            return "pending"
        log.info("adjustment_applied", balance=outcome.balance, replayed=outcome.replayed)
        return "applied"

    async def _record_failure(self, entry_id: int, exc: BaseException, *, permanent: bool) -> str:
        try:
            async with self.stores.journal() as uow:
                return await uow.outbox.record_failure(
                    entry_id,
                    f"{type(exc).__name__}: {exc}",
                    self.clock.now(),
                    max_attempts=self.policy.adjustment_max_attempts,
                    permanent=permanent,
                )
        except Exception:  # noqa: BLE001 - bookkeeping failure leaves the row pending
            get_logger(__name__).exception("adjustment_failure_not_recorded", outbox_id=entry_id)
            return "pending"


@dataclass(slots=True)
class AsyncProcessPendingAdjustments:
    """Idempotent worker: dispatch up to ``batch_size`` pending outbox rows (oldest first).

    Safe to run concurrently with inline dispatch and with other workers; a
    row delivered twice is replayed by its idempotency key.
    """

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(self, batch_size: int | None = None) -> DispatchReportDTO:
        limit = batch_size if batch_size is not None else self.policy.adjustment_batch_size
        if limit <= 0:
            raise ValidationError("batch_size must be positive")
        async with self.stores.journal() as uow:
            entries = await uow.outbox.list_pending(limit)
        report = await AdjustmentDispatcher(self.stores, self.clock, self.policy).dispatch(entries)
        if report.processed:
            get_logger(__name__).info(
                "pending_adjustments_processed",
                processed=report.processed,
                applied=report.applied,
                deferred=report.deferred,
                failed=report.failed,
            )
        return report
