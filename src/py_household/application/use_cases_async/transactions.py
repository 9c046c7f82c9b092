from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from uuid import uuid4

from py_household.application.dto.models import (
    AccountDTO,
    AccountHistoryDTO,
    HistoryEntryDTO,
    OutboxEntryDTO,
    SplitDTO,
    TransactionDTO,
    TransactionFilterDTO,
    TransactionPageDTO,
)
from py_household.application.ports import Clock, LedgerPolicy, LedgerStores
from py_household.application.use_cases_async.adjustments import AdjustmentDispatcher, build_outbox_entry
from py_household.application.use_cases_async.enrichment import enrich_transactions, with_balance_status
from py_household.domain.accounts import is_debt
from py_household.domain.errors import DomainRuleError, NotFoundError, ValidationError
from py_household.domain.money import ensure_amount
from py_household.domain.transactions import (
    AdjustmentIntent,
    Split,
    TransactionKind,
    ensure_kind_allowed,
    ensure_sufficient_funds,
    parse_kind,
    signed_effect,
    validate_splits,
)
from py_household.infrastructure.logging.config import get_logger

__all__ = [
    "AsyncCreateTransaction",
    "AsyncUpdateTransaction",
    "AsyncDeleteTransaction",
    "AsyncGetTransaction",
    "AsyncListTransactions",
    "AsyncGetAccountHistory",
    "normalize_filter",
]


def _to_splits(splits: list[SplitDTO] | None) -> list[Split]:
    return [Split(category_id=s.category_id, amount=s.amount) for s in splits or []]


def _to_split_dtos(splits: list[Split]) -> list[SplitDTO]:
    return [SplitDTO(category_id=s.category_id, amount=s.amount) for s in splits]


def _effect(txn: TransactionDTO) -> int:
    return signed_effect(txn.kind, txn.amount, txn.role)


async def _load_account(stores: LedgerStores, tenant_id: str, account_id: str) -> AccountDTO:
    async with stores.accounts() as uow:
        account = await uow.accounts.get(account_id, tenant_id=tenant_id)
    if not account:
        raise NotFoundError(f"Account not found: {account_id}")
    return account


def normalize_filter(flt: TransactionFilterDTO | None, policy: LedgerPolicy) -> tuple[TransactionFilterDTO, int]:
    """Validate list filters and resolve the effective page size."""
    flt = flt or TransactionFilterDTO()
    if flt.kind:
        flt.kind = str(parse_kind(flt.kind))
    if flt.date_from and flt.date_to and flt.date_from > flt.date_to:
        raise ValidationError("date_from must not be after date_to")
    if flt.offset < 0:
        raise ValidationError("offset must not be negative")
    limit = flt.limit if flt.limit is not None else policy.page_size
    if limit <= 0:
        raise ValidationError("limit must be positive")
    if flt.search is not None and not flt.search.strip():
        flt.search = None
    return flt, limit


@dataclass(slots=True)
class AsyncCreateTransaction:
    """Record an income or expense entry and adjust the account balance.

    Contract:
      AsyncCreateTransaction(stores, clock, policy)(tenant_id, account_id, kind, amount, value_date,
          category_id=None, splits=None, note=None, actor_id=None, recurring_parent_id=None) -> TransactionDTO

    Validation order (all before any write):
      1. Required fields (ValidationError).
      2. ``0 < amount <= max_transaction_amount`` (ValidationError).
      3. ``transfer`` kind rejected; use AsyncCreateTransfer (ValidationError).
      4. Account must exist for the tenant (NotFoundError).
      5. Income on a debt account (DomainRuleError).
      6. Expense above the balance of an asset account (DomainRuleError).
      7. Splits must sum to ``amount`` (ValidationError).

    Side effects:
      - One journal transaction: entry + splits + outbox row ``{id}@0:apply``.
      - Inline dispatch of the adjustment; the returned ``status`` is
        ``applied`` on success, ``pending``/``failed`` otherwise.
    """

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self,
        tenant_id: str,
        account_id: str,
        kind: str,
        amount: int,
        value_date: date,
        *,
        category_id: str | None = None,
        splits: list[SplitDTO] | None = None,
        note: str | None = None,
        actor_id: str | None = None,
        recurring_parent_id: str | None = None,
    ) -> TransactionDTO:
        if not tenant_id:
            raise ValidationError("tenant_id is required")
        if not account_id:
            raise ValidationError("account_id is required")
        if not kind:
            raise ValidationError("kind is required")
        if value_date is None:
            raise ValidationError("value_date is required")
        if amount is None:
            raise ValidationError("amount is required")
        ensure_amount(amount, maximum=self.policy.max_transaction_amount)
        txn_kind = parse_kind(kind)
        if txn_kind is TransactionKind.TRANSFER:
            raise ValidationError("Transfers must be created through the transfer operation")

        account = await _load_account(self.stores, tenant_id, account_id)
        ensure_kind_allowed(account.type, txn_kind)
        if txn_kind is TransactionKind.EXPENSE:
            ensure_sufficient_funds(account.type, account.current_balance, amount)
        checked = validate_splits(amount, _to_splits(splits))

        now = self.clock.now()
        txn = TransactionDTO(
            id=uuid4().hex,
            tenant_id=tenant_id,
            account_id=account.id,
            kind=str(txn_kind),
            amount=amount,
            currency=account.currency,
            value_date=value_date,
            note=note,
            category_id=category_id,
            actor_id=actor_id,
            recurring_parent_id=recurring_parent_id,
            created_at=now,
            updated_at=now,
            splits=_to_split_dtos(checked),
        )
        async with self.stores.journal() as uow:
            saved = await uow.transactions.add(txn)
            pending = await uow.outbox.add_many(
                [build_outbox_entry(saved, delta=_effect(saved), intent=AdjustmentIntent.APPLY, revision=0, at=now)]
            )
        report = await AdjustmentDispatcher(self.stores, self.clock, self.policy).dispatch(pending)
        get_logger(__name__).info(
            "transaction_created",
            tenant_id=tenant_id,
            transaction_id=saved.id,
            account_id=account.id,
            kind=saved.kind,
            amount=saved.amount,
            status=report.status,
        )
        saved.status = report.status
        saved.account_name = account.name
        return saved


@dataclass(slots=True)
class AsyncUpdateTransaction:
    """Edit an entry and compensate its balance effect.

    Contract:
      AsyncUpdateTransaction(stores, clock, policy)(tenant_id, transaction_id, *, amount=None, kind=None,
          account_id=None, category_id=None, splits=None, value_date=None, note=None) -> TransactionDTO

    Steps:
      1. Reject an empty update (ValidationError) and unknown entries (NotFoundError).
      2. Transfer legs and opening entries accept only note/value_date/category_id
         edits (DomainRuleError otherwise).
      3. Validate the new state: amount bounds, kind rules on the target
         account, split-sum law against the new amount.
      4. Every update bumps the revision. Compute compensation:
         - same account: one ``apply`` row at ``revision + 1`` with
           ``delta = new effect - old effect`` (no row when the delta is zero)
         - account changed: ``reverse`` of the old effect on the old account
           at the current revision plus ``apply`` of the new effect on the new
           account at ``revision + 1``
      5. An asset account must not be driven below zero (DomainRuleError).
      6. Persist entry, replaced splits and outbox rows in one journal
         transaction, then dispatch. The entry is written only if it still
         has the revision that was read (ConflictError otherwise), so of two
         concurrent edits the later one fails instead of overwriting.
    """

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self,
        tenant_id: str,
        transaction_id: str,
        *,
        amount: int | None = None,
        kind: str | None = None,
        account_id: str | None = None,
        category_id: str | None = None,
        splits: list[SplitDTO] | None = None,
        value_date: date | None = None,
        note: str | None = None,
    ) -> TransactionDTO:
        financial = {"amount": amount, "kind": kind, "account_id": account_id, "splits": splits}
        descriptive = {"category_id": category_id, "value_date": value_date, "note": note}
        if all(v is None for v in (*financial.values(), *descriptive.values())):
            raise ValidationError("No fields to update")

        async with self.stores.journal() as uow:
            current = await uow.transactions.get(transaction_id, tenant_id=tenant_id)
        if not current:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        if current.kind == TransactionKind.TRANSFER or current.is_opening:
            changed = sorted(k for k, v in financial.items() if v is not None)
            if changed:
                what = "opening balance entries" if current.is_opening else "transfer legs"
                raise DomainRuleError(f"Cannot change {', '.join(changed)} of {what}; only note, value_date and category_id")

        new_kind = parse_kind(kind) if kind is not None else TransactionKind(current.kind)
        new_amount = ensure_amount(amount, maximum=self.policy.max_transaction_amount) if amount is not None else current.amount
        new_account_id = account_id or current.account_id
        if new_kind is TransactionKind.TRANSFER and current.kind != TransactionKind.TRANSFER:
            raise ValidationError("Transfers must be created through the transfer operation")

        target = await _load_account(self.stores, tenant_id, new_account_id)
        if current.kind != TransactionKind.TRANSFER and not current.is_opening:
            ensure_kind_allowed(target.type, new_kind)

        new_splits = splits if splits is not None else current.splits
        checked = validate_splits(new_amount, _to_splits(new_splits))

        now = self.clock.now()
        old_effect = _effect(current)
        updated = TransactionDTO(
            id=current.id,
            tenant_id=current.tenant_id,
            account_id=target.id,
            kind=str(new_kind),
            amount=new_amount,
            currency=target.currency,
            value_date=value_date or current.value_date,
            note=note if note is not None else current.note,
            category_id=category_id if category_id is not None else current.category_id,
            role=current.role,
            actor_id=current.actor_id,
            recurring_parent_id=current.recurring_parent_id,
            goal_id=current.goal_id,
            is_opening=current.is_opening,
            revision=current.revision + 1,
            created_at=current.created_at,
            updated_at=now,
            splits=_to_split_dtos(checked),
        )
        new_effect = _effect(updated)

        entries: list[OutboxEntryDTO] = []
        if target.id == current.account_id:
            delta = new_effect - old_effect
            if delta:
                if delta < 0 and not is_debt(target.type) and target.current_balance + delta < 0:
                    raise DomainRuleError(
                        f"Insufficient funds: balance={target.current_balance} change={delta}"
                    )
                entries.append(
                    build_outbox_entry(updated, delta=delta, intent=AdjustmentIntent.APPLY, revision=updated.revision, at=now)
                )
        else:
            if new_effect < 0:
                ensure_sufficient_funds(target.type, target.current_balance, -new_effect)
            entries.append(
                build_outbox_entry(
                    current, delta=-old_effect, intent=AdjustmentIntent.REVERSE, revision=current.revision, at=now
                )
            )
            entries.append(
                build_outbox_entry(updated, delta=new_effect, intent=AdjustmentIntent.APPLY, revision=updated.revision, at=now)
            )

        async with self.stores.journal() as uow:
            await uow.transactions.save(updated, expected_revision=current.revision)
            if splits is not None or amount is not None:
                await uow.transactions.replace_splits(updated.id, updated.splits)
            pending = await uow.outbox.add_many(entries) if entries else []
        report = await AdjustmentDispatcher(self.stores, self.clock, self.policy).dispatch(pending)
        get_logger(__name__).info(
            "transaction_updated",
            tenant_id=tenant_id,
            transaction_id=updated.id,
            revision=updated.revision,
            account_changed=target.id != current.account_id,
            adjustments=len(pending),
            status=report.status,
        )
        (enriched,) = await enrich_transactions(self.stores, [updated])
        return enriched


@dataclass(slots=True)
class AsyncDeleteTransaction:
    """Soft-delete an entry with compensating ``reverse`` adjustments.

    - Plain entry: reverse its effect on the account.
    - Account transfer leg: both legs are deleted and reversed and the link removed.
    - Goal transfer: the account debit and the goal contribution are both reversed.
    - Opening balance entries cannot be deleted (DomainRuleError).
    - A leg changed or deleted concurrently since it was read raises ConflictError.

    Returns the deleted entry with the resulting settlement ``status``.
    """

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(self, tenant_id: str, transaction_id: str) -> TransactionDTO:
        now = self.clock.now()
        async with self.stores.journal() as uow:
            txn = await uow.transactions.get(transaction_id, tenant_id=tenant_id)
            if not txn:
                raise NotFoundError(f"Transaction not found: {transaction_id}")
            if txn.is_opening:
                raise DomainRuleError("Opening balance entries cannot be deleted")

            legs = [txn]
            if txn.kind == TransactionKind.TRANSFER and not txn.goal_id:
                links = await uow.transfers.for_transactions([txn.id])
                link = links.get(txn.id)
                if link:
                    paired = await uow.transactions.get(link.paired_with(txn.id))
                    if paired:
                        legs.append(paired)
                    await uow.transfers.delete_for(txn.id)

            entries: list[OutboxEntryDTO] = []
            for leg in legs:
                await uow.transactions.soft_delete(leg.id, now, expected_revision=leg.revision)
                entries.append(
                    build_outbox_entry(leg, delta=-_effect(leg), intent=AdjustmentIntent.REVERSE, revision=leg.revision, at=now)
                )
            if txn.goal_id:
                entries.append(
                    build_outbox_entry(
                        txn,
                        delta=-txn.amount,
                        intent=AdjustmentIntent.REVERSE,
                        revision=txn.revision,
                        at=now,
                        target_kind="goal",
                        target_id=txn.goal_id,
                        payload={"transaction_id": txn.id},
                    )
                )
            pending = await uow.outbox.add_many(entries)
        report = await AdjustmentDispatcher(self.stores, self.clock, self.policy).dispatch(pending)
        get_logger(__name__).info(
            "transaction_deleted",
            tenant_id=tenant_id,
            transaction_id=txn.id,
            legs=[leg.id for leg in legs],
            goal_id=txn.goal_id,
            status=report.status,
        )
        txn.deleted_at = now
        txn.revision += 1
        txn.status = report.status
        return txn


@dataclass(slots=True)
class AsyncGetTransaction:
    stores: LedgerStores

    async def __call__(self, tenant_id: str, transaction_id: str) -> TransactionDTO:
        async with self.stores.journal() as uow:
            txn = await uow.transactions.get(transaction_id, tenant_id=tenant_id)
        if not txn:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        (enriched,) = await enrich_transactions(self.stores, [txn])
        return enriched


@dataclass(slots=True)
class AsyncListTransactions:
    """Purpose:
    Filtered, paginated journal listing (newest first) with read-side enrichment.

    Filters (TransactionFilterDTO): account_id, category_id (parent or split),
    kind, date_from/date_to (inclusive), search (note or amount text), limit,
    offset, include_incoming, include_deleted.

    Notes:
    - Without an account filter only the outgoing leg of each transfer pair is
      listed unless ``include_incoming`` is set; with an account filter the leg
      booked on that account is shown.
    """

    stores: LedgerStores
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(self, tenant_id: str, filters: TransactionFilterDTO | None = None) -> TransactionPageDTO:
        if not tenant_id:
            raise ValidationError("tenant_id is required")
        flt, limit = normalize_filter(filters, self.policy)
        async with self.stores.journal() as uow:
            items, total = await uow.transactions.list(tenant_id, flt, limit=limit)
        return TransactionPageDTO(items=await enrich_transactions(self.stores, items), total=total)


@dataclass(slots=True)
class AsyncGetAccountHistory:
    """Account statement with a running ``balance_after`` per entry.

    The running balance is computed backwards from the account's current
    balance over the full effect timeline of the account (newest first), so
    filtered pages still show the balance right after each listed entry.
    """

    stores: LedgerStores
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self, tenant_id: str, account_id: str, filters: TransactionFilterDTO | None = None
    ) -> AccountHistoryDTO:
        account = await _load_account(self.stores, tenant_id, account_id)
        flt, limit = normalize_filter(filters, self.policy)
        flt.account_id = account.id
        flt.include_deleted = False
        async with self.stores.journal() as uow:
            timeline = await uow.transactions.effect_timeline(account.id)
            items, total = await uow.transactions.list(tenant_id, flt, limit=limit)

        balance_after: dict[str, int] = {}
        running = account.current_balance
        for tid, effect in timeline:
            balance_after[tid] = running
            running -= effect

        enriched = await enrich_transactions(self.stores, items)
        entries = [
            HistoryEntryDTO(transaction=t, signed_amount=_effect(t), balance_after=balance_after.get(t.id, account.current_balance))
            for t in enriched
        ]
        return AccountHistoryDTO(
            account=with_balance_status(account, self.policy.low_balance_threshold), entries=entries, total=total
        )
