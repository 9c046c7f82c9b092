"""Asynchronous SQLAlchemy repositories for the three ledger stores.

Each repository wraps the ``AsyncSession`` of one store's Unit of Work and
never touches another store. Business validation lives in the domain and use
cases; repositories perform CRUD, filtered reads, and the two atomic
store-level primitives:

- ``AsyncSqlAlchemyAccountRepository.adjust_balance``: idempotent
  ``current_balance = current_balance + :delta``
- ``AsyncSqlAlchemyGoalRepository.apply_effect``: idempotent
  ``accumulated_amount = accumulated_amount + :delta`` with the matching
  contribution row insert/delete

All mutating methods call ``await session.flush()`` within the active txn.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from sqlalchemy import String, and_, case, cast, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

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
from py_household.domain.errors import ConcurrentWriteError, ConflictError, NotFoundError
from py_household.infrastructure.persistence.sqlalchemy.models import (
    AccountORM,
    AdjustmentOutboxORM,
    AppliedAdjustmentORM,
    AppliedGoalEffectORM,
    CategorySplitORM,
    GoalContributionORM,
    LedgerDivergenceORM,
    SavingsGoalORM,
    TransactionORM,
    TransferLinkORM,
)

# Signed effect of a journal row on its own account, as a SQL expression.
SIGNED_AMOUNT = case(
    (TransactionORM.kind == "income", TransactionORM.amount),
    (and_(TransactionORM.kind == "transfer", TransactionORM.role == "incoming"), TransactionORM.amount),
    else_=-TransactionORM.amount,
)


async def _count(session: AsyncSession, stmt: Select[Any]) -> int:
    res = await session.execute(select(func.count()).select_from(stmt.order_by(None).subquery()))
    return int(res.scalar_one())


def _account_to_dto(row: AccountORM) -> AccountDTO:
    return AccountDTO(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        type=row.type,
        currency=row.currency,
        opening_balance=int(row.opening_balance),
        current_balance=int(row.current_balance),
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )


def _divergence_to_dto(row: LedgerDivergenceORM) -> DivergenceDTO:
    return DivergenceDTO(
        id=row.id,
        subject_kind=row.subject_kind,
        subject_id=row.subject_id,
        tenant_id=row.tenant_id,
        expected=int(row.expected),
        actual=int(row.actual),
        difference=int(row.difference),
        detected_at=row.detected_at,
        resolved_at=row.resolved_at,
        resolved_by=row.resolved_by,
        resolution_note=row.resolution_note,
    )


def _transaction_to_dto(row: TransactionORM, splits: list[SplitDTO] | None = None) -> TransactionDTO:
    return TransactionDTO(
        id=row.id,
        tenant_id=row.tenant_id,
        account_id=row.account_id,
        kind=row.kind,
        amount=int(row.amount),
        currency=row.currency,
        value_date=row.value_date,
        note=row.note,
        category_id=row.category_id,
        role=row.role,
        actor_id=row.actor_id,
        recurring_parent_id=row.recurring_parent_id,
        goal_id=row.goal_id,
        is_opening=bool(row.is_opening),
        revision=int(row.revision),
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
        splits=list(splits or []),
    )


def _link_to_dto(row: TransferLinkORM) -> TransferLinkDTO:
    return TransferLinkDTO(
        id=row.id,
        tenant_id=row.tenant_id,
        outgoing_transaction_id=row.outgoing_transaction_id,
        incoming_transaction_id=row.incoming_transaction_id,
        created_at=row.created_at,
    )


def _outbox_to_dto(row: AdjustmentOutboxORM) -> OutboxEntryDTO:
    return OutboxEntryDTO(
        id=row.id,
        idempotency_key=row.idempotency_key,
        tenant_id=row.tenant_id,
        transaction_id=row.transaction_id,
        target_kind=row.target_kind,
        target_id=row.target_id,
        delta=int(row.delta),
        intent=row.intent,
        revision=int(row.revision),
        payload=dict(row.payload) if row.payload else None,
        status=row.status,
        attempts=int(row.attempts),
        last_error=row.last_error,
        created_at=row.created_at,
        processed_at=row.processed_at,
    )


def _goal_to_dto(row: SavingsGoalORM) -> GoalDTO:
    return GoalDTO(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        goal_type=row.goal_type,
        target_amount=int(row.target_amount),
        accumulated_amount=int(row.accumulated_amount),
        deadline=row.deadline,
        note=row.note,
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )


def _contribution_to_dto(row: GoalContributionORM) -> GoalContributionDTO:
    return GoalContributionDTO(
        id=row.id,
        goal_id=row.goal_id,
        transaction_id=row.transaction_id,
        account_id=row.account_id,
        amount=int(row.amount),
        contribution_date=row.contribution_date,
        note=row.note,
        created_at=row.created_at,
    )


# --- account store -----------------------------------------------------------


class AsyncSqlAlchemyAccountRepository:
    """Accounts plus the idempotent balance adjustment primitive."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, dto: AccountDTO) -> AccountDTO:
        """Insert an account. ``current_balance`` always starts at zero."""
        row = AccountORM(
            id=dto.id,
            tenant_id=dto.tenant_id,
            name=dto.name,
            type=dto.type,
            currency=dto.currency,
            opening_balance=dto.opening_balance,
            current_balance=0,
            created_at=dto.created_at,
            updated_at=dto.updated_at or dto.created_at,
        )
        self.session.add(row)
        await self.session.flush()
        return _account_to_dto(row)

    async def get(self, account_id: str, *, tenant_id: str | None = None, include_deleted: bool = False) -> AccountDTO | None:
        stmt = select(AccountORM).where(AccountORM.id == account_id)
        if tenant_id is not None:
            stmt = stmt.where(AccountORM.tenant_id == tenant_id)
        if not include_deleted:
            stmt = stmt.where(AccountORM.deleted_at.is_(None))
        res = await self.session.execute(stmt)
        row = res.scalar_one_or_none()
        return _account_to_dto(row) if row else None

    async def get_many(self, account_ids: Iterable[str]) -> dict[str, AccountDTO]:
        """Return accounts by id, soft-deleted ones included (display lookups)."""
        ids = {i for i in account_ids if i}
        if not ids:
            return {}
        res = await self.session.execute(select(AccountORM).where(AccountORM.id.in_(ids)))
        return {r.id: _account_to_dto(r) for r in res.scalars().all()}

    async def list(
        self,
        tenant_id: str,
        *,
        account_type: str | None = None,
        include_deleted: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[AccountDTO], int]:
        """Return a page of tenant accounts ordered by created_at DESC and the total count."""
        stmt = select(AccountORM).where(AccountORM.tenant_id == tenant_id)
        if account_type:
            stmt = stmt.where(AccountORM.type == account_type)
        if not include_deleted:
            stmt = stmt.where(AccountORM.deleted_at.is_(None))
        total = await _count(self.session, stmt)
        stmt = stmt.order_by(AccountORM.created_at.desc(), AccountORM.id.desc()).offset(max(0, offset))
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await self.session.execute(stmt)
        return [_account_to_dto(r) for r in res.scalars().all()], total

    async def list_active(self, tenant_id: str | None = None) -> list[AccountDTO]:
        stmt = select(AccountORM).where(AccountORM.deleted_at.is_(None))
        if tenant_id is not None:
            stmt = stmt.where(AccountORM.tenant_id == tenant_id)
        res = await self.session.execute(stmt.order_by(AccountORM.id))
        return [_account_to_dto(r) for r in res.scalars().all()]

    async def update_details(self, account_id: str, values: dict[str, Any], at: datetime) -> AccountDTO | None:
        """Update descriptive columns (name/currency). Balances are never accepted here."""
        allowed = {k: v for k, v in values.items() if k in {"name", "currency"}}
        await self.session.execute(
            update(AccountORM)
            .where(AccountORM.id == account_id, AccountORM.deleted_at.is_(None))
            .values(**allowed, updated_at=at)
        )
        await self.session.flush()
        return await self.get(account_id)

    async def soft_delete(self, account_id: str, at: datetime) -> bool:
        res = await self.session.execute(
            update(AccountORM)
            .where(AccountORM.id == account_id, AccountORM.deleted_at.is_(None))
            .values(deleted_at=at, updated_at=at)
        )
        await self.session.flush()
        return bool(res.rowcount)

    async def discard(self, account_id: str) -> None:
        """Remove an account that never received an adjustment (failed creation)."""
        await self.session.execute(
            delete(AccountORM).where(AccountORM.id == account_id, AccountORM.current_balance == 0)
        )
        await self.session.flush()

    async def get_applied(self, idempotency_key: str) -> AppliedAdjustmentORM | None:
        res = await self.session.execute(
            select(AppliedAdjustmentORM).where(AppliedAdjustmentORM.idempotency_key == idempotency_key)
        )
        return res.scalar_one_or_none()

    async def adjust_balance(self, account_id: str, delta: int, idempotency_key: str, at: datetime) -> AdjustmentOutcomeDTO:
        """Apply ``delta`` to ``current_balance`` at most once per ``idempotency_key``.

        Steps (one account-store transaction):
        1. Replay check: a recorded key with the same account and delta returns
           the recorded balance; a different payload raises ConflictError.
        2. Single atomic ``UPDATE ... SET current_balance = current_balance + :delta``
           on the non-deleted account (NotFoundError when nothing matched).
        3. Insert the idempotency record; a unique violation means a concurrent
           writer won the race and surfaces as ConcurrentWriteError so the
           caller can retry into the replay path after rollback.
        """
        existing = await self.get_applied(idempotency_key)
        if existing is not None:
            if existing.account_id != account_id or int(existing.delta) != delta:
                raise ConflictError(
                    f"Idempotency key {idempotency_key!r} already applied to account {existing.account_id} "
                    f"with delta {existing.delta}"
                )
            return AdjustmentOutcomeDTO(balance=int(existing.balance_after or 0), replayed=True)

        res = await self.session.execute(
            update(AccountORM)
            .where(AccountORM.id == account_id, AccountORM.deleted_at.is_(None))
            .values(current_balance=AccountORM.current_balance + delta, updated_at=at)
        )
        if not res.rowcount:
            raise NotFoundError(f"Account not found: {account_id}")
        bal_res = await self.session.execute(select(AccountORM.current_balance).where(AccountORM.id == account_id))
        balance = int(bal_res.scalar_one())
        self.session.add(
            AppliedAdjustmentORM(
                idempotency_key=idempotency_key,
                account_id=account_id,
                delta=delta,
                balance_after=balance,
                applied_at=at,
            )
        )
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConcurrentWriteError(f"Adjustment {idempotency_key!r} committed concurrently") from exc
        return AdjustmentOutcomeDTO(balance=balance, replayed=False)


class AsyncSqlAlchemyDivergenceRepository:
    """Audit trail of reconciler findings (account store)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, dto: DivergenceDTO) -> DivergenceDTO:
        row = LedgerDivergenceORM(
            subject_kind=dto.subject_kind,
            subject_id=dto.subject_id,
            tenant_id=dto.tenant_id,
            expected=dto.expected,
            actual=dto.actual,
            difference=dto.difference,
            detected_at=dto.detected_at,
        )
        self.session.add(row)
        await self.session.flush()
        return _divergence_to_dto(row)

    async def get(self, divergence_id: int) -> DivergenceDTO | None:
        row = await self.session.get(LedgerDivergenceORM, divergence_id)
        return _divergence_to_dto(row) if row else None

    async def find_open(self, subject_kind: str, subject_id: str) -> DivergenceDTO | None:
        """Return the most recent unresolved record for the subject, if any."""
        res = await self.session.execute(
            select(LedgerDivergenceORM)
            .where(
                LedgerDivergenceORM.subject_kind == subject_kind,
                LedgerDivergenceORM.subject_id == subject_id,
                LedgerDivergenceORM.resolved_at.is_(None),
            )
            .order_by(LedgerDivergenceORM.id.desc())
            .limit(1)
        )
        row = res.scalar_one_or_none()
        return _divergence_to_dto(row) if row else None

    async def list(self, *, unresolved_only: bool = True, tenant_id: str | None = None, limit: int | None = None) -> list[DivergenceDTO]:
        stmt = select(LedgerDivergenceORM)
        if unresolved_only:
            stmt = stmt.where(LedgerDivergenceORM.resolved_at.is_(None))
        if tenant_id is not None:
            stmt = stmt.where(LedgerDivergenceORM.tenant_id == tenant_id)
        stmt = stmt.order_by(LedgerDivergenceORM.detected_at.desc(), LedgerDivergenceORM.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await self.session.execute(stmt)
        return [_divergence_to_dto(r) for r in res.scalars().all()]

    async def resolve(self, divergence_id: int, *, actor: str, note: str | None, at: datetime) -> DivergenceDTO | None:
        await self.session.execute(
            update(LedgerDivergenceORM)
            .where(LedgerDivergenceORM.id == divergence_id, LedgerDivergenceORM.resolved_at.is_(None))
            .values(resolved_at=at, resolved_by=actor, resolution_note=note)
        )
        await self.session.flush()
        return await self.get(divergence_id)


# --- journal store -----------------------------------------------------------


class AsyncSqlAlchemyTransactionRepository:
    """Journal entries with category splits (transaction store)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, dto: TransactionDTO) -> TransactionDTO:
        row = TransactionORM(
            id=dto.id,
            tenant_id=dto.tenant_id,
            account_id=dto.account_id,
            category_id=dto.category_id,
            kind=dto.kind,
            role=dto.role,
            amount=dto.amount,
            currency=dto.currency,
            value_date=dto.value_date,
            note=dto.note,
            actor_id=dto.actor_id,
            recurring_parent_id=dto.recurring_parent_id,
            goal_id=dto.goal_id,
            is_opening=dto.is_opening,
            revision=dto.revision,
            created_at=dto.created_at,
            updated_at=dto.updated_at or dto.created_at,
        )
        self.session.add(row)
        for s in dto.splits:
            self.session.add(CategorySplitORM(transaction_id=dto.id, category_id=s.category_id, amount=s.amount))
        await self.session.flush()
        return _transaction_to_dto(row, dto.splits)

    async def get(self, transaction_id: str, *, tenant_id: str | None = None, include_deleted: bool = False) -> TransactionDTO | None:
        stmt = select(TransactionORM).where(TransactionORM.id == transaction_id)
        if tenant_id is not None:
            stmt = stmt.where(TransactionORM.tenant_id == tenant_id)
        if not include_deleted:
            stmt = stmt.where(TransactionORM.deleted_at.is_(None))
        res = await self.session.execute(stmt)
        row = res.scalar_one_or_none()
        if not row:
            return None
        splits = await self.splits_for([row.id])
        return _transaction_to_dto(row, splits.get(row.id))

    async def get_many(self, transaction_ids: Iterable[str]) -> dict[str, TransactionDTO]:
        """Return entries by id without splits, soft-deleted ones included."""
        ids = {i for i in transaction_ids if i}
        if not ids:
            return {}
        res = await self.session.execute(select(TransactionORM).where(TransactionORM.id.in_(ids)))
        return {r.id: _transaction_to_dto(r) for r in res.scalars().all()}

    async def splits_for(self, transaction_ids: Iterable[str]) -> dict[str, list[SplitDTO]]:
        ids = list(set(transaction_ids))
        if not ids:
            return {}
        res = await self.session.execute(
            select(CategorySplitORM).where(CategorySplitORM.transaction_id.in_(ids)).order_by(CategorySplitORM.id)
        )
        out: dict[str, list[SplitDTO]] = {}
        for r in res.scalars().all():
            out.setdefault(r.transaction_id, []).append(SplitDTO(category_id=r.category_id, amount=int(r.amount)))
        return out

    async def save(self, dto: TransactionDTO, *, expected_revision: int) -> TransactionDTO:
        """Persist mutable columns of a live entry last read at ``expected_revision``.

        Splits are handled separately. Raises ConflictError when the entry was
        updated or deleted since it was read.
        """
        res = await self.session.execute(
            update(TransactionORM)
            .where(
                TransactionORM.id == dto.id,
                TransactionORM.revision == expected_revision,
                TransactionORM.deleted_at.is_(None),
            )
            .values(
                account_id=dto.account_id,
                category_id=dto.category_id,
                kind=dto.kind,
                amount=dto.amount,
                currency=dto.currency,
                value_date=dto.value_date,
                note=dto.note,
                revision=dto.revision,
                updated_at=dto.updated_at,
            )
        )
        if not res.rowcount:
            raise ConflictError(f"Transaction {dto.id} changed concurrently (expected revision {expected_revision})")
        await self.session.flush()
        return dto

    async def replace_splits(self, transaction_id: str, splits: list[SplitDTO]) -> None:
        await self.session.execute(delete(CategorySplitORM).where(CategorySplitORM.transaction_id == transaction_id))
        for s in splits:
            self.session.add(CategorySplitORM(transaction_id=transaction_id, category_id=s.category_id, amount=s.amount))
        await self.session.flush()

    async def soft_delete(self, transaction_id: str, at: datetime, *, expected_revision: int) -> None:
        """Mark a live entry deleted and bump its revision; ConflictError if it changed since read."""
        res = await self.session.execute(
            update(TransactionORM)
            .where(
                TransactionORM.id == transaction_id,
                TransactionORM.revision == expected_revision,
                TransactionORM.deleted_at.is_(None),
            )
            .values(deleted_at=at, updated_at=at, revision=expected_revision + 1)
        )
        if not res.rowcount:
            raise ConflictError(f"Transaction {transaction_id} changed concurrently (expected revision {expected_revision})")
        await self.session.flush()

    def _filtered(self, tenant_id: str, flt: TransactionFilterDTO) -> Select[Any]:
        stmt = select(TransactionORM).where(TransactionORM.tenant_id == tenant_id)
        if not flt.include_deleted:
            stmt = stmt.where(TransactionORM.deleted_at.is_(None))
        if flt.account_id:
            stmt = stmt.where(TransactionORM.account_id == flt.account_id)
        elif not flt.include_incoming:
            # One row per transfer pair: keep the outgoing leg only
            stmt = stmt.where(or_(TransactionORM.role.is_(None), TransactionORM.role != "incoming"))
        if flt.category_id:
            in_splits = select(CategorySplitORM.transaction_id).where(CategorySplitORM.category_id == flt.category_id)
            stmt = stmt.where(or_(TransactionORM.category_id == flt.category_id, TransactionORM.id.in_(in_splits)))
        if flt.kind:
            stmt = stmt.where(TransactionORM.kind == flt.kind)
        if flt.date_from:
            stmt = stmt.where(TransactionORM.value_date >= flt.date_from)
        if flt.date_to:
            stmt = stmt.where(TransactionORM.value_date <= flt.date_to)
        if flt.search:
            pattern = f"%{flt.search.strip()}%"
            stmt = stmt.where(
                or_(
                    TransactionORM.note.ilike(pattern),
                    cast(TransactionORM.amount, String).like(pattern),
                )
            )
        return stmt

    async def list(self, tenant_id: str, flt: TransactionFilterDTO, *, limit: int) -> tuple[list[TransactionDTO], int]:
        """Return a filtered page ordered newest first and the total number of matches."""
        stmt = self._filtered(tenant_id, flt)
        total = await _count(self.session, stmt)
        stmt = (
            stmt.order_by(TransactionORM.value_date.desc(), TransactionORM.created_at.desc(), TransactionORM.id.desc())
            .offset(max(0, flt.offset))
            .limit(limit)
        )
        res = await self.session.execute(stmt)
        rows = res.scalars().all()
        splits = await self.splits_for(r.id for r in rows)
        return [_transaction_to_dto(r, splits.get(r.id)) for r in rows], total

    async def effect_timeline(self, account_id: str) -> list[tuple[str, int]]:
        """(id, signed effect) of every live entry on the account, newest first."""
        res = await self.session.execute(
            select(TransactionORM.id, SIGNED_AMOUNT)
            .where(TransactionORM.account_id == account_id, TransactionORM.deleted_at.is_(None))
            .order_by(TransactionORM.value_date.desc(), TransactionORM.created_at.desc(), TransactionORM.id.desc())
        )
        return [(tid, int(effect)) for tid, effect in res.all()]

    async def effects_by_account(
        self, account_ids: Iterable[str] | None = None, *, include_opening: bool = True
    ) -> dict[str, int]:
        """Σ signed effects of live entries grouped by account."""
        stmt = (
            select(TransactionORM.account_id, func.coalesce(func.sum(SIGNED_AMOUNT), 0))
            .where(TransactionORM.deleted_at.is_(None))
            .group_by(TransactionORM.account_id)
        )
        if not include_opening:
            stmt = stmt.where(TransactionORM.is_opening.is_(False))
        if account_ids is not None:
            stmt = stmt.where(TransactionORM.account_id.in_(list(account_ids)))
        res = await self.session.execute(stmt)
        return {acc: int(total) for acc, total in res.all()}


class AsyncSqlAlchemyTransferLinkRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, dto: TransferLinkDTO) -> TransferLinkDTO:
        row = TransferLinkORM(
            id=dto.id,
            tenant_id=dto.tenant_id,
            outgoing_transaction_id=dto.outgoing_transaction_id,
            incoming_transaction_id=dto.incoming_transaction_id,
            created_at=dto.created_at,
        )
        self.session.add(row)
        await self.session.flush()
        return _link_to_dto(row)

    async def for_transactions(self, transaction_ids: Iterable[str]) -> dict[str, TransferLinkDTO]:
        """Map each given transaction id (either leg) to its link."""
        ids = list(set(transaction_ids))
        if not ids:
            return {}
        res = await self.session.execute(
            select(TransferLinkORM).where(
                or_(
                    TransferLinkORM.outgoing_transaction_id.in_(ids),
                    TransferLinkORM.incoming_transaction_id.in_(ids),
                )
            )
        )
        out: dict[str, TransferLinkDTO] = {}
        wanted = set(ids)
        for row in res.scalars().all():
            link = _link_to_dto(row)
            for tid in (link.outgoing_transaction_id, link.incoming_transaction_id):
                if tid in wanted:
                    out[tid] = link
        return out

    async def delete_for(self, transaction_id: str) -> int:
        """Remove the link that references ``transaction_id`` on either side."""
        res = await self.session.execute(
            delete(TransferLinkORM).where(
                or_(
                    TransferLinkORM.outgoing_transaction_id == transaction_id,
                    TransferLinkORM.incoming_transaction_id == transaction_id,
                )
            )
        )
        await self.session.flush()
        return int(res.rowcount or 0)


class AsyncSqlAlchemyOutboxRepository:
    """Pending balance/goal effects committed together with journal entries."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add_many(self, entries: list[OutboxEntryDTO]) -> list[OutboxEntryDTO]:
        rows = [
            AdjustmentOutboxORM(
                idempotency_key=e.idempotency_key,
                tenant_id=e.tenant_id,
                transaction_id=e.transaction_id,
                target_kind=e.target_kind,
                target_id=e.target_id,
                delta=e.delta,
                intent=e.intent,
                revision=e.revision,
                payload=e.payload,
                status="pending",
                attempts=0,
                created_at=e.created_at,
            )
            for e in entries
        ]
        self.session.add_all(rows)
        await self.session.flush()
        return [_outbox_to_dto(r) for r in rows]

    async def list_pending(self, limit: int) -> list[OutboxEntryDTO]:
        res = await self.session.execute(
            select(AdjustmentOutboxORM)
            .where(AdjustmentOutboxORM.status == "pending")
            .order_by(AdjustmentOutboxORM.id)
            .limit(limit)
        )
        return [_outbox_to_dto(r) for r in res.scalars().all()]

    async def list_for_transaction(self, transaction_id: str) -> list[OutboxEntryDTO]:
        res = await self.session.execute(
            select(AdjustmentOutboxORM).where(AdjustmentOutboxORM.transaction_id == transaction_id).order_by(AdjustmentOutboxORM.id)
        )
        return [_outbox_to_dto(r) for r in res.scalars().all()]

    async def mark_applied(self, entry_id: int, at: datetime) -> None:
        await self.session.execute(
            update(AdjustmentOutboxORM)
            .where(AdjustmentOutboxORM.id == entry_id)
            .values(status="applied", processed_at=at, attempts=AdjustmentOutboxORM.attempts + 1, last_error=None)
        )
        await self.session.flush()

    async def record_failure(self, entry_id: int, error: str, at: datetime, *, max_attempts: int, permanent: bool = False) -> str:
        """Count a failed attempt; the entry becomes ``failed`` when permanent or out of attempts."""
        res = await self.session.execute(select(AdjustmentOutboxORM.attempts).where(AdjustmentOutboxORM.id == entry_id))
        attempts = int(res.scalar_one()) + 1
        status = "failed" if permanent or attempts >= max_attempts else "pending"
        await self.session.execute(
            update(AdjustmentOutboxORM)
            .where(AdjustmentOutboxORM.id == entry_id)
            .values(
                attempts=attempts,
                last_error=error[:2000],
                status=status,
                processed_at=at if status == "failed" else None,
            )
        )
        await self.session.flush()
        return status

    async def statuses_for_transactions(self, transaction_ids: Iterable[str]) -> dict[str, str]:
        """Aggregate settlement status per transaction: failed > pending > applied."""
        ids = list(set(transaction_ids))
        if not ids:
            return {}
        res = await self.session.execute(
            select(AdjustmentOutboxORM.transaction_id, AdjustmentOutboxORM.status).where(
                AdjustmentOutboxORM.transaction_id.in_(ids)
            )
        )
        rank = {"applied": 0, "pending": 1, "failed": 2}
        out: dict[str, str] = {}
        for tid, status in res.all():
            if rank.get(status, 0) >= rank.get(out.get(tid, "applied"), 0):
                out[tid] = status
        return out

    async def pending_targets(self, target_kind: str) -> set[str]:
        """Targets with effects still waiting for dispatch (in flight)."""
        res = await self.session.execute(
            select(AdjustmentOutboxORM.target_id)
            .where(AdjustmentOutboxORM.target_kind == target_kind, AdjustmentOutboxORM.status == "pending")
            .distinct()
        )
        return {r for (r,) in res.all()}

    async def count_by_status(self) -> dict[str, int]:
        res = await self.session.execute(
            select(AdjustmentOutboxORM.status, func.count()).group_by(AdjustmentOutboxORM.status)
        )
        return {status: int(n) for status, n in res.all()}


# --- goal store --------------------------------------------------------------


class AsyncSqlAlchemyGoalRepository:
    """Savings goals and the idempotent accumulated-amount primitive."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, dto: GoalDTO) -> GoalDTO:
        row = SavingsGoalORM(
            id=dto.id,
            tenant_id=dto.tenant_id,
            name=dto.name,
            goal_type=dto.goal_type,
            target_amount=dto.target_amount,
            accumulated_amount=0,
            deadline=dto.deadline,
            note=dto.note,
            created_at=dto.created_at,
            updated_at=dto.updated_at or dto.created_at,
        )
        self.session.add(row)
        await self.session.flush()
        return _goal_to_dto(row)

    async def get(self, goal_id: str, *, tenant_id: str | None = None, include_deleted: bool = False) -> GoalDTO | None:
        stmt = select(SavingsGoalORM).where(SavingsGoalORM.id == goal_id)
        if tenant_id is not None:
            stmt = stmt.where(SavingsGoalORM.tenant_id == tenant_id)
        if not include_deleted:
            stmt = stmt.where(SavingsGoalORM.deleted_at.is_(None))
        res = await self.session.execute(stmt)
        row = res.scalar_one_or_none()
        return _goal_to_dto(row) if row else None

    async def get_many(self, goal_ids: Iterable[str]) -> dict[str, GoalDTO]:
        ids = {i for i in goal_ids if i}
        if not ids:
            return {}
        res = await self.session.execute(select(SavingsGoalORM).where(SavingsGoalORM.id.in_(ids)))
        return {r.id: _goal_to_dto(r) for r in res.scalars().all()}

    async def list(
        self, tenant_id: str, *, include_deleted: bool = False, limit: int | None = None, offset: int = 0
    ) -> tuple[list[GoalDTO], int]:
        stmt = select(SavingsGoalORM).where(SavingsGoalORM.tenant_id == tenant_id)
        if not include_deleted:
            stmt = stmt.where(SavingsGoalORM.deleted_at.is_(None))
        total = await _count(self.session, stmt)
        stmt = stmt.order_by(SavingsGoalORM.created_at.desc(), SavingsGoalORM.id.desc()).offset(max(0, offset))
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await self.session.execute(stmt)
        return [_goal_to_dto(r) for r in res.scalars().all()], total

    async def list_active(self, tenant_id: str | None = None) -> list[GoalDTO]:
        stmt = select(SavingsGoalORM).where(SavingsGoalORM.deleted_at.is_(None))
        if tenant_id is not None:
            stmt = stmt.where(SavingsGoalORM.tenant_id == tenant_id)
        res = await self.session.execute(stmt.order_by(SavingsGoalORM.id))
        return [_goal_to_dto(r) for r in res.scalars().all()]

    async def update_details(self, goal_id: str, values: dict[str, Any], at: datetime) -> GoalDTO | None:
        allowed = {k: v for k, v in values.items() if k in {"name", "goal_type", "target_amount", "deadline", "note"}}
        await self.session.execute(
            update(SavingsGoalORM)
            .where(SavingsGoalORM.id == goal_id, SavingsGoalORM.deleted_at.is_(None))
            .values(**allowed, updated_at=at)
        )
        await self.session.flush()
        return await self.get(goal_id)

    async def soft_delete(self, goal_id: str, at: datetime) -> bool:
        res = await self.session.execute(
            update(SavingsGoalORM)
            .where(SavingsGoalORM.id == goal_id, SavingsGoalORM.deleted_at.is_(None))
            .values(deleted_at=at, updated_at=at)
        )
        await self.session.flush()
        return bool(res.rowcount)

    async def apply_effect(
        self, goal_id: str, delta: int, idempotency_key: str, payload: dict[str, Any] | None, at: datetime
    ) -> AdjustmentOutcomeDTO:
        """Move ``accumulated_amount`` by ``delta`` and keep contribution rows in lockstep.

        Positive deltas insert the GoalContribution described by ``payload``;
        negative deltas remove the contribution of ``payload['transaction_id']``.
        Replay and race semantics match ``AsyncSqlAlchemyAccountRepository.adjust_balance``.

        Effects of one transaction may arrive out of order (an ``apply`` left
        pending while the entry is deleted). A reverse that finds no applied
        contribution and an apply that finds a recorded reverse are both
        recorded under their key without touching the goal, so the pair
        cancels out.
        """
        res = await self.session.execute(
            select(AppliedGoalEffectORM).where(AppliedGoalEffectORM.idempotency_key == idempotency_key)
        )
        existing = res.scalar_one_or_none()
        if existing is not None:
            if existing.goal_id != goal_id or int(existing.delta) != delta:
                raise ConflictError(
                    f"Idempotency key {idempotency_key!r} already applied to goal {existing.goal_id} with delta {existing.delta}"
                )
            current = await self.session.execute(select(SavingsGoalORM.accumulated_amount).where(SavingsGoalORM.id == goal_id))
            return AdjustmentOutcomeDTO(balance=int(current.scalar_one_or_none() or 0), replayed=True)

        data = payload or {}
        transaction_id = str(data["transaction_id"]) if data.get("transaction_id") else None
        if transaction_id and await self._superseded(transaction_id, delta):
            self.session.add(
                AppliedGoalEffectORM(
                    idempotency_key=idempotency_key, goal_id=goal_id, delta=delta, transaction_id=transaction_id, applied_at=at
                )
            )
            try:
                await self.session.flush()
            except IntegrityError as exc:
                raise ConcurrentWriteError(f"Goal effect {idempotency_key!r} committed concurrently") from exc
            current = await self.session.execute(select(SavingsGoalORM.accumulated_amount).where(SavingsGoalORM.id == goal_id))
            return AdjustmentOutcomeDTO(balance=int(current.scalar_one_or_none() or 0), replayed=False)

        upd = await self.session.execute(
            update(SavingsGoalORM)
            .where(SavingsGoalORM.id == goal_id, SavingsGoalORM.deleted_at.is_(None))
            .values(accumulated_amount=SavingsGoalORM.accumulated_amount + delta, updated_at=at)
        )
        if not upd.rowcount:
            raise NotFoundError(f"Goal not found: {goal_id}")

        if delta > 0 and data.get("contribution_id"):
            self.session.add(
                GoalContributionORM(
                    id=str(data["contribution_id"]),
                    goal_id=goal_id,
                    transaction_id=str(data["transaction_id"]),
                    account_id=str(data["account_id"]),
                    amount=delta,
                    contribution_date=date.fromisoformat(str(data["contribution_date"])),
                    note=data.get("note"),
                    created_at=at,
                )
            )
        elif delta < 0 and data.get("transaction_id"):
            await self.session.execute(
                delete(GoalContributionORM).where(GoalContributionORM.transaction_id == str(data["transaction_id"]))
            )

        self.session.add(
            AppliedGoalEffectORM(
                idempotency_key=idempotency_key, goal_id=goal_id, delta=delta, transaction_id=transaction_id, applied_at=at
            )
        )
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConcurrentWriteError(f"Goal effect {idempotency_key!r} committed concurrently") from exc
        current = await self.session.execute(select(SavingsGoalORM.accumulated_amount).where(SavingsGoalORM.id == goal_id))
        return AdjustmentOutcomeDTO(balance=int(current.scalar_one()), replayed=False)

    async def _superseded(self, transaction_id: str, delta: int) -> bool:
        """True for an apply after its reverse, or a reverse before its apply."""
        opposite = AppliedGoalEffectORM.delta < 0 if delta > 0 else AppliedGoalEffectORM.delta > 0
        res = await self.session.execute(
            select(func.count())
            .select_from(AppliedGoalEffectORM)
            .where(AppliedGoalEffectORM.transaction_id == transaction_id, opposite)
        )
        found = int(res.scalar_one()) > 0
        return found if delta > 0 else not found


class AsyncSqlAlchemyGoalContributionRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, contribution_id: str) -> GoalContributionDTO | None:
        row = await self.session.get(GoalContributionORM, contribution_id)
        return _contribution_to_dto(row) if row else None

    async def for_transactions(self, transaction_ids: Iterable[str]) -> dict[str, GoalContributionDTO]:
        ids = list(set(transaction_ids))
        if not ids:
            return {}
        res = await self.session.execute(select(GoalContributionORM).where(GoalContributionORM.transaction_id.in_(ids)))
        return {r.transaction_id: _contribution_to_dto(r) for r in res.scalars().all()}

    async def list(self, goal_id: str, *, limit: int | None = None, offset: int = 0) -> tuple[list[GoalContributionDTO], int]:
        """Contributions of a goal ordered by contribution_date DESC and the total count."""
        stmt = select(GoalContributionORM).where(GoalContributionORM.goal_id == goal_id)
        total = await _count(self.session, stmt)
        stmt = stmt.order_by(GoalContributionORM.contribution_date.desc(), GoalContributionORM.created_at.desc()).offset(
            max(0, offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await self.session.execute(stmt)
        return [_contribution_to_dto(r) for r in res.scalars().all()], total

    async def sums_by_goal(self, goal_ids: Iterable[str] | None = None) -> dict[str, int]:
        stmt = select(GoalContributionORM.goal_id, func.coalesce(func.sum(GoalContributionORM.amount), 0)).group_by(
            GoalContributionORM.goal_id
        )
        if goal_ids is not None:
            stmt = stmt.where(GoalContributionORM.goal_id.in_(list(goal_ids)))
        res = await self.session.execute(stmt)
        return {gid: int(total) for gid, total in res.all()}
