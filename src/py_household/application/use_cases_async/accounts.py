from __future__ import annotations

from dataclasses import dataclass, field
from uuid import uuid4

from py_household.application.dto.models import AccountDTO, AccountPageDTO, TransactionDTO
from py_household.application.ports import Clock, LedgerPolicy, LedgerStores
from py_household.application.use_cases_async.adjustments import AdjustmentDispatcher, build_outbox_entry
from py_household.application.use_cases_async.enrichment import with_balance_status
from py_household.domain.accounts import Account, parse_account_type
from py_household.domain.errors import NotFoundError, ValidationError
from py_household.domain.money import ensure_amount, normalize_currency
from py_household.domain.transactions import AdjustmentIntent, TransactionKind, signed_effect
from py_household.infrastructure.logging.config import get_logger

__all__ = [
    "AsyncCreateAccount",
    "AsyncGetAccount",
    "AsyncListAccounts",
    "AsyncUpdateAccount",
    "AsyncDeleteAccount",
]

OPENING_BALANCE_NOTE = "Opening balance"


@dataclass(slots=True)
class AsyncCreateAccount:
    """Create an account and seed its opening balance through the journal.

    Contract:
      AsyncCreateAccount(stores, clock, policy)(tenant_id, name, account_type, currency=None,
                                                opening_balance=0, actor_id=None) -> AccountDTO

    Steps:
      1. Validate input via the ``Account`` value object (ValidationError on
         missing tenant/name, unknown type, bad currency, negative magnitude).
      2. Persist the account with ``current_balance = 0`` (account store).
      3. When the opening magnitude is non-zero, write an immutable opening
         journal entry (income for asset accounts, expense for debt accounts)
         together with its outbox row, then dispatch the adjustment.
      4. Re-read the account so the returned balance reflects the dispatch.

    Notes:
      - ``opening_balance`` is a non-negative magnitude; debt accounts store it negated.
      - If dispatch fails the account is returned with a zero balance and the
        outbox row stays pending for the worker.
      - If the journal write fails the new account is removed again and the
        error propagates; should that removal fail too, the reconciler
        reports the unseeded opening balance as a divergence.
    """

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self,
        tenant_id: str,
        name: str,
        account_type: str,
        currency: str | None = None,
        opening_balance: int = 0,
        actor_id: str | None = None,
    ) -> AccountDTO:
        account = Account(
            tenant_id=tenant_id,
            name=name,
            type=account_type,  # type: ignore[arg-type]
            currency=currency or self.policy.default_currency,
            opening_magnitude=opening_balance,
        )
        if account.opening_magnitude:
            ensure_amount(account.opening_magnitude, maximum=self.policy.max_transaction_amount, field="opening_balance")
        now = self.clock.now()
        dto = AccountDTO(
            id=uuid4().hex,
            tenant_id=account.tenant_id,
            name=account.name,
            type=str(account.type),
            currency=account.currency,
            opening_balance=account.opening_balance,
            current_balance=0,
            created_at=now,
            updated_at=now,
        )
        async with self.stores.accounts() as uow:
            created = await uow.accounts.create(dto)
        log = get_logger(__name__).bind(tenant_id=created.tenant_id, account_id=created.id)
        log.info("account_created", type=created.type, currency=created.currency)

        if account.opening_magnitude:
            kind = TransactionKind.EXPENSE if account.is_debt else TransactionKind.INCOME
            entry = TransactionDTO(
                id=uuid4().hex,
                tenant_id=created.tenant_id,
                account_id=created.id,
                kind=str(kind),
                amount=account.opening_magnitude,
                currency=created.currency,
                value_date=now.date(),
                note=OPENING_BALANCE_NOTE,
                actor_id=actor_id,
                is_opening=True,
                created_at=now,
                updated_at=now,
            )
            effect = signed_effect(kind, entry.amount)
            try:
                async with self.stores.journal() as uow:
                    await uow.transactions.add(entry)
                    pending = await uow.outbox.add_many(
                        [build_outbox_entry(entry, delta=effect, intent=AdjustmentIntent.APPLY, revision=0, at=now)]
                    )
            except Exception:
                log.error("opening_balance_seed_failed", amount=effect)
                async with self.stores.accounts() as uow:
                    await uow.accounts.discard(created.id)
                raise
            report = await AdjustmentDispatcher(self.stores, self.clock, self.policy).dispatch(pending)
            log.info("opening_balance_seeded", amount=effect, status=report.status)
            async with self.stores.accounts() as uow:
                created = await uow.accounts.get(created.id) or created
        return with_balance_status(created, self.policy.low_balance_threshold)


@dataclass(slots=True)
class AsyncGetAccount:
    """Return a tenant account with its presentational ``balance_status`` (NotFoundError if absent)."""

    stores: LedgerStores
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(self, tenant_id: str, account_id: str) -> AccountDTO:
        async with self.stores.accounts() as uow:
            account = await uow.accounts.get(account_id, tenant_id=tenant_id)
        if not account:
            raise NotFoundError(f"Account not found: {account_id}")
        return with_balance_status(account, self.policy.low_balance_threshold)


@dataclass(slots=True)
class AsyncListAccounts:
    """Purpose:
    Page through tenant accounts, newest first.

    Parameters:
    - account_type: optional type filter (validated).
    - include_deleted: include soft-deleted accounts.
    - limit: page size (defaults to policy page size); offset >= 0.

    Returns:
    - AccountPageDTO(items, total) where ``total`` ignores pagination.
    """

    stores: LedgerStores
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self,
        tenant_id: str,
        account_type: str | None = None,
        *,
        include_deleted: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> AccountPageDTO:
        if not tenant_id:
            raise ValidationError("tenant_id is required")
        if offset < 0:
            raise ValidationError("offset must not be negative")
        page_size = limit if limit is not None else self.policy.page_size
        if page_size <= 0:
            raise ValidationError("limit must be positive")
        type_filter = str(parse_account_type(account_type)) if account_type else None
        async with self.stores.accounts() as uow:
            items, total = await uow.accounts.list(
                tenant_id, account_type=type_filter, include_deleted=include_deleted, limit=page_size, offset=offset
            )
        return AccountPageDTO(
            items=[with_balance_status(a, self.policy.low_balance_threshold) for a in items],
            total=total,
        )


@dataclass(slots=True)
class AsyncUpdateAccount:
    """Rename an account or change its currency code. Balances are never editable here."""

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self, tenant_id: str, account_id: str, *, name: str | None = None, currency: str | None = None
    ) -> AccountDTO:
        values: dict[str, str] = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Account name must not be empty")
            values["name"] = name.strip()
        if currency is not None:
            values["currency"] = normalize_currency(currency)
        if not values:
            raise ValidationError("No fields to update")
        async with self.stores.accounts() as uow:
            if not await uow.accounts.get(account_id, tenant_id=tenant_id):
                raise NotFoundError(f"Account not found: {account_id}")
            updated = await uow.accounts.update_details(account_id, values, self.clock.now())
        if updated is None:
            raise NotFoundError(f"Account not found: {account_id}")
        get_logger(__name__).info("account_updated", tenant_id=tenant_id, account_id=account_id, fields=sorted(values))
        return with_balance_status(updated, self.policy.low_balance_threshold)


@dataclass(slots=True)
class AsyncDeleteAccount:
    """Soft-delete an account; its journal entries stay untouched."""

    stores: LedgerStores
    clock: Clock

    async def __call__(self, tenant_id: str, account_id: str) -> None:
        async with self.stores.accounts() as uow:
            if not await uow.accounts.get(account_id, tenant_id=tenant_id):
                raise NotFoundError(f"Account not found: {account_id}")
            await uow.accounts.soft_delete(account_id, self.clock.now())
        get_logger(__name__).info("account_deleted", tenant_id=tenant_id, account_id=account_id)
