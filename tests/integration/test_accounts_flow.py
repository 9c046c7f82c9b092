from __future__ import annotations

import pytest

from py_household.application.dto.models import TransactionFilterDTO
from py_household.application.use_cases_async.accounts import (
    AsyncCreateAccount,
    AsyncDeleteAccount,
    AsyncGetAccount,
    AsyncListAccounts,
    AsyncUpdateAccount,
)
from py_household.application.use_cases_async.transactions import (
    AsyncDeleteTransaction,
    AsyncListTransactions,
    AsyncUpdateTransaction,
)
from py_household.domain.errors import DomainRuleError, NotFoundError, ValidationError

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


@pytest.mark.asyncio
async def test_opening_balance_is_seeded_through_the_journal(ledger):
    create = AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)
    acc = await create(TENANT, "BCA", "bank", "idr", 1_500_000)

    assert acc.current_balance == 1_500_000
    assert acc.opening_balance == 1_500_000
    assert acc.currency == "IDR"
    assert acc.balance_status == "sufficient"

    page = await AsyncListTransactions(ledger.stores, ledger.policy)(TENANT, TransactionFilterDTO(account_id=acc.id))
    assert page.total == 1
    (opening,) = page.items
    assert opening.is_opening
    assert (opening.kind, opening.amount, opening.status) == ("income", 1_500_000, "applied")


@pytest.mark.asyncio
async def test_debt_account_opening_is_negative(ledger):
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "Visa", "credit-card", None, 2_000_000)
    assert acc.current_balance == -2_000_000
    assert acc.opening_balance == -2_000_000
    assert acc.currency == ledger.policy.default_currency
    assert acc.balance_status == "sufficient"


@pytest.mark.asyncio
async def test_zero_opening_writes_no_journal_entry(ledger):
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "Wallet", "cash")
    assert acc.current_balance == 0
    assert acc.balance_status == "empty"
    page = await AsyncListTransactions(ledger.stores, ledger.policy)(TENANT, TransactionFilterDTO(account_id=acc.id))
    assert page.total == 0


@pytest.mark.asyncio
async def test_opening_entry_is_immutable(ledger):
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "BCA", "bank", None, 1_000)
    page = await AsyncListTransactions(ledger.stores, ledger.policy)(TENANT, TransactionFilterDTO(account_id=acc.id))
    opening = page.items[0]

    with pytest.raises(DomainRuleError):
        await AsyncUpdateTransaction(ledger.stores, ledger.clock, ledger.policy)(TENANT, opening.id, amount=5_000)
    with pytest.raises(DomainRuleError):
        await AsyncDeleteTransaction(ledger.stores, ledger.clock, ledger.policy)(TENANT, opening.id)

    renamed = await AsyncUpdateTransaction(ledger.stores, ledger.clock, ledger.policy)(TENANT, opening.id, note="Carried over")
    assert renamed.note == "Carried over"
    assert renamed.revision == 1


@pytest.mark.asyncio
async def test_create_account_validation(ledger):
    create = AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)
    with pytest.raises(ValidationError):
        await create(TENANT, "", "bank")
    with pytest.raises(ValidationError):
        await create(TENANT, "X", "piggy-bank")
    with pytest.raises(ValidationError):
        await create(TENANT, "X", "bank", "rupiah")
    with pytest.raises(ValidationError):
        await create(TENANT, "X", "bank", None, -1)


@pytest.mark.asyncio
async def test_list_get_update_delete(ledger):
    create = AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)
    cash = await create(TENANT, "Cash", "cash", None, 50_000)
    ledger.clock.advance(minutes=1)
    bank = await create(TENANT, "BCA", "bank", None, 5_000_000)
    ledger.clock.advance(minutes=1)
    await create(OTHER_TENANT, "Foreign", "bank")

    page = await AsyncListAccounts(ledger.stores, ledger.policy)(TENANT)
    assert page.total == 2
    assert [a.id for a in page.items] == [bank.id, cash.id]
    assert page.items[1].balance_status == "low"

    first = await AsyncListAccounts(ledger.stores, ledger.policy)(TENANT, limit=1, offset=1)
    assert (first.total, [a.id for a in first.items]) == (2, [cash.id])
    banks = await AsyncListAccounts(ledger.stores, ledger.policy)(TENANT, "bank")
    assert [a.id for a in banks.items] == [bank.id]

    with pytest.raises(NotFoundError):
        await AsyncGetAccount(ledger.stores, ledger.policy)(OTHER_TENANT, bank.id)

    updated = await AsyncUpdateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, bank.id, name="BCA Payroll", currency="usd")
    assert (updated.name, updated.currency, updated.current_balance) == ("BCA Payroll", "USD", 5_000_000)
    with pytest.raises(ValidationError):
        await AsyncUpdateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, bank.id)

    await AsyncDeleteAccount(ledger.stores, ledger.clock)(TENANT, cash.id)
    with pytest.raises(NotFoundError):
        await AsyncGetAccount(ledger.stores, ledger.policy)(TENANT, cash.id)
    assert (await AsyncListAccounts(ledger.stores, ledger.policy)(TENANT)).total == 1
    with_deleted = await AsyncListAccounts(ledger.stores, ledger.policy)(TENANT, include_deleted=True)
    assert with_deleted.total == 2
    with pytest.raises(NotFoundError):
        await AsyncDeleteAccount(ledger.stores, ledger.clock)(TENANT, cash.id)
