from __future__ import annotations

import asyncio
from datetime import date

import pytest

from py_household.application.dto.models import TransactionFilterDTO
from py_household.application.use_cases_async import transactions as transactions_module
from py_household.application.use_cases_async.accounts import AsyncCreateAccount, AsyncGetAccount
from py_household.application.use_cases_async.reconciliation import AsyncReconcileBalances
from py_household.application.use_cases_async.transactions import (
    AsyncCreateTransaction,
    AsyncDeleteTransaction,
    AsyncGetTransaction,
    AsyncListTransactions,
    AsyncUpdateTransaction,
)
from py_household.domain.errors import ConflictError, NotFoundError

TENANT = "tenant-a"


async def _setup(ledger):
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "BCA", "bank", None, 1_000_000)
    txn = await AsyncCreateTransaction(ledger.stores, ledger.clock, ledger.policy)(
        TENANT, acc.id, "expense", 100_000, date(2026, 3, 9)
    )
    return acc, txn


async def _balance(ledger, account_id) -> int:
    return (await AsyncGetAccount(ledger.stores, ledger.policy)(TENANT, account_id)).current_balance


def _race_once(monkeypatch: pytest.MonkeyPatch, interloper):
    """Run ``interloper`` to completion after the update has read the entry but before it writes."""
    original = transactions_module._load_account
    state = {"done": False}

    async def racing_load(stores, tenant_id, account_id):
        if not state["done"]:
            state["done"] = True
            await interloper()
        return await original(stores, tenant_id, account_id)

    monkeypatch.setattr(transactions_module, "_load_account", racing_load)


@pytest.mark.asyncio
async def test_stale_update_is_rejected_instead_of_overwriting(ledger, monkeypatch: pytest.MonkeyPatch):
    acc, txn = await _setup(ledger)
    update = AsyncUpdateTransaction(ledger.stores, ledger.clock, ledger.policy)
    _race_once(monkeypatch, lambda: update(TENANT, txn.id, note="lunch"))

    with pytest.raises(ConflictError):
        await update(TENANT, txn.id, amount=300_000)
    monkeypatch.undo()

    stored = await AsyncGetTransaction(ledger.stores)(TENANT, txn.id)
    assert (stored.amount, stored.note, stored.revision) == (100_000, "lunch", 1)
    assert await _balance(ledger, acc.id) == 900_000
    assert (await AsyncReconcileBalances(ledger.stores, ledger.clock)()).consistent


@pytest.mark.asyncio
async def test_update_of_an_entry_deleted_meanwhile_is_rejected(ledger, monkeypatch: pytest.MonkeyPatch):
    acc, txn = await _setup(ledger)
    delete = AsyncDeleteTransaction(ledger.stores, ledger.clock, ledger.policy)
    _race_once(monkeypatch, lambda: delete(TENANT, txn.id))

    with pytest.raises(ConflictError):
        await AsyncUpdateTransaction(ledger.stores, ledger.clock, ledger.policy)(TENANT, txn.id, amount=300_000)
    monkeypatch.undo()

    with pytest.raises(NotFoundError):
        await AsyncGetTransaction(ledger.stores)(TENANT, txn.id)
    assert await _balance(ledger, acc.id) == 1_000_000
    assert (await AsyncReconcileBalances(ledger.stores, ledger.clock)()).consistent


@pytest.mark.asyncio
async def test_concurrent_updates_keep_balance_and_journal_in_agreement(ledger):
    acc, txn = await _setup(ledger)
    update = AsyncUpdateTransaction(ledger.stores, ledger.clock, ledger.policy)

    results = await asyncio.gather(
        update(TENANT, txn.id, amount=300_000),
        update(TENANT, txn.id, note="lunch"),
        return_exceptions=True,
    )
    errors = [r for r in results if isinstance(r, BaseException)]
    assert all(isinstance(e, ConflictError) for e in errors)
    assert len(errors) < 2

    stored = await AsyncGetTransaction(ledger.stores)(TENANT, txn.id)
    assert await _balance(ledger, acc.id) == 1_000_000 - stored.amount
    assert (await AsyncReconcileBalances(ledger.stores, ledger.clock)()).consistent


@pytest.mark.asyncio
async def test_concurrent_update_and_delete(ledger):
    acc, txn = await _setup(ledger)

    results = await asyncio.gather(
        AsyncUpdateTransaction(ledger.stores, ledger.clock, ledger.policy)(TENANT, txn.id, amount=300_000),
        AsyncDeleteTransaction(ledger.stores, ledger.clock, ledger.policy)(TENANT, txn.id),
        return_exceptions=True,
    )
    errors = [r for r in results if isinstance(r, BaseException)]
    assert all(isinstance(e, ConflictError | NotFoundError) for e in errors)

    page = await AsyncListTransactions(ledger.stores, ledger.policy)(
        TENANT, TransactionFilterDTO(account_id=acc.id, kind="expense")
    )
    spent = sum(t.amount for t in page.items)
    assert await _balance(ledger, acc.id) == 1_000_000 - spent
    assert (await AsyncReconcileBalances(ledger.stores, ledger.clock)()).consistent


@pytest.mark.asyncio
async def test_concurrent_postings_on_one_account(ledger):
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "BCA", "bank", None, 1_000_000)
    create = AsyncCreateTransaction(ledger.stores, ledger.clock, ledger.policy)

    created = await asyncio.gather(
        *(create(TENANT, acc.id, "income", 1_000, date(2026, 3, 9)) for _ in range(10))
    )
    assert {t.status for t in created} == {"applied"}
    assert await _balance(ledger, acc.id) == 1_010_000

    report = await AsyncReconcileBalances(ledger.stores, ledger.clock)()
    assert report.consistent
    assert report.checked_accounts == 1
