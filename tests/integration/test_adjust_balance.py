from __future__ import annotations

import pytest

from py_household.application.use_cases_async.accounts import AsyncCreateAccount, AsyncDeleteAccount, AsyncGetAccount
from py_household.application.use_cases_async.adjustments import AsyncAdjustBalance
from py_household.domain.errors import ConcurrentWriteError, ConflictError, NotFoundError, ValidationError
from py_household.infrastructure.persistence.sqlalchemy.repositories_async import AsyncSqlAlchemyAccountRepository

TENANT = "tenant-a"


async def _account(ledger, opening: int = 10_000):
    return await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "Cash", "cash", None, opening)


@pytest.mark.asyncio
async def test_adjust_applies_delta_once_per_key(ledger):
    acc = await _account(ledger)
    adjust = AsyncAdjustBalance(ledger.stores, ledger.clock)

    assert await adjust(acc.id, 2_500, "manual:1") == 12_500
    # Replaying the same key returns the recorded balance without re-applying
    assert await adjust(acc.id, 2_500, "manual:1") == 12_500
    assert await adjust(acc.id, -500, "manual:2") == 12_000

    fresh = await AsyncGetAccount(ledger.stores, ledger.policy)(TENANT, acc.id)
    assert fresh.current_balance == 12_000


@pytest.mark.asyncio
async def test_replay_returns_balance_recorded_at_first_application(ledger):
    acc = await _account(ledger)
    adjust = AsyncAdjustBalance(ledger.stores, ledger.clock)
    await adjust(acc.id, 1_000, "k1")
    await adjust(acc.id, 1_000, "k2")
    assert await adjust(acc.id, 1_000, "k1") == 11_000


@pytest.mark.asyncio
async def test_reused_key_with_different_payload_conflicts(ledger):
    acc = await _account(ledger)
    other = await _account(ledger)
    adjust = AsyncAdjustBalance(ledger.stores, ledger.clock)
    await adjust(acc.id, 100, "k")

    with pytest.raises(ConflictError):
        await adjust(acc.id, 200, "k")
    with pytest.raises(ConflictError):
        await adjust(other.id, 100, "k")

    assert (await AsyncGetAccount(ledger.stores, ledger.policy)(TENANT, acc.id)).current_balance == 10_100
    assert (await AsyncGetAccount(ledger.stores, ledger.policy)(TENANT, other.id)).current_balance == 10_000


@pytest.mark.asyncio
async def test_missing_or_deleted_account_is_not_found(ledger):
    adjust = AsyncAdjustBalance(ledger.stores, ledger.clock)
    with pytest.raises(NotFoundError):
        await adjust("missing", 100, "k")

    acc = await _account(ledger)
    await AsyncDeleteAccount(ledger.stores, ledger.clock)(TENANT, acc.id)
    with pytest.raises(NotFoundError):
        await adjust(acc.id, 100, "k2")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "account_id, delta, key",
    [("", 1, "k"), ("acc", 1, ""), ("acc", 1, "   "), ("acc", True, "k"), ("acc", "5", "k")],
)
async def test_invalid_input_is_rejected(ledger, account_id, delta, key):
    with pytest.raises(ValidationError):
        await AsyncAdjustBalance(ledger.stores, ledger.clock)(account_id, delta, key)


@pytest.mark.asyncio
async def test_concurrent_duplicate_is_retried_once(ledger, monkeypatch: pytest.MonkeyPatch):
    acc = await _account(ledger)
    original = AsyncSqlAlchemyAccountRepository.adjust_balance
    calls: list[str] = []

    async def racing(self, account_id, delta, idempotency_key, at):
        calls.append(idempotency_key)
        if len(calls) == 1:
            raise ConcurrentWriteError("lost the race")
        return await original(self, account_id, delta, idempotency_key, at)

    monkeypatch.setattr(AsyncSqlAlchemyAccountRepository, "adjust_balance", racing)
    assert await AsyncAdjustBalance(ledger.stores, ledger.clock)(acc.id, 700, "race") == 10_700
    assert calls == ["race", "race"]
