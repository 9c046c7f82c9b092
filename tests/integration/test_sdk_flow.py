from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, date, datetime
from pathlib import Path

import pytest
import pytest_asyncio

from py_household.infrastructure.config.settings import get_settings
from py_household.infrastructure.persistence.clock import FixedClock
from py_household.sdk import use_cases
from py_household.sdk.bootstrap import AppContext, init_app
from py_household.sdk.errors import Conflict, DomainViolation, NotFound, UserInputError


@pytest_asyncio.fixture
async def ctx(tmp_path: Path) -> AsyncIterator[AppContext]:
    get_settings.cache_clear()
    settings = get_settings("test", ignore_env_file=True).model_copy(
        update={
            "accounts_database_url": f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}",
            "journal_database_url": f"sqlite+aiosqlite:///{tmp_path / 'journal.db'}",
            "goals_database_url": f"sqlite+aiosqlite:///{tmp_path / 'goals.db'}",
        }
    )
    app = init_app(settings, clock=FixedClock(datetime(2026, 3, 10, 9, 0, tzinfo=UTC)))
    await app.create_schema()
    try:
        yield app
    finally:
        await app.dispose()
        get_settings.cache_clear()


@pytest.mark.asyncio
async def test_sdk_round_trip(ctx: AppContext):
    assert len(ctx.engines) == 3
    acc = await use_cases.create_account(ctx, "t1", "BCA", "bank", None, use_cases.parse_amount("1,000.00"))
    card = await use_cases.create_account(ctx, "t1", "Visa", "credit-card", None, use_cases.parse_amount("250"))

    txn = await use_cases.create_transaction(ctx, "t1", acc.id, "expense", 20_000, date(2026, 3, 9), note="Market")
    await use_cases.update_transaction(ctx, "t1", txn.id, amount=15_000)
    await use_cases.create_transfer(ctx, "t1", acc.id, card.id, 25_000, date(2026, 3, 9))

    assert (await use_cases.get_account(ctx, "t1", acc.id)).current_balance == 60_000
    assert (await use_cases.get_account(ctx, "t1", card.id)).current_balance == 0
    assert (await use_cases.list_accounts(ctx, "t1", account_type="credit-card")).total == 1
    assert (await use_cases.list_transactions(ctx, "t1")).total == 4

    assert await use_cases.adjust_balance(ctx, acc.id, 500, "sdk:1") == 60_500


@pytest.mark.asyncio
async def test_sdk_maps_errors(ctx: AppContext):
    acc = await use_cases.create_account(ctx, "t1", "Cash", "cash")
    with pytest.raises(UserInputError):
        await use_cases.create_account(ctx, "t1", "", "cash")
    with pytest.raises(NotFound):
        await use_cases.get_account(ctx, "t2", acc.id)
    with pytest.raises(DomainViolation):
        await use_cases.create_transaction(ctx, "t1", acc.id, "expense", 1, date(2026, 3, 9))
    await use_cases.adjust_balance(ctx, acc.id, 1, "k")
    with pytest.raises(Conflict):
        await use_cases.adjust_balance(ctx, acc.id, 2, "k")
    with pytest.raises(UserInputError):
        use_cases.parse_amount("abc")
