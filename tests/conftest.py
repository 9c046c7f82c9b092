from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from py_household.application.ports import LedgerPolicy, LedgerStores
from py_household.infrastructure.persistence.clock import FixedClock
from py_household.infrastructure.persistence.sqlalchemy.async_engine import get_async_engine
from py_household.infrastructure.persistence.sqlalchemy.models import STORE_BASES
from py_household.sdk.uow import stores_from_engines

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


@dataclass
class Ledger:
    """Everything an integration test needs: store factories, clock, policy and raw engines."""

    stores: LedgerStores
    clock: FixedClock
    policy: LedgerPolicy
    engines: dict[str, AsyncEngine]


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 10, 9, 0, tzinfo=UTC))


@pytest.fixture()
def policy() -> LedgerPolicy:
    return LedgerPolicy(low_balance_threshold=100_000, default_currency="IDR", page_size=50)


@pytest_asyncio.fixture
async def ledger(tmp_path: Path, clock: FixedClock, policy: LedgerPolicy) -> AsyncIterator[Ledger]:
    """Three file-based SQLite stores (accounts, journal, goals) with their schema created.

    Separate files mirror the production layout where every store is its own
    database and no transaction spans two stores.
    """
    engines = {name: get_async_engine(f"sqlite+aiosqlite:///{tmp_path / f'{name}.db'}") for name in STORE_BASES}
    for name, base in STORE_BASES.items():
        async with engines[name].begin() as conn:
            await conn.run_sync(base.metadata.create_all)
    try:
        yield Ledger(
            stores=stores_from_engines(engines["accounts"], engines["journal"], engines["goals"]),
            clock=clock,
            policy=policy,
            engines=engines,
        )
    finally:
        for engine in engines.values():
            await engine.dispose()
