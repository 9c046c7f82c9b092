from __future__ import annotations

import csv
import io
import json
from datetime import date

import pytest
import pytest_asyncio

from py_household.application.dto.models import SplitDTO, TransactionFilterDTO
from py_household.application.use_cases_async.accounts import AsyncCreateAccount
from py_household.application.use_cases_async.export import CSV_HEADERS, AsyncExportTransactions
from py_household.application.use_cases_async.transactions import AsyncCreateTransaction
from py_household.domain.errors import NotFoundError, ValidationError

TENANT = "tenant-a"


@pytest_asyncio.fixture
async def seeded(ledger):
    acc = await AsyncCreateAccount(ledger.stores, ledger.clock, ledger.policy)(TENANT, "BCA", "bank", None, 1_000_000)
    create = AsyncCreateTransaction(ledger.stores, ledger.clock, ledger.policy)
    await create(TENANT, acc.id, "expense", 12_550, date(2026, 3, 1), category_id="food", note="Lunch, with team")
    await create(
        TENANT, acc.id, "expense", 30_000, date(2026, 3, 2), splits=[SplitDTO("fuel", 20_000), SplitDTO("toll", 10_000)]
    )
    return acc


@pytest.mark.asyncio
async def test_csv_export(ledger, seeded):
    result = await AsyncExportTransactions(ledger.stores, ledger.clock, ledger.policy)(TENANT)

    assert result.filename == "transactions_2026-03-10.csv"
    assert result.content_type == "text/csv"
    assert result.rows == 3
    rows = list(csv.reader(io.StringIO(result.content)))
    assert tuple(rows[0]) == CSV_HEADERS
    assert rows[1] == ["2026-03-10", "income", "BCA", "", "10000.00", "IDR", "Opening balance"]
    assert rows[2] == ["2026-03-02", "expense", "BCA", "fuel;toll", "300.00", "IDR", ""]
    assert rows[3] == ["2026-03-01", "expense", "BCA", "food", "125.50", "IDR", "Lunch, with team"]


@pytest.mark.asyncio
async def test_json_statement_for_one_account(ledger, seeded):
    result = await AsyncExportTransactions(ledger.stores, ledger.clock, ledger.policy)(
        TENANT, TransactionFilterDTO(account_id=seeded.id, kind="expense"), "JSON"
    )

    assert result.filename == f"statement_{seeded.id}_2026-03-10.json"
    data = json.loads(result.content)
    assert [(d["date"], d["amount"], d["category"], d["status"]) for d in data] == [
        ("2026-03-02", "300.00", "fuel;toll", "applied"),
        ("2026-03-01", "125.50", "food", "applied"),
    ]


@pytest.mark.asyncio
async def test_export_reads_every_page(ledger, seeded):
    export = AsyncExportTransactions(ledger.stores, ledger.clock, ledger.policy)
    result = await export(TENANT, TransactionFilterDTO(limit=1))
    assert result.rows == 3


@pytest.mark.asyncio
async def test_export_errors(ledger, seeded):
    export = AsyncExportTransactions(ledger.stores, ledger.clock, ledger.policy)
    with pytest.raises(ValidationError):
        await export(TENANT, None, "xlsx")
    with pytest.raises(NotFoundError):
        await export("tenant-b", TransactionFilterDTO(account_id=seeded.id))
