from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, field, replace

from py_household.application.dto.models import ExportResultDTO, TransactionDTO, TransactionFilterDTO
from py_household.application.ports import Clock, LedgerPolicy, LedgerStores
from py_household.application.use_cases_async.enrichment import enrich_transactions
from py_household.application.use_cases_async.transactions import normalize_filter
from py_household.domain.errors import NotFoundError, ValidationError
from py_household.domain.money import format_major

__all__ = ["AsyncExportTransactions", "CSV_HEADERS"]

CSV_HEADERS = ("Date", "Kind", "Account", "Category", "Amount", "Currency", "Note")
_BATCH = 500


def _category(t: TransactionDTO) -> str:
    if t.category_id:
        return t.category_id
    return ";".join(s.category_id for s in t.splits)


@dataclass(slots=True)
class AsyncExportTransactions:
    """Export the filtered journal (all pages) as CSV or JSON. Read-only.

    - CSV columns: Date, Kind, Account, Category, Amount, Currency, Note;
      Amount is in major units.
    - Filename ``transactions_<YYYY-MM-DD>.<ext>``, or
      ``statement_<account_id>_<YYYY-MM-DD>.<ext>`` when an account filter is given.
    """

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self, tenant_id: str, filters: TransactionFilterDTO | None = None, fmt: str = "csv"
    ) -> ExportResultDTO:
        fmt = (fmt or "csv").lower()
        if fmt not in {"csv", "json"}:
            raise ValidationError("format must be csv or json")
        flt, _ = normalize_filter(replace(filters) if filters else None, self.policy)
        if flt.account_id:
            async with self.stores.accounts() as uow:
                if not await uow.accounts.get(flt.account_id, tenant_id=tenant_id):
                    raise NotFoundError(f"Account not found: {flt.account_id}")

        rows: list[TransactionDTO] = []
        flt.offset = 0
        while True:
            async with self.stores.journal() as uow:
                batch, total = await uow.transactions.list(tenant_id, flt, limit=_BATCH)
            rows.extend(batch)
            flt.offset += len(batch)
            if not batch or flt.offset >= total:
                break
        rows = await enrich_transactions(self.stores, rows)

        stamp = self.clock.now().date().isoformat()
        stem = f"statement_{flt.account_id}_{stamp}" if flt.account_id else f"transactions_{stamp}"
        scale = self.policy.money_scale
        if fmt == "json":
            data = [
                {
                    "id": t.id,
                    "date": t.value_date.isoformat(),
                    "kind": t.kind,
                    "role": t.role,
                    "account": t.account_name,
                    "category": _category(t) or None,
                    "amount": format_major(t.amount, scale),
                    "currency": t.currency,
                    "note": t.note,
                    "status": t.status,
                }
                for t in rows
            ]
            return ExportResultDTO(
                filename=f"{stem}.json",
                content_type="application/json",
                content=json.dumps(data, ensure_ascii=False, indent=2),
                rows=len(rows),
            )

        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for t in rows:
            writer.writerow(
                [
                    t.value_date.isoformat(),
                    t.kind,
                    t.account_name or "",
                    _category(t),
                    format_major(t.amount, scale),
                    t.currency,
                    t.note or "",
                ]
            )
        return ExportResultDTO(filename=f"{stem}.csv", content_type="text/csv", content=buf.getvalue(), rows=len(rows))
