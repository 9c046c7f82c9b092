"""Read-side enrichment shared by transaction queries, history and export.

Adds to each ``TransactionDTO``: the owning account name, the settlement
status derived from its outbox rows, and for transfer legs the pairing
details (direction, counterparty, transfer id). Goal counterparties are
labelled with ``GOAL_LABEL_PREFIX``.
"""

from __future__ import annotations

from py_household.application.dto.models import AccountDTO, TransactionDTO, TransferInfoDTO
from py_household.application.ports import LedgerStores
from py_household.domain.accounts import balance_status
from py_household.domain.goals import goal_label

__all__ = ["enrich_transactions", "with_balance_status"]


def with_balance_status(account: AccountDTO, low_threshold: int) -> AccountDTO:
    account.balance_status = str(balance_status(account.type, account.current_balance, low_threshold))
    return account


async def enrich_transactions(stores: LedgerStores, items: list[TransactionDTO]) -> list[TransactionDTO]:
    if not items:
        return items
    ids = [t.id for t in items]
    async with stores.journal() as uow:
        links = await uow.transfers.for_transactions(ids)
        statuses = await uow.outbox.statuses_for_transactions(ids)
        paired = await uow.transactions.get_many(link.paired_with(tid) for tid, link in links.items())

    account_ids = {t.account_id for t in items} | {p.account_id for p in paired.values()}
    async with stores.accounts() as uow:
        accounts = await uow.accounts.get_many(account_ids)

    goal_tx_ids = [t.id for t in items if t.goal_id]
    goals = {}
    contributions = {}
    if goal_tx_ids:
        async with stores.goals() as uow:
            goals = await uow.goals.get_many(t.goal_id for t in items if t.goal_id)
            contributions = await uow.contributions.for_transactions(goal_tx_ids)

    for t in items:
        account = accounts.get(t.account_id)
        t.account_name = account.name if account else None
        t.status = statuses.get(t.id, "applied")
        if t.kind != "transfer":
            continue
        if t.goal_id:
            goal = goals.get(t.goal_id)
            contribution = contributions.get(t.id)
            t.transfer = TransferInfoDTO(
                direction="outgoing",
                counterparty_kind="goal",
                counterparty_id=t.goal_id,
                counterparty_label=goal_label(goal.name) if goal else None,
                transfer_id=contribution.id if contribution else None,
            )
            continue
        link = links.get(t.id)
        if link is None:
            continue
        other = paired.get(link.paired_with(t.id))
        counterparty = accounts.get(other.account_id) if other else None
        t.transfer = TransferInfoDTO(
            direction=t.role or "outgoing",
            counterparty_kind="account",
            counterparty_id=other.account_id if other else "",
            counterparty_label=counterparty.name if counterparty else None,
            transfer_id=link.id,
            paired_transaction_id=link.paired_with(t.id),
        )
    return items
