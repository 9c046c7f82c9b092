from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import uuid4

from py_household.application.dto.models import (
    AccountDTO,
    TransactionDTO,
    TransferInfoDTO,
    TransferLinkDTO,
    TransferResultDTO,
)
from py_household.application.ports import Clock, LedgerPolicy, LedgerStores
from py_household.application.use_cases_async.adjustments import AdjustmentDispatcher, build_outbox_entry
from py_household.domain.errors import DomainRuleError, NotFoundError, ValidationError
from py_household.domain.goals import goal_label
from py_household.domain.money import ensure_amount
from py_household.domain.transactions import (
    AdjustmentIntent,
    TransactionKind,
    TransferRole,
    ensure_sufficient_funds,
)
from py_household.domain.transfers import (
    AccountTarget,
    GoalTarget,
    TransferTarget,
    ensure_not_self_transfer,
)
from py_household.infrastructure.logging.config import get_logger

__all__ = ["AsyncResolveTransferTarget", "AsyncCreateTransfer"]


@dataclass(slots=True)
class AsyncResolveTransferTarget:
    """Resolve a destination id once into ``AccountTarget | GoalTarget``.

    The goal store is checked first, then the account store. A destination
    owned by another tenant is a DomainRuleError; an unknown id is a
    NotFoundError.
    """

    stores: LedgerStores

    async def __call__(self, tenant_id: str, destination_id: str) -> TransferTarget:
        async with self.stores.goals() as uow:
            goal = await uow.goals.get(destination_id)
        if goal:
            if goal.tenant_id != tenant_id:
                raise DomainRuleError("Transfers between tenants are not allowed")
            return GoalTarget(goal_id=goal.id)
        async with self.stores.accounts() as uow:
            account = await uow.accounts.get(destination_id)
        if account:
            if account.tenant_id != tenant_id:
                raise DomainRuleError("Transfers between tenants are not allowed")
            return AccountTarget(account_id=account.id)
        raise NotFoundError(f"Transfer destination not found: {destination_id}")


@dataclass(slots=True)
class AsyncCreateTransfer:
    """Move money out of an account into another account or a savings goal.

    Contract:
      AsyncCreateTransfer(stores, clock, policy)(tenant_id, source_account_id, destination,
          amount, value_date, note=None, actor_id=None) -> TransferResultDTO

    ``destination`` is either a raw id (resolved via AsyncResolveTransferTarget)
    or an explicit ``AccountTarget``/``GoalTarget``.

    Steps:
      1. Validate amount bounds, resolve the destination, reject self-transfers
         and cross-tenant destinations (DomainRuleError).
      2. Source must exist for the tenant (NotFoundError); asset sources need
         sufficient funds (DomainRuleError); account destinations must share
         the source currency (DomainRuleError).
      3. Account case: outgoing + incoming legs, TransferLink and two outbox
         rows (-amount source, +amount destination) in one journal transaction.
      4. Goal case: outgoing leg tagged with ``goal_id`` plus two outbox rows:
         -amount on the account and +amount on the goal, the latter carrying the
         GoalContribution payload.
      5. Dispatch and return a symmetric receipt; for goals the incoming view is
         synthetic (``account_id`` is the goal id, empty ``id``).
    """

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)

    async def __call__(
        self,
        tenant_id: str,
        source_account_id: str,
        destination: str | TransferTarget,
        amount: int,
        value_date: date,
        *,
        note: str | None = None,
        actor_id: str | None = None,
    ) -> TransferResultDTO:
        if not tenant_id:
            raise ValidationError("tenant_id is required")
        if not source_account_id:
            raise ValidationError("source_account_id is required")
        if not destination:
            raise ValidationError("destination is required")
        if value_date is None:
            raise ValidationError("value_date is required")
        ensure_amount(amount, maximum=self.policy.max_transaction_amount)

        if isinstance(destination, str):
            target = await AsyncResolveTransferTarget(self.stores)(tenant_id, destination)
        else:
            target = destination
        ensure_not_self_transfer(source_account_id, target)

        async with self.stores.accounts() as uow:
            source = await uow.accounts.get(source_account_id, tenant_id=tenant_id)
            if not source:
                raise NotFoundError(f"Account not found: {source_account_id}")
            destination_account: AccountDTO | None = None
            if isinstance(target, AccountTarget):
                destination_account = await uow.accounts.get(target.account_id)
                if not destination_account:
                    raise NotFoundError(f"Account not found: {target.account_id}")
                if destination_account.tenant_id != tenant_id:
                    raise DomainRuleError("Transfers between tenants are not allowed")
                if destination_account.currency != source.currency:
                    raise DomainRuleError(
                        f"Currency mismatch: {source.currency} -> {destination_account.currency}; conversion is not supported"
                    )
        ensure_sufficient_funds(source.type, source.current_balance, amount)

        now = self.clock.now()
        outgoing = TransactionDTO(
            id=uuid4().hex,
            tenant_id=tenant_id,
            account_id=source.id,
            kind=str(TransactionKind.TRANSFER),
            amount=amount,
            currency=source.currency,
            value_date=value_date,
            note=note,
            role=str(TransferRole.OUTGOING),
            actor_id=actor_id,
            created_at=now,
            updated_at=now,
        )

        if isinstance(target, GoalTarget):
            return await self._to_goal(source, target.goal_id, outgoing, now)
        if destination_account is None:
            raise NotFoundError(f"Account not found: {target.account_id}")
        return await self._to_account(source, destination_account, outgoing, now)

    async def _to_account(
        self, source: AccountDTO, destination: AccountDTO, outgoing: TransactionDTO, now: datetime
    ) -> TransferResultDTO:
        incoming = TransactionDTO(
            id=uuid4().hex,
            tenant_id=outgoing.tenant_id,
            account_id=destination.id,
            kind=outgoing.kind,
            amount=outgoing.amount,
            currency=outgoing.currency,
            value_date=outgoing.value_date,
            note=outgoing.note,
            role=str(TransferRole.INCOMING),
            actor_id=outgoing.actor_id,
            created_at=now,
            updated_at=now,
        )
        link = TransferLinkDTO(
            id=uuid4().hex,
            tenant_id=outgoing.tenant_id,
            outgoing_transaction_id=outgoing.id,
            incoming_transaction_id=incoming.id,
            created_at=now,
        )
        async with self.stores.journal() as uow:
            await uow.transactions.add(outgoing)
            await uow.transactions.add(incoming)
            await uow.transfers.add(link)
            pending = await uow.outbox.add_many(
                [
                    build_outbox_entry(outgoing, delta=-outgoing.amount, intent=AdjustmentIntent.APPLY, revision=0, at=now),
                    build_outbox_entry(incoming, delta=incoming.amount, intent=AdjustmentIntent.APPLY, revision=0, at=now),
                ]
            )
        report = await AdjustmentDispatcher(self.stores, self.clock, self.policy).dispatch(pending)
        get_logger(__name__).info(
            "transfer_created",
            tenant_id=outgoing.tenant_id,
            transfer_id=link.id,
            source_account_id=source.id,
            destination_account_id=destination.id,
            amount=outgoing.amount,
            status=report.status,
        )
        for leg, own, other, other_leg in (
            (outgoing, source, destination, incoming),
            (incoming, destination, source, outgoing),
        ):
            leg.status = report.status
            leg.account_name = own.name
            leg.transfer = TransferInfoDTO(
                direction=leg.role or "outgoing",
                counterparty_kind="account",
                counterparty_id=other.id,
                counterparty_label=other.name,
                transfer_id=link.id,
                paired_transaction_id=other_leg.id,
            )
        return TransferResultDTO(
            outgoing=outgoing, incoming=incoming, target_kind="account", status=report.status, transfer_link_id=link.id
        )

    async def _to_goal(self, source: AccountDTO, goal_id: str, outgoing: TransactionDTO, now: datetime) -> TransferResultDTO:
        async with self.stores.goals() as uow:
            goal = await uow.goals.get(goal_id, tenant_id=outgoing.tenant_id)
        if not goal:
            raise NotFoundError(f"Goal not found: {goal_id}")
        outgoing.goal_id = goal.id
        contribution_id = uuid4().hex
        payload = {
            "contribution_id": contribution_id,
            "transaction_id": outgoing.id,
            "account_id": source.id,
            "contribution_date": outgoing.value_date.isoformat(),
            "note": outgoing.note,
        }
        async with self.stores.journal() as uow:
            await uow.transactions.add(outgoing)
            pending = await uow.outbox.add_many(
                [
                    build_outbox_entry(outgoing, delta=-outgoing.amount, intent=AdjustmentIntent.APPLY, revision=0, at=now),
                    build_outbox_entry(
                        outgoing,
                        delta=outgoing.amount,
                        intent=AdjustmentIntent.APPLY,
                        revision=0,
                        at=now,
                        target_kind="goal",
                        target_id=goal.id,
                        payload=payload,
                    ),
                ]
            )
        report = await AdjustmentDispatcher(self.stores, self.clock, self.policy).dispatch(pending)
        get_logger(__name__).info(
            "goal_contribution_created",
            tenant_id=outgoing.tenant_id,
            goal_id=goal.id,
            contribution_id=contribution_id,
            source_account_id=source.id,
            amount=outgoing.amount,
            status=report.status,
        )
        label = goal_label(goal.name)
        outgoing.status = report.status
        outgoing.account_name = source.name
        outgoing.transfer = TransferInfoDTO(
            direction="outgoing",
            counterparty_kind="goal",
            counterparty_id=goal.id,
            counterparty_label=label,
            transfer_id=contribution_id,
        )
        incoming = TransactionDTO(
            id="",
            tenant_id=outgoing.tenant_id,
            account_id=goal.id,
            kind=outgoing.kind,
            amount=outgoing.amount,
            currency=outgoing.currency,
            value_date=outgoing.value_date,
            note=outgoing.note,
            role=str(TransferRole.INCOMING),
            goal_id=goal.id,
            created_at=now,
            updated_at=now,
            status=report.status,
            account_name=label,
            transfer=TransferInfoDTO(
                direction="incoming",
                counterparty_kind="account",
                counterparty_id=source.id,
                counterparty_label=source.name,
                transfer_id=contribution_id,
                paired_transaction_id=outgoing.id,
            ),
        )
        return TransferResultDTO(
            outgoing=outgoing, incoming=incoming, target_kind="goal", status=report.status, contribution_id=contribution_id
        )
