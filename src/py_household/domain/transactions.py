"""Journal entry rules: kinds, roles, signed effects, splits and posting guards.

Stored amounts are always positive. The direction of an entry's effect on its
account is derived here and nowhere else:

- income, incoming transfer  -> +amount
- expense, outgoing transfer -> -amount (debt accounts included)
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from .accounts import AccountType, is_debt
from .errors import DomainRuleError, ValidationError
from .money import ensure_amount

__all__ = [
    "TransactionKind",
    "TransferRole",
    "AdjustmentIntent",
    "Split",
    "parse_kind",
    "signed_effect",
    "validate_splits",
    "ensure_kind_allowed",
    "ensure_sufficient_funds",
    "adjustment_key",
]


class TransactionKind(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransferRole(StrEnum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"


class AdjustmentIntent(StrEnum):
    APPLY = "apply"
    REVERSE = "reverse"


@dataclass(slots=True, frozen=True)
class Split:
    """One category share of a transaction amount."""

    category_id: str
    amount: int


def parse_kind(value: str | TransactionKind) -> TransactionKind:
    try:
        return TransactionKind((value or "").strip().lower())
    except ValueError as exc:
        raise ValidationError(f"Unknown transaction kind: {value!r}") from exc


def signed_effect(kind: str | TransactionKind, amount: int, role: str | TransferRole | None = None) -> int:
    """Return the signed balance effect of an entry on its own account."""
    k = parse_kind(kind)
    if k is TransactionKind.INCOME:
        return amount
    if k is TransactionKind.EXPENSE:
        return -amount
    if role is None:
        raise ValidationError("Transfer entries require a role")
    return amount if TransferRole(role) is TransferRole.INCOMING else -amount


def validate_splits(amount: int, splits: Iterable[Split] | None) -> list[Split]:
    """Check the split-sum law and return the normalized split list.

    An empty or missing split list is valid. Otherwise each split needs a
    category and a positive amount, and the amounts must add up exactly to
    ``amount``.
    """
    result: list[Split] = []
    for s in splits or ():
        category = (s.category_id or "").strip()
        if not category:
            raise ValidationError("Split category_id is required")
        ensure_amount(s.amount, field="split amount")
        result.append(Split(category_id=category, amount=s.amount))
    if result:
        total = sum(s.amount for s in result)
        if total != amount:
            raise ValidationError(f"Split amounts sum to {total}, expected {amount}")
    return result


def ensure_kind_allowed(account_type: str | AccountType, kind: str | TransactionKind) -> None:
    """Reject kinds that are not valid for a direct posting on the account."""
    k = parse_kind(kind)
    if k is TransactionKind.TRANSFER:
        raise ValidationError("Transfers must be created through the transfer operation")
    if k is TransactionKind.INCOME and is_debt(account_type):
        raise DomainRuleError(
            "Income cannot be posted to a credit-card or loan account; record a transfer into it instead"
        )


def ensure_sufficient_funds(account_type: str | AccountType, balance: int, debit: int) -> None:
    """Asset accounts cannot be debited below zero; debt accounts are exempt."""
    if is_debt(account_type):
        return
    if debit > balance:
        raise DomainRuleError(f"Insufficient funds: balance={balance} requested={debit}")


def adjustment_key(transaction_id: str, revision: int, intent: str | AdjustmentIntent, target_kind: str = "account") -> str:
    """Deterministic idempotency key for one balance effect of a journal entry."""
    key = f"{transaction_id}@{revision}:{AdjustmentIntent(intent).value}"
    return key if target_kind == "account" else f"{key}:{target_kind}"
