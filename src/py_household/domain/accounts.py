"""Account value object, account types and balance presentation rules.

Asset accounts (cash, bank, e-wallet, generic-asset) hold non-negative
balances in normal operation. Debt accounts (credit-card, loan) hold balances
at or below zero; a more negative balance means more debt owed.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from .errors import ValidationError
from .money import normalize_currency

__all__ = [
    "AccountType",
    "BalanceStatus",
    "DEBT_TYPES",
    "Account",
    "is_debt",
    "parse_account_type",
    "signed_opening_balance",
    "balance_status",
]


class AccountType(StrEnum):
    CASH = "cash"
    BANK = "bank"
    E_WALLET = "e-wallet"
    CREDIT_CARD = "credit-card"
    LOAN = "loan"
    GENERIC_ASSET = "generic-asset"


class BalanceStatus(StrEnum):
    EMPTY = "empty"
    LOW = "low"
    SUFFICIENT = "sufficient"


DEBT_TYPES: frozenset[AccountType] = frozenset({AccountType.CREDIT_CARD, AccountType.LOAN})


def parse_account_type(value: str | AccountType) -> AccountType:
    """Return the ``AccountType`` for ``value`` (ValidationError if unknown)."""
    try:
        return AccountType((value or "").strip().lower()) if isinstance(value, str) else AccountType(value)
    except ValueError as exc:
        allowed = ", ".join(t.value for t in AccountType)
        raise ValidationError(f"Unknown account type {value!r}; expected one of: {allowed}") from exc


def is_debt(account_type: str | AccountType) -> bool:
    return parse_account_type(account_type) in DEBT_TYPES


def signed_opening_balance(account_type: str | AccountType, magnitude: int) -> int:
    """Return the stored opening balance for a user-entered magnitude.

    Debt accounts store the amount owed as a negative balance.
    """
    return -magnitude if is_debt(account_type) else magnitude


def balance_status(account_type: str | AccountType, balance: int, low_threshold: int) -> BalanceStatus:
    """Derive a presentational status from a balance.

    Asset accounts: empty at or below zero, low under ``low_threshold``.
    Debt accounts: empty when nothing is owed, low when the outstanding debt
    is under ``low_threshold``, sufficient otherwise.
    """
    value = -balance if is_debt(account_type) else balance
    if value <= 0:
        return BalanceStatus.EMPTY
    if value < low_threshold:
        return BalanceStatus.LOW
    return BalanceStatus.SUFFICIENT


@dataclass(slots=True)
class Account:
    """Validated account creation input.

    Normalizes tenant/name whitespace, account type and currency code and
    checks that the opening balance magnitude is a non-negative integer.
    """

    tenant_id: str
    name: str
    type: AccountType
    currency: str
    opening_magnitude: int = 0

    def __post_init__(self) -> None:
        self.tenant_id = (self.tenant_id or "").strip()
        if not self.tenant_id:
            raise ValidationError("tenant_id is required")
        self.name = (self.name or "").strip()
        if not self.name:
            raise ValidationError("Account name is required")
        if len(self.name) > 255:
            raise ValidationError("Account name is too long (max 255)")
        self.type = parse_account_type(self.type)
        self.currency = normalize_currency(self.currency)
        if isinstance(self.opening_magnitude, bool) or not isinstance(self.opening_magnitude, int):
            raise ValidationError("opening_balance must be an integer number of minor units")
        if self.opening_magnitude < 0:
            raise ValidationError("opening_balance must not be negative; debt accounts are negated automatically")

    @property
    def is_debt(self) -> bool:
        return self.type in DEBT_TYPES

    @property
    def opening_balance(self) -> int:
        return signed_opening_balance(self.type, self.opening_magnitude)
