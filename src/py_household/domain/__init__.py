from .accounts import AccountType, BalanceStatus, is_debt
from .errors import (
    ConflictError,
    DomainError,
    DomainRuleError,
    LedgerDivergence,
    NotFoundError,
    ValidationError,
)
from .goals import GoalType
from .transactions import AdjustmentIntent, Split, TransactionKind, TransferRole, signed_effect
from .transfers import AccountTarget, GoalTarget, TransferTarget

__all__ = [
    "AccountType",
    "BalanceStatus",
    "is_debt",
    "DomainError",
    "ValidationError",
    "DomainRuleError",
    "NotFoundError",
    "ConflictError",
    "LedgerDivergence",
    "GoalType",
    "AdjustmentIntent",
    "Split",
    "TransactionKind",
    "TransferRole",
    "signed_effect",
    "AccountTarget",
    "GoalTarget",
    "TransferTarget",
]
