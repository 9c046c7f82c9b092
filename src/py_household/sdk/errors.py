"""SDK public error classes and exception mapping.

Consumers of the SDK (CLI, HTTP adapters, bots) only need to handle the
public exceptions below; ``map_exception`` converts internal domain errors
into them without losing the original message.

Public exceptions:
- UserInputError: invalid or missing input (ValidationError)
- DomainViolation: business rule violations (DomainRuleError and other DomainError)
- NotFound: referenced account/transaction/goal does not exist (NotFoundError)
- Conflict: idempotency key reused with a different payload (ConflictError)
- UnexpectedError: anything else
"""
from __future__ import annotations

from py_household.domain.errors import (
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "UserInputError",
    "DomainViolation",
    "NotFound",
    "Conflict",
    "UnexpectedError",
    "map_exception",
]


class UserInputError(Exception):
    """Raised when user input is invalid or cannot be parsed.

    Keep messages concise; callers may present them directly to users.
    """


class DomainViolation(Exception):
    """Raised when business rules are violated."""


class NotFound(Exception):
    """Raised when a referenced resource does not exist."""


class Conflict(Exception):
    """Raised when an idempotent request conflicts with a recorded one."""


class UnexpectedError(Exception):
    """Raised when an unexpected error occurs inside the SDK/use cases."""


def map_exception(exc: Exception) -> Exception:
    """Map internal exceptions to public SDK exceptions, keeping the message.

    Order matters: the specific domain subclasses are checked before DomainError.
    ``ValueError`` is treated as user input (parsing helpers raise it).
    """
    msg = str(exc)
    if isinstance(exc, ValidationError):
        return UserInputError(msg)
    if isinstance(exc, NotFoundError):
        return NotFound(msg)
    if isinstance(exc, ConflictError):
        return Conflict(msg)
    if isinstance(exc, DomainError):
        return DomainViolation(msg)
    if isinstance(exc, ValueError):
        return UserInputError(msg)
    return UnexpectedError(msg)
