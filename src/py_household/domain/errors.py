"""Domain error taxonomy.

Hierarchy:
- DomainError: base for every error raised by the ledger core.
  - ValidationError: malformed or missing input, split-sum mismatch.
  - DomainRuleError: business rule violation (insufficient funds, income on a
    debt account, self-transfer, immutable entries).
  - NotFoundError: unknown or soft-deleted account/transaction/goal.
  - ConflictError: idempotency key replayed with a different payload, or an
    entry changed by a concurrent writer since it was read.
  - ConcurrentWriteError: the same idempotency key was committed by a
    concurrent writer; safe to retry (the retry takes the replay path).
  - LedgerDivergence: reconciler-detected inconsistency between a stored
    balance and the journal. Operational alert, never raised by request-time
    operations.
"""
from __future__ import annotations

__all__ = [
    "DomainError",
    "ValidationError",
    "DomainRuleError",
    "NotFoundError",
    "ConflictError",
    "ConcurrentWriteError",
    "LedgerDivergence",
]


class DomainError(Exception):
    """Base class for ledger core errors."""


class ValidationError(DomainError):
    """Input is malformed, incomplete or internally inconsistent."""


class DomainRuleError(DomainError):
    """Input is well-formed but violates a business rule."""


class NotFoundError(DomainError):
    """Referenced entity does not exist for the tenant (or is soft-deleted)."""


class ConflictError(DomainError):
    """Idempotency key already used with a different payload, or a stale revision was written."""


class ConcurrentWriteError(DomainError):
    """Another writer committed the same idempotency key first; retrying replays it."""


class LedgerDivergence(DomainError):
    """Stored aggregate disagrees with the value recomputed from the journal.

    Attributes:
        subject_kind: "account" or "goal".
        subject_id: identifier of the diverging entity.
        expected: value recomputed from the source of truth (minor units).
        actual: value currently stored (minor units).
    """

    def __init__(self, subject_kind: str, subject_id: str, expected: int, actual: int) -> None:
        self.subject_kind = subject_kind
        self.subject_id = subject_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{subject_kind} {subject_id} diverged: expected={expected} actual={actual} difference={self.difference}"
        )

    @property
    def difference(self) -> int:
        """Correction that would bring the stored value to the expected one."""
        return self.expected - self.actual
