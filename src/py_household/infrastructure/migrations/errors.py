"""Migration error types."""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class VersionMismatchError(MigrationError):
    """Schema version of a store does not match the expected version."""


__all__ = [
    "MigrationError",
    "VersionMismatchError",
]
