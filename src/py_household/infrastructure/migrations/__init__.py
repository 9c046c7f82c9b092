"""Embedded Alembic migrations, one version branch per ledger store."""

from .errors import MigrationError, VersionMismatchError
from .runner import STORES, MigrationRunner, sync_url

__all__ = [
    "STORES",
    "MigrationError",
    "MigrationRunner",
    "VersionMismatchError",
    "sync_url",
]
