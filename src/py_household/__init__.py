"""Household ledger: multi-tenant accounts, journal, transfers and savings goals.

Balances are stored aggregates kept consistent with an append-and-reverse
journal through idempotent, outbox-driven adjustments and a reconciler.
"""

from __future__ import annotations

__version__ = "0.1.0"
__version_schema__ = "0001"

__version_schema__: str
"""Database schema version shared by the three store migration branches.

Each store (accounts, journal, goals) has its own Alembic branch; all of them
must be at ``<store>_<version>`` (e.g. ``journal_0001``) for the application to run.
"""

__all__ = [
    "__version__",
    "__version_schema__",
]
