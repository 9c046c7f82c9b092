"""SDK Unit of Work factory helpers.

Builds one ``AsyncEngine`` per ledger store from settings and returns a
``LedgerStores`` bundle whose factories yield a fresh single-use UoW on each
call, all sharing their store's engine (and pool).
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from py_household.application.ports import LedgerStores
from py_household.infrastructure.config.settings import BaseAppSettings
from py_household.infrastructure.persistence.sqlalchemy.async_engine import get_async_engine
from py_household.infrastructure.persistence.sqlalchemy.uow import (
    AccountStoreUnitOfWork,
    GoalStoreUnitOfWork,
    JournalUnitOfWork,
)

__all__ = ["build_ledger_stores", "stores_from_engines"]


def stores_from_engines(accounts: AsyncEngine, journal: AsyncEngine, goals: AsyncEngine) -> LedgerStores:
    """Wrap existing engines (tests, custom pools) into UoW factories."""
    return LedgerStores(
        accounts=lambda: AccountStoreUnitOfWork(engine=accounts),
        journal=lambda: JournalUnitOfWork(engine=journal),
        goals=lambda: GoalStoreUnitOfWork(engine=goals),
    )


def build_ledger_stores(settings: BaseAppSettings, *, echo: bool = False) -> tuple[LedgerStores, list[AsyncEngine]]:
    """Create the three store engines and the matching UoW factories.

    Returns the stores and the engines (callers dispose them on shutdown).

    Raises:
        ValueError: if any store URL is empty.
    """
    urls = {
        "ACCOUNTS_DATABASE_URL": settings.accounts_database_url,
        "JOURNAL_DATABASE_URL": settings.journal_database_url,
        "GOALS_DATABASE_URL": settings.goals_database_url,
    }
    missing = [name for name, url in urls.items() if not url or not url.strip()]
    if missing:
        raise ValueError(f"Database URL required: {', '.join(missing)}")
    engines = [get_async_engine(url, echo=echo) for url in urls.values()]
    return stores_from_engines(*engines), engines
