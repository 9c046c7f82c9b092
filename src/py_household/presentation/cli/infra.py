"""Shared CLI infrastructure: build an AppContext per invocation and run a coroutine.

Every command is a short-lived process, so in-memory SQLite URLs from the
test profile are swapped for one file per store in the working directory.
Schema creation (create_all) runs for SQLite only; PostgreSQL stores are
managed with Alembic.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

from py_household.infrastructure.config.settings import BaseAppSettings, get_settings
from py_household.infrastructure.logging.config import configure_logging
from py_household.sdk.bootstrap import AppContext, init_app

T = TypeVar("T")

_MEMORY_URL = "sqlite+aiosqlite:///:memory:"
_DEFAULT_FILES = {
    "accounts_database_url": "sqlite+aiosqlite:///./household_accounts.db",
    "journal_database_url": "sqlite+aiosqlite:///./household_journal.db",
    "goals_database_url": "sqlite+aiosqlite:///./household_goals.db",
}


def _cli_settings() -> BaseAppSettings:
    settings = get_settings()
    overrides = {
        name: url for name, url in _DEFAULT_FILES.items() if getattr(settings, name) in ("", _MEMORY_URL)
    }
    return settings.model_copy(update=overrides) if overrides else settings


def run_with_context(fn: Callable[[AppContext], Awaitable[T]], settings: BaseAppSettings | None = None) -> T:
    """Run ``fn(ctx)`` on a fresh AppContext and dispose the engines afterwards.

    Domain and validation errors propagate to ``main.cli`` for exit code mapping.
    """
    settings = settings or _cli_settings()
    configure_logging(sys.stderr)

    async def _driver() -> T:
        ctx = init_app(settings)
        try:
            if all(url.startswith("sqlite") for url in _store_urls(settings)):
                await ctx.create_schema()
            return await fn(ctx)
        finally:
            await ctx.dispose()

    return asyncio.run(_driver())


def _store_urls(settings: BaseAppSettings) -> list[str]:
    return [settings.accounts_database_url, settings.journal_database_url, settings.goals_database_url]
