"""Programmatic API for the ledger store migrations.

Each store lives in its own database and keeps its own ``alembic_version``
table; the runner points Alembic at the store's version directory and passes
the store name to ``env.py`` so the matching metadata is used.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine

from py_household.infrastructure.logging.config import get_logger

from .errors import MigrationError, VersionMismatchError

STORES = ("accounts", "journal", "goals")

_MIGRATIONS_DIR = Path(__file__).parent


def sync_url(async_url: str) -> str:
    """Map an async driver URL to the synchronous driver Alembic runs with."""
    return async_url.replace("sqlite+aiosqlite", "sqlite").replace("postgresql+asyncpg", "postgresql+psycopg")


class MigrationRunner:
    """Apply, roll back and inspect the migrations of one ledger store.

    Examples:
        runner = MigrationRunner(engine, store="journal")
        await runner.upgrade_to_head()
    """

    def __init__(self, engine: AsyncEngine, *, store: str):
        if store not in STORES:
            raise MigrationError(f"Unknown store {store!r}; expected one of {', '.join(STORES)}")
        self.engine = engine
        self.store = store
        self._config = self._load_alembic_config()

    def _load_alembic_config(self) -> Config:
        config = Config()
        config.set_main_option("script_location", str(_MIGRATIONS_DIR))
        config.set_main_option("version_locations", str(_MIGRATIONS_DIR / "versions" / self.store))
        config.set_main_option("store", self.store)
        config.set_main_option("sqlalchemy.url", sync_url(self.engine.url.render_as_string(hide_password=False)))
        return config

    async def upgrade_to_head(self) -> None:
        await self._run_in_sync(lambda: command.upgrade(self._config, "head"))
        get_logger(__name__).info("migrations_upgraded", store=self.store, target="head")

    async def upgrade_to_version(self, version: str) -> None:
        await self._run_in_sync(lambda: command.upgrade(self._config, version))
        get_logger(__name__).info("migrations_upgraded", store=self.store, target=version)

    async def downgrade(self, *, steps: int = 1, target: str | None = None) -> None:
        """Downgrade ``steps`` revisions, or to ``target`` ("base" for an empty schema)."""
        target = target or f"-{steps}"
        await self._run_in_sync(lambda: command.downgrade(self._config, target))
        get_logger(__name__).info("migrations_downgraded", store=self.store, target=target)

    async def get_current_version(self) -> str | None:
        """Current revision of the store, or None when it was never migrated."""
        async with self.engine.connect() as conn:
            try:
                result = await conn.execute(text("SELECT version_num FROM alembic_version LIMIT 1"))
            except DBAPIError:
                return None
            row = result.first()
            return row[0] if row else None

    async def get_pending_migrations(self) -> list[str]:
        script = ScriptDirectory.from_config(self._config)
        current = await self.get_current_version()
        if current is None:
            return [rev.revision for rev in script.walk_revisions()]
        return [rev.revision for rev in script.iterate_revisions("head", current) if rev.revision != current]

    async def validate_schema_version(self, expected: str) -> None:
        current = await self.get_current_version()
        if current != expected:
            raise VersionMismatchError(f"Schema version mismatch for {self.store}: current={current}, expected={expected}")

    async def _run_in_sync(self, func: Callable[[], None]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, func)


__all__ = ["STORES", "MigrationRunner", "sync_url"]
