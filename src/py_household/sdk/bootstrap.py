"""SDK bootstrap: one call to get settings, store factories, clock and logger.

``init_app`` loads (or accepts) settings, builds one engine per ledger store
and returns an ``AppContext``. No connection is opened until a Unit of Work
is entered.
"""
from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from py_household.application.ports import Clock, LedgerPolicy, LedgerStores
from py_household.infrastructure.config.settings import BaseAppSettings, get_settings
from py_household.infrastructure.logging.config import configure_logging, get_logger
from py_household.infrastructure.persistence.clock import SystemClock
from py_household.infrastructure.persistence.sqlalchemy.models import STORE_BASES
from py_household.sdk.uow import build_ledger_stores

__all__ = ["AppContext", "init_app"]


@dataclass(slots=True)
class AppContext:
    """Application bootstrap context for SDK users.

    Attributes:
        stores: UoW factories for the account, journal and goal stores.
        clock: UTC clock with ``now()``.
        policy: posting limits and worker tuning derived from settings.
        logger: structlog logger bound to the service.
        settings: the settings instance used to configure the app.
        engines: store engines in ``accounts, journal, goals`` order.
    """

    stores: LedgerStores
    clock: Clock
    policy: LedgerPolicy
    logger: structlog.stdlib.BoundLogger
    settings: BaseAppSettings
    engines: list[AsyncEngine] = field(default_factory=list)

    async def create_schema(self) -> None:
        """Create missing tables in every store (dev/test; production uses Alembic)."""
        for engine, base in zip(self.engines, STORE_BASES.values(), strict=True):
            async with engine.begin() as conn:
                await conn.run_sync(base.metadata.create_all)

    async def dispose(self) -> None:
        for engine in self.engines:
            await engine.dispose()


def init_app(
    settings: BaseAppSettings | None = None,
    *,
    clock: Clock | None = None,
    setup_logging: bool = False,
) -> AppContext:
    """Initialize the application context.

    Steps:
    1) Use the given settings or the cached ``get_settings()``.
    2) Optionally configure structlog (``setup_logging=True``).
    3) Build the three store engines and UoW factories.

    Raises:
    - ValueError: if a store URL is missing.
    """
    settings = settings or get_settings()
    if setup_logging:
        configure_logging()
    stores, engines = build_ledger_stores(settings)
    return AppContext(
        stores=stores,
        clock=clock or SystemClock(),
        policy=LedgerPolicy.from_settings(settings),
        logger=get_logger("py_household"),
        settings=settings,
        engines=engines,
    )
