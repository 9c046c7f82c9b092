"""Alembic environment for the embedded ledger store migrations.

The ``store`` main option (set by ``MigrationRunner`` or ``-x store=...``)
selects which store's metadata is the migration target.
"""
# ruff: noqa: I001
from __future__ import annotations

import logging

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url

from py_household.infrastructure.persistence.sqlalchemy.models import STORE_BASES

log = logging.getLogger("alembic.env")

config = context.config


def _store() -> str:
    store = context.get_x_argument(as_dictionary=True).get("store") or config.get_main_option("store")
    if store not in STORE_BASES:
        raise ValueError(f"Unknown or missing store {store!r}; pass -x store=accounts|journal|goals")
    return store


def get_sync_url() -> str:
    """Return the validated synchronous URL; async drivers are rejected."""
    raw_url = (config.get_main_option("sqlalchemy.url") or "").strip()
    if not raw_url:
        raise ValueError("No synchronous database URL found (sqlalchemy.url)")
    sa_url = make_url(raw_url)
    driver = (sa_url.drivername or "").lower()
    if any(tok in driver for tok in ["asyncpg", "aiosqlite", "+async"]):
        raise RuntimeError("Async driver not supported for Alembic; use postgresql+psycopg or sqlite")
    return sa_url.render_as_string(hide_password=False)


target_metadata = STORE_BASES[_store()].metadata


def run_migrations_offline() -> None:
    context.configure(
        url=get_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    config.set_main_option("sqlalchemy.url", get_sync_url())
    connectable = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


log.debug("running migrations for store %s", _store())
if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
