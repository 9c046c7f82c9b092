from __future__ import annotations

import asyncio
import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from py_household.infrastructure.config.settings import get_settings
from py_household.infrastructure.persistence.sqlalchemy.async_engine import (
    get_async_engine,
    get_async_session_factory,
)
from py_household.infrastructure.persistence.sqlalchemy.repositories_async import (
    AsyncSqlAlchemyAccountRepository,
    AsyncSqlAlchemyDivergenceRepository,
    AsyncSqlAlchemyGoalContributionRepository,
    AsyncSqlAlchemyGoalRepository,
    AsyncSqlAlchemyOutboxRepository,
    AsyncSqlAlchemyTransactionRepository,
    AsyncSqlAlchemyTransferLinkRepository,
)

__all__ = [
    "AccountStoreUnitOfWork",
    "JournalUnitOfWork",
    "GoalStoreUnitOfWork",
]

logger = logging.getLogger(__name__)


class _AsyncStoreUnitOfWork:
    """Asynchronous SQLAlchemy Unit of Work for one ledger store.

    A UoW spans exactly one store; there is no distributed transaction
    between stores. Instances are single-use per ``async with`` block.

    Behavior:
    - On enter: open a session, begin a transaction and, for PostgreSQL,
      optionally ``SET LOCAL statement_timeout`` when configured.
    - On exit: rollback when the block raised, otherwise commit (unless
      committed explicitly). The session is always closed.
    - Commit retries a bounded number of times on transient DB errors
      (serialization failure, deadlock, invalidated connection).

    Pass ``engine`` to share one pool between many UoWs of the same store
    (required for ``sqlite+aiosqlite:///:memory:``, where every engine is a
    separate database).
    """

    _repo_attrs: tuple[str, ...] = ()

    def __init__(self, url: str | None = None, *, engine: AsyncEngine | None = None, echo: bool = False) -> None:
        if engine is not None:
            self._engine = engine
        else:
            self._engine = get_async_engine(url or "sqlite+aiosqlite:///:memory:", echo=echo)
        self._session_factory: async_sessionmaker[AsyncSession] = get_async_session_factory(self._engine)
        self._session: AsyncSession | None = None
        self._entered: bool = False
        self._committed: bool = False
        self._commit_attempted: bool = False
        self._settings = get_settings()
        self._reset_repositories()

    def _reset_repositories(self) -> None:
        for attr in self._repo_attrs:
            setattr(self, attr, None)

    @property
    def engine(self) -> AsyncEngine:
        """Return the store ``AsyncEngine`` (primarily for tests/schema setup)."""
        return self._engine

    @property
    def session(self) -> AsyncSession:
        """Return the active AsyncSession.

        Raises:
        - RuntimeError: if accessed outside of an active context manager.
        """
        if not self._session:
            raise RuntimeError(f"{type(self).__name__}.session is only available inside 'async with' block")
        return self._session

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    def _require_session(self, repo: str) -> AsyncSession:
        if not self._session:
            raise RuntimeError(f"{type(self).__name__}.{repo} requires an active session")
        return self._session

    async def __aenter__(self) -> Any:
        if self._entered:
            raise RuntimeError(f"{type(self).__name__} instance cannot be re-entered")
        self._entered = True
        self._committed = False
        self._commit_attempted = False
        logger.debug("AsyncUoW[%s]: opening session and beginning transaction", type(self).__name__)
        self._session = self._session_factory()
        await self._session.begin()
        timeout_ms = int(self._settings.db_statement_timeout_ms)
        if timeout_ms > 0 and self._engine.dialect.name.startswith("postgresql"):
            logger.debug("AsyncUoW: applying SET LOCAL statement_timeout=%s ms", timeout_ms)
            await self._session.execute(text("SET LOCAL statement_timeout = :ms"), {"ms": timeout_ms})
        self._reset_repositories()
        return self

    @staticmethod
    def _is_transient_error(exc: BaseException) -> bool:
        """Return True for invalidated connections, serialization failures (40001) and deadlocks (40P01)."""
        if not isinstance(exc, DBAPIError):
            return False
        if getattr(exc, "connection_invalidated", False):
            return True
        orig = getattr(exc, "orig", None)
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        return str(code) in {"40001", "40P01"} if code else False

    async def _commit_with_retry(self) -> None:
        if not self._session:
            logger.warning("AsyncUoW.commit() called without an active session; no-op")
            return None
        self._commit_attempted = True
        attempts = max(1, int(self._settings.db_retry_attempts))
        backoff_ms = max(1, int(self._settings.db_retry_backoff_ms))
        max_backoff_ms = max(backoff_ms, int(self._settings.db_retry_max_backoff_ms))
        for attempt in range(1, attempts + 1):
            try:
                await self._session.commit()
                self._committed = True
                return None
            except (DBAPIError, OperationalError) as exc:
                if not self._is_transient_error(exc) or attempt == attempts:
                    raise
                await self._session.rollback()
                delay_ms = min(max_backoff_ms, backoff_ms * (2 ** (attempt - 1)))
                logger.warning(
                    "AsyncUoW: transient commit failure (attempt %s/%s): %s; retrying in %sms",
                    attempt,
                    attempts,
                    type(exc).__name__,
                    delay_ms,
                )
                await asyncio.sleep(delay_ms / 1000.0)

    async def __aexit__(self, exc_type, exc: BaseException | None, tb: Any) -> None:  # noqa: D401
        """Rollback on error, commit otherwise; always close the session."""
        try:
            if not self._session:
                logger.warning("AsyncUoW.__aexit__ called without an active session; no-op")
                return None
            if exc is not None:
                logger.debug("AsyncUoW: exception detected -> rollback", exc_info=exc)
                await self._session.rollback()
            elif self._committed:
                pass
            elif self._commit_attempted:
                logger.debug("AsyncUoW: prior commit attempt failed -> rollback on exit")
                await self._session.rollback()
            else:
                logger.debug("AsyncUoW: committing transaction on exit")
                try:
                    await self._commit_with_retry()
                except Exception:
                    logger.exception("AsyncUoW: commit on exit failed; rolling back")
                    await self._session.rollback()
                    raise
        finally:
            if self._session is not None:
                try:
                    await self._session.close()
                finally:
                    self._session = None
                    self._entered = False
                    self._committed = False
                    self._commit_attempted = False
                    self._reset_repositories()

    async def commit(self) -> None:
        """Explicitly commit the current transaction (with retries)."""
        await self._commit_with_retry()

    async def rollback(self) -> None:
        if not self._session:
            logger.warning("AsyncUoW.rollback() called without an active session; no-op")
            return None
        await self._session.rollback()


class AccountStoreUnitOfWork(_AsyncStoreUnitOfWork):
    """Account store: accounts, applied adjustments, divergence audit."""

    _repo_attrs = ("_a_accounts", "_a_divergences")

    @property
    def accounts(self) -> AsyncSqlAlchemyAccountRepository:
        session = self._require_session("accounts")
        if not self._a_accounts:
            self._a_accounts = AsyncSqlAlchemyAccountRepository(session)
        return self._a_accounts

    @property
    def divergences(self) -> AsyncSqlAlchemyDivergenceRepository:
        session = self._require_session("divergences")
        if not self._a_divergences:
            self._a_divergences = AsyncSqlAlchemyDivergenceRepository(session)
        return self._a_divergences


class JournalUnitOfWork(_AsyncStoreUnitOfWork):
    """Transaction store: journal entries, splits, transfer links, adjustment outbox."""

    _repo_attrs = ("_a_transactions", "_a_transfers", "_a_outbox")

    @property
    def transactions(self) -> AsyncSqlAlchemyTransactionRepository:
        session = self._require_session("transactions")
        if not self._a_transactions:
            self._a_transactions = AsyncSqlAlchemyTransactionRepository(session)
        return self._a_transactions

    @property
    def transfers(self) -> AsyncSqlAlchemyTransferLinkRepository:
        session = self._require_session("transfers")
        if not self._a_transfers:
            self._a_transfers = AsyncSqlAlchemyTransferLinkRepository(session)
        return self._a_transfers

    @property
    def outbox(self) -> AsyncSqlAlchemyOutboxRepository:
        session = self._require_session("outbox")
        if not self._a_outbox:
            self._a_outbox = AsyncSqlAlchemyOutboxRepository(session)
        return self._a_outbox


class GoalStoreUnitOfWork(_AsyncStoreUnitOfWork):
    """Goal store: savings goals, contributions, applied goal effects."""

    _repo_attrs = ("_a_goals", "_a_contributions")

    @property
    def goals(self) -> AsyncSqlAlchemyGoalRepository:
        session = self._require_session("goals")
        if not self._a_goals:
            self._a_goals = AsyncSqlAlchemyGoalRepository(session)
        return self._a_goals

    @property
    def contributions(self) -> AsyncSqlAlchemyGoalContributionRepository:
        session = self._require_session("contributions")
        if not self._a_contributions:
            self._a_contributions = AsyncSqlAlchemyGoalContributionRepository(session)
        return self._a_contributions
