"""
Async database access for tablevc-sql.

This module wraps a SQLAlchemy AsyncEngine with the few primitives the
record mapper and the history store need:
- task(): a read scope on one connection
- tx(): an atomic read-write scope (one database transaction)
- any / one / one_or_none / none: run a statement, shape the rows

Scopes are ambient. The connection of the innermost open scope is tracked in
a context variable, so a mapper method called inside tx() runs on the
transaction's connection without the caller threading it through.

Invariants:
    - Nested tx() calls join the outermost transaction
    - A tx() requested inside a read-only task() is rejected
    - after_commit callbacks run only once the outermost transaction has
      committed, in registration order; rollback discards them
    - Rows are returned as dicts keyed by the SELECT labels

How to change safely:
    - Anything that writes must go through tx()
    - Keep one connection per scope, SQLite locks on concurrent writers
    - Do not run statements of one scope concurrently (asyncio.gather), a
      connection is not safe for concurrent use
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.sql import Executable

from ..config import DatabaseConfig
from ..errors import TransactionScopeError

logger = logging.getLogger(__name__)


@dataclass
class Scope:
    """An open database scope.

    Attributes:
        connection: The connection every statement of the scope runs on
        writable: True for tx() scopes
    """

    connection: AsyncConnection
    writable: bool
    _after_commit: list[Callable[[], None]] = field(default_factory=list)

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Run callback once the enclosing transaction has committed.

        Raises:
            TransactionScopeError: If the scope is read-only
        """
        if not self.writable:
            raise TransactionScopeError()
        self._after_commit.append(callback)

    def _run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            callback()


class Database:
    """Statement execution and transaction scopes over an AsyncEngine.

    Example:
        >>> db = Database.from_config(DatabaseConfig(url="sqlite+aiosqlite:///app.db"))
        >>> async with db.tx():
        ...     await db.none(insert(tbl).values(...))
        ...     rows = await db.any(select(tbl))
        >>> await db.dispose()
    """

    def __init__(self, engine: AsyncEngine) -> None:
        """Initialize over an existing engine.

        Args:
            engine: SQLAlchemy asyncio engine
        """
        self._engine = engine
        self._scope: ContextVar[Scope | None] = ContextVar(
            f"tablevc_scope_{id(self)}", default=None
        )

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> Database:
        """Create the engine described by the configuration."""
        engine = create_async_engine(
            config.url,
            echo=config.echo,
            pool_pre_ping=config.pool_pre_ping,
        )
        logger.info("Database engine created", extra={"database_url": config.redacted_url})
        return cls(engine)

    @property
    def engine(self) -> AsyncEngine:
        """The underlying engine."""
        return self._engine

    def current_scope(self) -> Scope | None:
        """The innermost open scope of the running task, if any."""
        return self._scope.get()

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self._engine.dispose()

    @asynccontextmanager
    async def task(self) -> AsyncIterator[Scope]:
        """Open a read scope, or join the currently open scope."""
        current = self._scope.get()
        if current is not None:
            yield current
            return

        async with self._engine.connect() as conn:
            scope = Scope(connection=conn, writable=False)
            token = self._scope.set(scope)
            try:
                yield scope
            finally:
                self._scope.reset(token)

    @asynccontextmanager
    async def tx(self) -> AsyncIterator[Scope]:
        """Open an atomic transaction, or join the currently open one.

        Any exception raised inside the block rolls the transaction back
        and propagates.

        Raises:
            TransactionScopeError: If called inside a read-only task scope
        """
        current = self._scope.get()
        if current is not None:
            if not current.writable:
                raise TransactionScopeError()
            yield current
            return

        async with self._engine.begin() as conn:
            scope = Scope(connection=conn, writable=True)
            token = self._scope.set(scope)
            try:
                yield scope
            finally:
                self._scope.reset(token)

        logger.debug("Transaction committed")
        scope._run_after_commit()

    async def any(
        self, statement: Executable, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Run a statement and return every row."""
        async with self.task() as scope:
            result = await scope.connection.execute(statement, params or {})
            return [dict(row._mapping) for row in result.all()]

    async def one(
        self, statement: Executable, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Run a statement that must return exactly one row.

        Raises:
            sqlalchemy.exc.NoResultFound: If no row was returned
            sqlalchemy.exc.MultipleResultsFound: If more than one row was returned
        """
        async with self.task() as scope:
            result = await scope.connection.execute(statement, params or {})
            return dict(result.one()._mapping)

    async def one_or_none(
        self, statement: Executable, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Run a statement returning at most one row.

        Raises:
            sqlalchemy.exc.MultipleResultsFound: If more than one row was returned
        """
        async with self.task() as scope:
            result = await scope.connection.execute(statement, params or {})
            row = result.one_or_none()
            return dict(row._mapping) if row is not None else None

    async def none(
        self, statement: Executable, params: dict[str, Any] | None = None
    ) -> int:
        """Run a write statement that returns no rows.

        Returns:
            The number of affected rows reported by the driver
        """
        async with self.tx() as scope:
            result = await scope.connection.execute(statement, params or {})
            return result.rowcount
