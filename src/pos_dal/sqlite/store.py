import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    NamedTuple,
    Optional,
    Sequence,
)

import aiosqlite

from pos_dal.config import DalSettings
from pos_dal.error_classification import emit_classified_error
from pos_dal.tracing import trace_query_operation

logger = logging.getLogger(__name__)

_SAVEPOINT = "dal_atomic_batch"

# Token of the unit of work the current task runs inside, if any.
_transaction_owner: ContextVar[Optional[object]] = ContextVar(
    "pos_dal_transaction_owner", default=None
)


class Statement(NamedTuple):
    """A pre-computed SQL statement and its positional parameters."""

    sql: str
    params: Sequence[Any] = ()


class SqliteStore:
    """Single embedded SQLite connection behind an async interface.

    The connection runs in autocommit mode (``isolation_level=None``); transactions
    are only ever opened explicitly with BEGIN, either by ``atomic`` or by the
    transaction coordinator.

    The connection is shared by every task, so a transaction holds it exclusively:
    ``exclusive()`` takes the transaction lock for the whole unit of work and
    statements from any other task wait until it is released.
    """

    def __init__(self, settings: Optional[DalSettings] = None) -> None:
        self._settings = settings or DalSettings.from_env()
        self._conn: Optional[aiosqlite.Connection] = None
        self._connect_lock = asyncio.Lock()
        self._tx_lock = asyncio.Lock()
        self._owner: Optional[object] = None

    @property
    def settings(self) -> DalSettings:
        return self._settings

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        """Return True when a transaction is open on the connection."""
        return self._conn is not None and self._conn.in_transaction

    async def connect(self) -> "SqliteStore":
        """Open the connection and apply PRAGMAs (idempotent)."""
        if self._conn is not None:
            return self
        async with self._connect_lock:
            if self._conn is None:
                conn = await aiosqlite.connect(self._settings.db_path, isolation_level=None)
                conn.row_factory = sqlite3.Row
                try:
                    for pragma in self._settings.pragmas():
                        await conn.execute(pragma)
                except Exception:
                    await conn.close()
                    raise
                self._conn = conn
                logger.info(
                    "SQLite store connected",
                    extra={"event": "dal_store_connected", "db_path": self._settings.db_path},
                )
        return self

    async def close(self) -> None:
        """Close the connection; a later call reconnects lazily."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            await conn.execute("PRAGMA optimize")
        except sqlite3.Error as exc:
            logger.warning("PRAGMA optimize failed before close: %s", exc)
        await conn.close()
        logger.info("SQLite store closed", extra={"event": "dal_store_closed"})

    async def _connection(self) -> aiosqlite.Connection:
        await self.connect()
        return self._conn

    def _owns_transaction(self) -> bool:
        return self._owner is not None and _transaction_owner.get() is self._owner

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """Hold the connection for one unit of work.

        Re-entrant for the owning task (and tasks it spawns); everyone else waits.
        """
        if self._owns_transaction():
            yield
            return
        async with self._tx_lock:
            owner = object()
            self._owner = owner
            token = _transaction_owner.set(owner)
            try:
                yield
            finally:
                _transaction_owner.reset(token)
                self._owner = None

    async def _run(
        self, name: str, operation_kind: str, sql: str, run: Callable[[], Awaitable[Any]]
    ) -> Any:
        if self._owns_transaction():
            return await self._run_traced(name, operation_kind, sql, run)
        async with self._tx_lock:
            return await self._run_traced(name, operation_kind, sql, run)

    async def _run_traced(
        self, name: str, operation_kind: str, sql: str, run: Callable[[], Awaitable[Any]]
    ) -> Any:
        logger.debug("dal_statement", extra={"event": "dal_statement", "sql": sql})
        try:
            return await trace_query_operation(name, operation_kind, sql, run())
        except sqlite3.Error as exc:
            emit_classified_error(operation_kind, exc)
            raise

    async def fetch(self, sql: str, *params: Any) -> List[Dict[str, Any]]:
        """Run a query and return detached ``dict`` rows."""

        async def _run():
            conn = await self._connection()
            cursor = await conn.execute(sql, list(params))
            try:
                rows = await cursor.fetchall()
            finally:
                await cursor.close()
            return [dict(row) for row in rows]

        return await self._run("pos_dal.query.fetch", "fetch", sql, _run)

    async def fetchrow(self, sql: str, *params: Any) -> Optional[Dict[str, Any]]:
        rows = await self.fetch(sql, *params)
        return rows[0] if rows else None

    async def fetchval(self, sql: str, *params: Any) -> Any:
        row = await self.fetchrow(sql, *params)
        if row is None:
            return None
        return next(iter(row.values()))

    async def execute(self, sql: str, *params: Any) -> int:
        """Run a statement and return the affected-row count."""

        async def _run():
            conn = await self._connection()
            cursor = await conn.execute(sql, list(params))
            try:
                return cursor.rowcount
            finally:
                await cursor.close()

        return await self._run("pos_dal.query.execute", "execute", sql, _run)

    async def executescript(self, script: str) -> None:
        """Run a multi-statement script without parameters (schema setup, fixtures)."""

        async def _run():
            conn = await self._connection()
            cursor = await conn.executescript(script)
            await cursor.close()

        await self._run("pos_dal.query.execute", "executescript", script, _run)

    async def begin(self) -> None:
        await self.execute("BEGIN")

    async def commit(self) -> None:
        await self.execute("COMMIT")

    async def rollback(self) -> None:
        await self.execute("ROLLBACK")

    async def atomic(self, statements: Iterable[Statement]) -> List[int]:
        """Run pre-computed statements as one unit; all apply or none do.

        Returns the affected-row count of each statement, in order.
        """
        batch = [Statement(*statement) for statement in statements]
        async with self.exclusive():
            if self.in_transaction:
                return await self._atomic_savepoint(batch)

            counts: List[int] = []
            await self.begin()
            try:
                for statement in batch:
                    counts.append(await self.execute(statement.sql, *statement.params))
                await self.commit()
            except BaseException:
                await self.rollback_if_open()
                raise
            return counts

    async def _atomic_savepoint(self, batch: List[Statement]) -> List[int]:
        # Inside an open transaction the batch still applies all-or-nothing.
        counts: List[int] = []
        await self.execute(f"SAVEPOINT {_SAVEPOINT}")
        try:
            for statement in batch:
                counts.append(await self.execute(statement.sql, *statement.params))
        except BaseException:
            await self.execute(f"ROLLBACK TO SAVEPOINT {_SAVEPOINT}")
            await self.execute(f"RELEASE SAVEPOINT {_SAVEPOINT}")
            raise
        await self.execute(f"RELEASE SAVEPOINT {_SAVEPOINT}")
        return counts

    async def rollback_if_open(self) -> None:
        """Roll back an open transaction; a failing ROLLBACK is logged, not raised."""
        if not self.in_transaction:
            return
        try:
            await self.rollback()
        except sqlite3.Error as exc:
            logger.error(
                "Rollback failed; original error is re-raised",
                extra={"event": "dal_rollback_failed", "error_type": exc.__class__.__name__},
            )
