import inspect
import logging
from typing import Any

from pos_dal.sqlite import SqliteStore, Statement
from pos_dal.tracing import trace_query_operation

logger = logging.getLogger(__name__)


def _is_statement_batch(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and not isinstance(value, Statement)
        and bool(value)
        and all(isinstance(item, Statement) for item in value)
    )


class TransactionCoordinator:
    """Runs a unit of work atomically on the store.

    A unit of work is either a suspension (an awaitable, or a callable returning
    one) driven under explicit BEGIN/COMMIT, or an already computed value. Computed
    ``Statement`` batches go through the store's native atomic primitive; any other
    computed value has nothing left to protect and is returned as is.

    The store is held exclusively for the whole unit of work, so statements from
    other tasks wait rather than landing inside this transaction.

    Nested transactions are not supported: BEGIN inside an open transaction fails
    with the store's own error.
    """

    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    async def run(self, unit_of_work: Any, *args: Any) -> Any:
        if callable(unit_of_work) and not inspect.isawaitable(unit_of_work):
            unit_of_work = unit_of_work(*args)
        if inspect.isawaitable(unit_of_work):
            return await self._run_suspended(unit_of_work)
        return await self._run_resolved(unit_of_work)

    async def _run_resolved(self, value: Any) -> Any:
        if isinstance(value, Statement):
            return await self._store.atomic([value])
        if _is_statement_batch(value):
            return await self._store.atomic(value)
        return value

    async def _run_suspended(self, body: Any) -> Any:
        async def _drive():
            async with self._store.exclusive():
                await self._store.begin()
                try:
                    result = await body
                    await self._store.commit()
                except BaseException as exc:
                    logger.info(
                        "Transaction rolled back",
                        extra={
                            "event": "dal_transaction_rollback",
                            "error_type": type(exc).__name__,
                        },
                    )
                    await self._store.rollback_if_open()
                    raise
                return result

        try:
            return await trace_query_operation("pos_dal.transaction", "transaction", None, _drive())
        finally:
            # Never started: the lock wait or BEGIN failed.
            if (
                inspect.iscoroutine(body)
                and inspect.getcoroutinestate(body) == inspect.CORO_CREATED
            ):
                body.close()
