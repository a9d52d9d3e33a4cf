"""Client facade: lazily built table models, raw SQL passthrough, transactions."""

import logging
import threading
from typing import Any, Dict, List, Optional

from pos_dal.coercion import bind_params
from pos_dal.config import DalSettings
from pos_dal.identifiers import check_identifier
from pos_dal.model import TableModel
from pos_dal.relations import MODEL_TABLES, POS_RELATIONSHIPS, RelationshipRegistry
from pos_dal.resolver import RelationResolver
from pos_dal.sqlite import SqliteStore
from pos_dal.transaction import TransactionCoordinator

logger = logging.getLogger(__name__)


class PosClient:
    """Entry point for application code.

    ``client.model("order")`` and ``client.model("orders")`` return the same
    shared ``TableModel``; models are created on first use and cached for the
    client's lifetime.
    """

    def __init__(
        self,
        store: Optional[SqliteStore] = None,
        registry: RelationshipRegistry = POS_RELATIONSHIPS,
        settings: Optional[DalSettings] = None,
        model_tables: Optional[Dict[str, str]] = None,
    ) -> None:
        if store is None:
            store = SqliteStore(settings)
        self._store = store
        self._settings = settings or store.settings
        self._registry = registry
        self._model_tables = dict(MODEL_TABLES if model_tables is None else model_tables)
        self._models: Dict[str, TableModel] = {}
        self._models_lock = threading.Lock()
        self._resolver = RelationResolver(
            registry, self.model, max_depth=self._settings.max_include_depth
        )
        self._transactions = TransactionCoordinator(store)

    @property
    def store(self) -> SqliteStore:
        return self._store

    @property
    def registry(self) -> RelationshipRegistry:
        return self._registry

    def table_for(self, name: str) -> str:
        """Map a logical model name (``orderItem``) to its table (``order_items``)."""
        return self._model_tables.get(name, name)

    def model(self, name: str) -> TableModel:
        table = check_identifier(self.table_for(name), "table")
        model = self._models.get(table)
        if model is not None:
            return model
        with self._models_lock:
            model = self._models.get(table)
            if model is None:
                model = TableModel(table, self._store, self._resolver)
                self._models[table] = model
                logger.debug("Created table model for %s", table)
        return model

    def __getattr__(self, name: str) -> TableModel:
        if name.startswith("_") or name not in self.__dict__.get("_model_tables", {}):
            raise AttributeError(name)
        return self.model(name)

    async def raw_query(self, sql: str, *params: Any) -> List[Dict[str, Any]]:
        return await self._store.fetch(sql, *bind_params(params))

    async def raw_execute(self, sql: str, *params: Any) -> int:
        return await self._store.execute(sql, *bind_params(params))

    async def run_transaction(self, unit_of_work: Any) -> Any:
        """Run ``unit_of_work`` atomically.

        Callables are invoked with this client; awaitables run between BEGIN and
        COMMIT (ROLLBACK and re-raise on failure); ``Statement`` batches run through
        the store's atomic primitive; other values are returned unchanged.
        """
        return await self._transactions.run(unit_of_work, self)

    async def connect(self) -> "PosClient":
        await self._store.connect()
        return self

    async def disconnect(self) -> None:
        await self._store.close()

    def is_initialized(self) -> bool:
        return self._store.is_connected

    async def ensure_initialized(self) -> "PosClient":
        if not self.is_initialized():
            await self.connect()
        return self


_CLIENT: Optional[PosClient] = None
_CLIENT_LOCK = threading.Lock()


def get_client() -> PosClient:
    """Return the process-wide client, creating it from env settings on first use."""
    global _CLIENT
    if _CLIENT is None:
        with _CLIENT_LOCK:
            if _CLIENT is None:
                _CLIENT = PosClient(settings=DalSettings.from_env())
    return _CLIENT


def reset_client() -> None:
    """Drop the process-wide client (test helper); the connection is not closed."""
    global _CLIENT
    with _CLIENT_LOCK:
        _CLIENT = None
