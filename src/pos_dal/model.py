"""Generic async CRUD executor bound to one table."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Tuple

from pos_dal.clauses import OrderBy, apply_select, build_order_by, build_pagination
from pos_dal.coercion import bind_write_params
from pos_dal.errors import InvalidQueryArgument, NoFieldsToUpdate
from pos_dal.identifiers import check_identifier
from pos_dal.ids import generate_id
from pos_dal.predicates import UNSET, where_clause
from pos_dal.resolver import RelationResolver
from pos_dal.sqlite import SqliteStore, Statement

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

AGGREGATE_FUNCTIONS = {
    "_sum": ("SUM", "sum"),
    "_avg": ("AVG", "avg"),
    "_min": ("MIN", "min"),
    "_max": ("MAX", "max"),
}


def _sql(*parts: str) -> str:
    return " ".join(part for part in parts if part)


def _data_mapping(data: Any) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        raise InvalidQueryArgument(f"data must be a mapping, got {type(data).__name__}")
    return {key: value for key, value in data.items() if value is not UNSET}


def _requested_fields(fields: Any) -> List[str]:
    if not isinstance(fields, Mapping):
        raise InvalidQueryArgument(f"aggregate field selection must be a mapping, got {fields!r}")
    return [check_identifier(name, "aggregate field") for name, wanted in fields.items() if wanted]


class TableModel:
    """CRUD surface for a single table.

    Instances hold no per-call state and are shared by every caller of the client.
    """

    def __init__(
        self, table: str, store: SqliteStore, resolver: Optional[RelationResolver] = None
    ) -> None:
        self.table = check_identifier(table, "table")
        self._store = store
        self._resolver = resolver

    def __repr__(self) -> str:
        return f"TableModel({self.table!r})"

    async def _shape(
        self, records: List[Record], select: Optional[Mapping], include: Optional[Mapping]
    ) -> List[Record]:
        if self._resolver is not None:
            include = self._resolver.effective_include(self.table, include, select)
            if include:
                await self._resolver.resolve(self.table, records, include)
        elif include:
            logger.warning("Include requested on %s without a relation resolver", self.table)
        if select:
            return [apply_select(record, select) for record in records]
        return records

    def _insert_statement(self, data: Mapping) -> Tuple[Statement, Any]:
        row = _data_mapping(data)
        if row.get("id") is None:
            row["id"] = generate_id()
        fields = [check_identifier(field) for field in row]
        placeholders = ", ".join("?" for _ in fields)
        sql = f"INSERT INTO {self.table} ({', '.join(fields)}) VALUES ({placeholders})"
        return Statement(sql, bind_write_params(row.values())), row["id"]

    def _set_clause(self, data: Mapping) -> Tuple[str, List[Any]]:
        row = _data_mapping(data)
        row.pop("id", None)
        assignments = [f"{check_identifier(field)} = ?" for field in row]
        return ", ".join(assignments), bind_write_params(row.values())

    async def find_unique(
        self,
        where: Mapping,
        *,
        select: Optional[Mapping] = None,
        include: Optional[Mapping] = None,
    ) -> Optional[Record]:
        """Return the first row matching ``where`` or None."""
        clause, params = where_clause(where)
        row = await self._store.fetchrow(
            _sql(f"SELECT * FROM {self.table}", clause, "LIMIT 1"), *params
        )
        if row is None:
            return None
        return (await self._shape([row], select, include))[0]

    async def find_first(
        self,
        where: Optional[Mapping] = None,
        *,
        select: Optional[Mapping] = None,
        include: Optional[Mapping] = None,
        order_by: Optional[OrderBy] = None,
        skip: Optional[int] = None,
    ) -> Optional[Record]:
        records = await self.find_many(
            where, select=select, include=include, order_by=order_by, take=1, skip=skip
        )
        return records[0] if records else None

    async def find_many(
        self,
        where: Optional[Mapping] = None,
        *,
        select: Optional[Mapping] = None,
        include: Optional[Mapping] = None,
        order_by: Optional[OrderBy] = None,
        take: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> List[Record]:
        """Return every row matching ``where``; always a list."""
        clause, params = where_clause(where)
        sql = _sql(
            f"SELECT * FROM {self.table}",
            clause,
            build_order_by(order_by),
            build_pagination(take, skip),
        )
        rows = await self._store.fetch(sql, *params)
        return await self._shape(rows, select, include)

    async def create(
        self,
        data: Mapping,
        *,
        select: Optional[Mapping] = None,
        include: Optional[Mapping] = None,
    ) -> Optional[Record]:
        """Insert ``data`` (plus a generated id when missing) and return the stored row."""
        statement, record_id = self._insert_statement(data)
        await self._store.execute(statement.sql, *statement.params)
        return await self.find_unique({"id": record_id}, select=select, include=include)

    async def create_many(self, data: List[Mapping]) -> Dict[str, int]:
        """Insert every row in one atomic batch; returns only the count."""
        statements = [self._insert_statement(item)[0] for item in data]
        if not statements:
            return {"count": 0}
        counts = await self._store.atomic(statements)
        return {"count": len(counts)}

    async def update(
        self,
        where: Mapping,
        data: Mapping,
        *,
        select: Optional[Mapping] = None,
        include: Optional[Mapping] = None,
    ) -> Optional[Record]:
        """Update rows matching ``where`` and return the re-fetched row.

        ``id`` is never changed through an update.
        """
        assignments, set_params = self._set_clause(data)
        if not assignments:
            raise NoFieldsToUpdate(self.table)
        clause, where_params = where_clause(where)
        await self._store.execute(
            _sql(f"UPDATE {self.table} SET {assignments}", clause), *set_params, *where_params
        )
        return await self.find_unique(where, select=select, include=include)

    async def update_many(
        self, where: Optional[Mapping] = None, data: Optional[Mapping] = None
    ) -> Dict[str, int]:
        """Update every matching row; empty ``data`` is a no-op with count 0."""
        assignments, set_params = self._set_clause(data or {})
        if not assignments:
            return {"count": 0}
        clause, where_params = where_clause(where)
        count = await self._store.execute(
            _sql(f"UPDATE {self.table} SET {assignments}", clause), *set_params, *where_params
        )
        return {"count": count}

    async def delete(self, where: Mapping) -> Optional[Record]:
        """Delete one matching row and return its pre-delete snapshot (None if absent)."""
        snapshot = await self.find_unique(where)
        if snapshot is None:
            return None
        if snapshot.get("id") is not None:
            clause, params = where_clause({"id": snapshot["id"]})
        else:
            clause, params = where_clause(where)
        await self._store.execute(_sql(f"DELETE FROM {self.table}", clause), *params)
        return snapshot

    async def delete_many(self, where: Optional[Mapping] = None) -> Dict[str, int]:
        clause, params = where_clause(where)
        count = await self._store.execute(_sql(f"DELETE FROM {self.table}", clause), *params)
        return {"count": count}

    async def upsert(
        self,
        where: Mapping,
        create: Mapping,
        update: Mapping,
        *,
        select: Optional[Mapping] = None,
        include: Optional[Mapping] = None,
    ) -> Optional[Record]:
        """Update the row matching ``where`` or create one; ``where`` fields win on create."""
        existing = await self.find_unique(where)
        if existing is not None:
            return await self.update(where, update, select=select, include=include)
        return await self.create({**create, **where}, select=select, include=include)

    async def count(self, where: Optional[Mapping] = None) -> int:
        clause, params = where_clause(where)
        value = await self._store.fetchval(
            _sql(f"SELECT COUNT(*) AS count FROM {self.table}", clause), *params
        )
        return int(value or 0)

    async def aggregate(
        self,
        where: Optional[Mapping] = None,
        *,
        _count: Any = None,
        _sum: Optional[Mapping] = None,
        _avg: Optional[Mapping] = None,
        _min: Optional[Mapping] = None,
        _max: Optional[Mapping] = None,
    ) -> Dict[str, Any]:
        """Compute aggregates, reshaped like the request.

        ``aggregate(_sum={"total": True}, _count=True)`` returns
        ``{"_count": 3, "_sum": {"total": 60}}``.
        """
        expressions: List[str] = []
        layout: List[Tuple[str, Optional[str], str]] = []

        if _count is True:
            expressions.append("COUNT(*) AS _count")
            layout.append(("_count", None, "_count"))
        elif _count:
            for field in _requested_fields(_count):
                alias = f"count_{field}"
                expressions.append(f"COUNT({field}) AS {alias}")
                layout.append(("_count", field, alias))

        requested = {"_sum": _sum, "_avg": _avg, "_min": _min, "_max": _max}
        for kind, selection in requested.items():
            if not selection:
                continue
            function, prefix = AGGREGATE_FUNCTIONS[kind]
            for field in _requested_fields(selection):
                alias = f"{prefix}_{field}"
                expressions.append(f"{function}({field}) AS {alias}")
                layout.append((kind, field, alias))

        if not expressions:
            return {}

        clause, params = where_clause(where)
        row = await self._store.fetchrow(
            _sql(f"SELECT {', '.join(expressions)} FROM {self.table}", clause), *params
        )
        row = row or {}

        result: Dict[str, Any] = {}
        for kind, field, alias in layout:
            if field is None:
                result[kind] = row.get(alias)
            else:
                result.setdefault(kind, {})[field] = row.get(alias)
        return result
