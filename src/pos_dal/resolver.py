"""Batched relation loading for ``include`` trees.

Each relation edge costs one query per include level, however many parent
records are being resolved: parent keys are collected, the related table is
queried once with ``IN (...)``, and results are grafted back onto the parents.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Hashable, Iterable, List, Optional

from pos_dal.clauses import apply_select, check_count
from pos_dal.errors import IncludeDepthExceeded
from pos_dal.relations import Relation, RelationKind, RelationshipRegistry

if TYPE_CHECKING:
    from pos_dal.model import TableModel

logger = logging.getLogger(__name__)

DEFAULT_MAX_INCLUDE_DEPTH = 8


@dataclass(frozen=True)
class IncludeOptions:
    """Relation-scoped query arguments taken from one include entry."""

    where: Optional[Mapping] = None
    select: Optional[Mapping] = None
    include: Optional[Mapping] = None
    order_by: Any = None
    take: Optional[int] = None
    skip: Optional[int] = None

    def __post_init__(self) -> None:
        # Relation pages are sliced in memory, so they get the same checks as LIMIT/OFFSET.
        if self.take is not None:
            check_count("take", self.take)
        if self.skip is not None:
            check_count("skip", self.skip)

    @classmethod
    def from_value(cls, value: Any) -> "IncludeOptions":
        if not isinstance(value, Mapping):
            return cls()
        return cls(
            where=value.get("where"),
            select=value.get("select"),
            include=value.get("include"),
            order_by=value.get("orderBy", value.get("order_by")),
            take=value.get("take"),
            skip=value.get("skip"),
        )


def _distinct(values: Iterable[Any]) -> List[Hashable]:
    seen: Dict[Hashable, None] = {}
    for value in values:
        if value is not None:
            seen.setdefault(value, None)
    return list(seen)


def _page(records: List[Dict[str, Any]], take: Optional[int], skip: Optional[int]) -> list:
    start = skip or 0
    end = start + take if take is not None else None
    return records[start:end]


class RelationResolver:
    """Resolves include trees against the relationship registry."""

    def __init__(
        self,
        registry: RelationshipRegistry,
        model_for: Callable[[str], "TableModel"],
        max_depth: int = DEFAULT_MAX_INCLUDE_DEPTH,
    ) -> None:
        self._registry = registry
        self._model_for = model_for
        self._max_depth = max_depth

    @property
    def registry(self) -> RelationshipRegistry:
        return self._registry

    def effective_include(
        self, table: str, include: Optional[Mapping], select: Optional[Mapping]
    ) -> Dict[str, Any]:
        """Merge relations requested through ``select`` into the include tree.

        ``select={"items": True}`` and ``select={"items": {"select": {...}}}`` load
        ``items`` the same way an include entry would; narrowing happens afterwards.
        """
        merged: Dict[str, Any] = dict(include or {})
        for field, value in (select or {}).items():
            if field in merged or not (value is True or isinstance(value, Mapping)):
                continue
            if self._registry.get(table, field) is not None:
                merged[field] = value
        return merged

    async def resolve(
        self,
        table: str,
        records: List[Dict[str, Any]],
        include: Optional[Mapping],
        depth: int = 0,
    ) -> List[Dict[str, Any]]:
        """Attach included relations to ``records`` in place and return them."""
        if not include or not records:
            return records
        if depth >= self._max_depth:
            raise IncludeDepthExceeded(table, self._max_depth)

        for field, value in include.items():
            if not value:
                continue
            relation = self._registry.get(table, field)
            if relation is None:
                logger.debug("No relationship defined for %s.%s; skipping", table, field)
                continue

            options = IncludeOptions.from_value(value)
            if relation.kind is RelationKind.ONE_TO_MANY:
                await self._resolve_one_to_many(records, field, relation, options, depth)
            else:
                await self._resolve_many_to_one(records, field, relation, options, depth)
        return records

    async def _resolve_nested(
        self, relation: Relation, related: List[Dict[str, Any]], options: IncludeOptions, depth: int
    ) -> None:
        nested = self.effective_include(relation.target_table, options.include, options.select)
        if nested:
            await self.resolve(relation.target_table, related, nested, depth + 1)

    async def _resolve_one_to_many(
        self,
        records: List[Dict[str, Any]],
        field: str,
        relation: Relation,
        options: IncludeOptions,
        depth: int,
    ) -> None:
        parent_keys = _distinct(record.get(relation.local_key) for record in records)
        if not parent_keys:
            for record in records:
                record[field] = []
            return

        where: Dict[str, Any] = {relation.foreign_key: {"in": parent_keys}}
        if options.where:
            where = {"AND": [where, options.where]}

        model = self._model_for(relation.target_table)
        related = await model.find_many(where, order_by=options.order_by)
        await self._resolve_nested(relation, related, options, depth)

        grouped: Dict[Hashable, List[Dict[str, Any]]] = {}
        for item in related:
            grouped.setdefault(item.get(relation.foreign_key), []).append(item)

        for record in records:
            group = grouped.get(record.get(relation.local_key), [])
            group = _page(group, options.take, options.skip)
            if options.select:
                group = [apply_select(item, options.select) for item in group]
            record[field] = group

    async def _resolve_many_to_one(
        self,
        records: List[Dict[str, Any]],
        field: str,
        relation: Relation,
        options: IncludeOptions,
        depth: int,
    ) -> None:
        foreign_keys = _distinct(record.get(relation.foreign_key) for record in records)
        if not foreign_keys:
            for record in records:
                record[field] = None
            return

        model = self._model_for(relation.target_table)
        related = await model.find_many({relation.local_key: {"in": foreign_keys}})
        await self._resolve_nested(relation, related, options, depth)

        by_key = {item.get(relation.local_key): item for item in related}
        for record in records:
            foreign_key = record.get(relation.foreign_key)
            match = by_key.get(foreign_key) if foreign_key is not None else None
            if match is not None:
                match = apply_select(match, options.select) if options.select else dict(match)
            record[field] = match
