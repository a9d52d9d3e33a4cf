"""ORDER BY, LIMIT/OFFSET and post-fetch ``select`` narrowing."""

from collections.abc import Mapping
from typing import Any, Dict, Optional, Sequence, Union

from pos_dal.errors import InvalidQueryArgument
from pos_dal.identifiers import check_identifier

OrderBy = Union[Mapping, Sequence[Mapping]]

_DIRECTIONS = {"ASC", "DESC"}


def build_order_by(order_by: Optional[OrderBy]) -> str:
    """Render ``{field: direction}`` entries as an ORDER BY clause, in input order."""
    if not order_by:
        return ""

    entries = [order_by] if isinstance(order_by, Mapping) else list(order_by)
    terms = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise InvalidQueryArgument(f"orderBy entries must be mappings, got {entry!r}")
        for field, direction in entry.items():
            normalized = str(direction).upper()
            if normalized not in _DIRECTIONS:
                raise InvalidQueryArgument(f"Invalid sort direction for {field}: {direction!r}")
            terms.append(f"{check_identifier(field, 'order by field')} {normalized}")

    return f"ORDER BY {', '.join(terms)}" if terms else ""


def check_count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidQueryArgument(f"{name} must be a non-negative integer, got {value!r}")
    return value


def build_pagination(take: Optional[int] = None, skip: Optional[int] = None) -> str:
    """Render LIMIT/OFFSET only for the arguments actually provided.

    SQLite rejects OFFSET without LIMIT, so a bare ``skip`` uses ``LIMIT -1``.
    """
    parts = []
    if take is not None:
        parts.append(f"LIMIT {check_count('take', take)}")
    if skip is not None:
        if take is None:
            parts.append("LIMIT -1")
        parts.append(f"OFFSET {check_count('skip', skip)}")
    return " ".join(parts)


def apply_select(record: Optional[Dict[str, Any]], select: Optional[Mapping]) -> Any:
    """Narrow a record to the requested fields, recursing into relation selects."""
    if record is None or not select:
        return record

    selected: Dict[str, Any] = {}
    for field, value in select.items():
        if value is True:
            selected[field] = record.get(field)
        elif isinstance(value, Mapping) and record.get(field) is not None:
            nested = record[field]
            sub_select = value.get("select")
            if isinstance(nested, list):
                selected[field] = [apply_select(item, sub_select) for item in nested]
            else:
                selected[field] = apply_select(nested, sub_select)
    return selected
