"""Structural ``where`` predicates: parsing into a small AST and rendering to SQL.

A predicate is a mapping of field name to either a scalar (equality), ``None``
(``IS NULL``), an operator mapping such as ``{"in": [...], "gte": 3}``, or, under
the ``AND``/``OR`` keys, a list of nested predicates.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from pos_dal.coercion import bind_params, coerce_scalar
from pos_dal.errors import InvalidQueryArgument
from pos_dal.identifiers import check_identifier

logger = logging.getLogger(__name__)

LOGICAL_CONNECTIVES = ("AND", "OR")

COMPARISON_OPERATORS = {
    "equals": "=",
    "not": "!=",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
}

PATTERN_OPERATORS = {
    "contains": ("%", "%"),
    "startsWith": ("", "%"),
    "endsWith": ("%", ""),
}

MEMBERSHIP_OPERATORS = {"in": False, "notIn": True}


class _Unset:
    """Marker for a field that is present but must not be filtered on."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


@dataclass(frozen=True)
class Comparison:
    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class Membership:
    field: str
    values: Tuple[Any, ...]
    negated: bool = False


@dataclass(frozen=True)
class Pattern:
    field: str
    prefix: str
    suffix: str
    value: Any


@dataclass(frozen=True)
class IsNull:
    field: str
    negated: bool = False


@dataclass(frozen=True)
class Logical:
    """``AND``/``OR`` group; each child is itself a conjunction of nodes."""

    connective: str
    children: Tuple[Tuple["PredicateNode", ...], ...]


PredicateNode = Union[Comparison, Membership, Pattern, IsNull, Logical]


def parse_predicate(where: Optional[Mapping]) -> List[PredicateNode]:
    """Parse a structural predicate into a list of implicitly AND-ed nodes."""
    if not where:
        return []
    if not isinstance(where, Mapping):
        raise InvalidQueryArgument(f"where must be a mapping, got {type(where).__name__}")

    nodes: List[PredicateNode] = []
    for key, value in where.items():
        if key in LOGICAL_CONNECTIVES:
            group = _parse_logical(key, value)
            if group is not None:
                nodes.append(group)
            continue

        field = check_identifier(key, "field")
        if value is UNSET:
            continue
        if value is None:
            nodes.append(IsNull(field))
        elif isinstance(value, Mapping):
            nodes.extend(_parse_operators(field, value))
        else:
            nodes.append(Comparison(field, "=", value))
    return nodes


def _parse_logical(connective: str, value: Any) -> Optional[Logical]:
    if isinstance(value, Mapping):
        clauses = [value]
    elif isinstance(value, (list, tuple)):
        clauses = list(value)
    else:
        raise InvalidQueryArgument(
            f"{connective} expects a list of predicates, got {type(value).__name__}"
        )

    children = []
    for clause in clauses:
        parsed = parse_predicate(clause)
        if parsed:
            children.append(tuple(parsed))
    if not children:
        return None
    return Logical(connective, tuple(children))


def _parse_operators(field: str, operators: Mapping) -> List[PredicateNode]:
    nodes: List[PredicateNode] = []
    for op, operand in operators.items():
        if operand is UNSET:
            continue
        if op in ("equals", "not") and operand is None:
            nodes.append(IsNull(field, negated=op == "not"))
        elif op in COMPARISON_OPERATORS:
            nodes.append(Comparison(field, COMPARISON_OPERATORS[op], operand))
        elif op in MEMBERSHIP_OPERATORS:
            if isinstance(operand, (str, bytes, Mapping)) or not hasattr(operand, "__iter__"):
                raise InvalidQueryArgument(f"'{op}' on {field} expects a list of values")
            nodes.append(Membership(field, tuple(operand), MEMBERSHIP_OPERATORS[op]))
        elif op in PATTERN_OPERATORS:
            if operand is None:
                raise InvalidQueryArgument(f"'{op}' on {field} cannot match None")
            prefix, suffix = PATTERN_OPERATORS[op]
            nodes.append(Pattern(field, prefix, suffix, operand))
        else:
            logger.warning("Ignoring unknown operator '%s' on field '%s'", op, field)
    return nodes


def render_predicate(nodes: List[PredicateNode]) -> Tuple[str, List[Any]]:
    """Render AND-ed nodes to a SQL boolean expression and unbound params."""
    fragments: List[str] = []
    params: List[Any] = []
    for node in nodes:
        fragment, node_params = _render_node(node)
        fragments.append(fragment)
        params.extend(node_params)
    return " AND ".join(fragments), params


def _render_node(node: PredicateNode) -> Tuple[str, List[Any]]:
    if isinstance(node, Comparison):
        return f"{node.field} {node.operator} ?", [node.value]
    if isinstance(node, IsNull):
        return f"{node.field} IS {'NOT ' if node.negated else ''}NULL", []
    if isinstance(node, Membership):
        placeholders = ", ".join("?" for _ in node.values)
        keyword = "NOT IN" if node.negated else "IN"
        return f"{node.field} {keyword} ({placeholders})", list(node.values)
    if isinstance(node, Pattern):
        return f"{node.field} LIKE ?", [f"{node.prefix}{coerce_scalar(node.value)}{node.suffix}"]
    if isinstance(node, Logical):
        groups: List[str] = []
        params: List[Any] = []
        for child in node.children:
            fragment, child_params = render_predicate(list(child))
            groups.append(fragment)
            params.extend(child_params)
        return f"({f' {node.connective} '.join(groups)})", params
    raise TypeError(f"Unknown predicate node: {type(node).__name__}")


def translate_where(where: Optional[Mapping]) -> Tuple[str, List[Any]]:
    """Translate a structural predicate to ``(expression, params)``.

    The expression is empty when nothing filters, so callers can omit ``WHERE``.
    Params are coerced and validated before return.
    """
    sql, params = render_predicate(parse_predicate(where))
    return sql, bind_params(params)


def where_clause(where: Optional[Mapping]) -> Tuple[str, List[Any]]:
    """Return ``("WHERE <expr>", params)`` or ``("", [])``."""
    sql, params = translate_where(where)
    if not sql:
        return "", params
    return f"WHERE {sql}", params
