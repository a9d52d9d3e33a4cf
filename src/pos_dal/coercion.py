"""Scalar coercion boundary between Python values and SQLite bind parameters."""

from __future__ import annotations

import json
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List
from uuid import UUID

from pos_dal.errors import InvalidParameterType

BINDABLE_TYPES = (str, int, float, bytes, bytearray, memoryview)


def coerce_scalar(value: Any) -> Any:
    """Normalize a scalar into a type SQLite binds natively.

    Booleans become 0/1, temporal values become ISO-8601 text and decimals become
    floats. Anything else is returned unchanged for validation to judge.
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    return value


def _json_default(value: Any) -> Any:
    coerced = coerce_scalar(value)
    if coerced is value:
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
    return coerced


def coerce_for_write(value: Any) -> Any:
    """Normalize a column value on the write path.

    Lists, tuples and dicts are stored as JSON text, matching how the point-of-sale
    schema keeps ``ingredients``/``allergens`` style columns.
    """
    value = coerce_scalar(value)
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, default=_json_default)
    return value


def validate_params(params: Iterable[Any]) -> List[Any]:
    """Return params as a list, raising InvalidParameterType for unbindable values."""
    validated = list(params)
    for index, param in enumerate(validated):
        if param is None:
            continue
        if isinstance(param, bool) or not isinstance(param, BINDABLE_TYPES):
            raise InvalidParameterType(index, param)
    return validated


def bind_params(values: Iterable[Any]) -> List[Any]:
    """Coerce and validate predicate/raw-query parameters."""
    return validate_params(coerce_scalar(value) for value in values)


def bind_write_params(values: Iterable[Any]) -> List[Any]:
    """Coerce and validate INSERT/UPDATE column values."""
    return validate_params(coerce_for_write(value) for value in values)
