"""Identifier checks for names interpolated into generated SQL.

Field names are trusted strings supplied at each call site; there is no static
schema to check them against. They are still spliced into SQL text, so every name
must be a bare identifier before it gets there.
"""

import re

from pos_dal.errors import InvalidIdentifier

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_sql_identifier(name: object) -> bool:
    """Return True when ``name`` is a bare SQL identifier."""
    return isinstance(name, str) and bool(_IDENTIFIER_PATTERN.match(name))


def check_identifier(name: object, kind: str = "field") -> str:
    """Return ``name`` unchanged or raise InvalidIdentifier."""
    if not is_sql_identifier(name):
        raise InvalidIdentifier(kind, name)
    return name
