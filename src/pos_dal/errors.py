"""Exception taxonomy for the query-translation layer.

Translator and parameter-validation errors are raised before any SQL reaches the
store. Store-level errors (``sqlite3.IntegrityError``, ``sqlite3.OperationalError``)
are never wrapped; they reach the caller unchanged.
"""


class DalError(Exception):
    """Base class for errors raised by the DAL itself."""


class InvalidParameterType(DalError, TypeError):
    """A value destined for parameter binding is not a supported primitive."""

    def __init__(self, index: int, value: object) -> None:
        self.index = index
        self.value_type = type(value).__name__
        super().__init__(
            "SQLite can only bind numbers, strings, bytes, and None. "
            f"Got {self.value_type} at parameter {index}."
        )


class NoFieldsToUpdate(DalError, ValueError):
    """A single-record update had no fields left once ``id`` was excluded."""

    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"No fields to update on table '{table}'.")


class InvalidIdentifier(DalError, ValueError):
    """A table, field or relation name is not a plain SQL identifier."""

    def __init__(self, kind: str, name: object) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"Invalid {kind} name: {name!r}.")


class InvalidQueryArgument(DalError, ValueError):
    """A structural query argument (pagination, ordering) is malformed."""


class IncludeDepthExceeded(DalError):
    """An include tree nests deeper than the configured limit."""

    def __init__(self, table: str, max_depth: int) -> None:
        self.table = table
        self.max_depth = max_depth
        super().__init__(
            f"Include tree exceeds max depth {max_depth} at table '{table}'. "
            "Check for a self-referential include."
        )
