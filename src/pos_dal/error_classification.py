"""Classification of store-level errors for logs and span attributes.

Classification never changes what the caller sees: the original exception is
re-raised unchanged after it is reported.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass

from pos_common.config.env import get_env_bool

logger = logging.getLogger(__name__)

_MISSING_IDENTIFIER_PATTERNS = [
    re.compile(r"no such table: (?P<name>[\w\.]+)", re.IGNORECASE),
    re.compile(r"no such column: (?P<name>[\w\.]+)", re.IGNORECASE),
    re.compile(r"table (?P<name>\w+) has no column named (?P<column>\w+)", re.IGNORECASE),
]


@dataclass(frozen=True)
class ErrorClassification:
    """Structured store error classification."""

    category: str
    is_busy: bool
    missing_identifiers: tuple[str, ...] = ()


def classify_error(exc: Exception) -> str:
    """Classify a store error into a small category vocabulary."""
    return classify_error_info(exc).category


def classify_error_info(exc: Exception) -> ErrorClassification:
    message = str(exc).lower()

    if isinstance(exc, sqlite3.IntegrityError) or "constraint failed" in message:
        return ErrorClassification("constraint", False)
    if _matches_any(message, ("database is locked", "database table is locked", "busy")):
        return ErrorClassification("busy", True)
    if _matches_any(message, ("within a transaction", "no transaction is active")):
        return ErrorClassification("transaction_state", False)
    missing = extract_missing_identifiers(str(exc))
    if missing:
        return ErrorClassification("schema_drift", False, tuple(missing))
    if _matches_any(message, ("syntax error", "incomplete input", "unrecognized token")):
        return ErrorClassification("syntax", False)
    if _matches_any(message, ("readonly database", "attempt to write a readonly")):
        return ErrorClassification("readonly", False)
    if isinstance(exc, (sqlite3.InterfaceError, sqlite3.ProgrammingError)):
        return ErrorClassification("binding", False)
    return ErrorClassification("unknown", False)


def extract_missing_identifiers(error_message: str) -> list[str]:
    """Extract missing table/column names from a SQLite error message."""
    if not error_message:
        return []
    identifiers: list[str] = []
    for pattern in _MISSING_IDENTIFIER_PATTERNS:
        for match in pattern.finditer(error_message):
            groups = match.groupdict()
            name = groups.get("column") or groups.get("name")
            if name and name not in identifiers:
                identifiers.append(name)
    return identifiers


def emit_classified_error(operation: str, exc: Exception) -> str:
    """Log and annotate the current span with a store error classification."""
    info = classify_error_info(exc)
    if not get_env_bool("POS_DAL_CLASSIFIED_ERROR_TELEMETRY", True):
        return info.category

    try:
        from opentelemetry import trace

        span = trace.get_current_span()
        if span and span.is_recording():
            span.set_attribute("error.classification.category", info.category)
            span.set_attribute("error.classification.operation", operation)
            span.set_attribute("error.classification.is_busy", info.is_busy)
    except Exception as telemetry_exc:
        logger.debug("Span annotation failed: %s", telemetry_exc)

    logger.error(
        "dal_error_classified",
        extra={
            "event": "dal_error_classified",
            "operation": operation,
            "error_category": info.category,
            "error_type": exc.__class__.__name__,
            "is_busy": info.is_busy,
            "missing_identifiers": list(info.missing_identifiers),
        },
    )
    return info.category


def _matches_any(text: str, fragments: tuple[str, ...]) -> bool:
    return any(fragment in text for fragment in fragments)
