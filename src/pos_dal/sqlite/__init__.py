"""SQLite-backed store for the DAL."""

from .store import SqliteStore, Statement

__all__ = ["SqliteStore", "Statement"]
