from dataclasses import dataclass

from pos_common.config.env import get_env_bool, get_env_choice, get_env_int, get_env_str

JOURNAL_MODES = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
SYNCHRONOUS_MODES = {"OFF", "NORMAL", "FULL", "EXTRA"}


@dataclass(frozen=True)
class DalSettings:
    """Configuration for the embedded store and the query layer."""

    db_path: str = ":memory:"
    busy_timeout_ms: int = 5000
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    foreign_keys: bool = True
    max_include_depth: int = 8

    def __post_init__(self) -> None:
        if self.journal_mode not in JOURNAL_MODES:
            raise ValueError(f"Unsupported journal mode: {self.journal_mode!r}")
        if self.synchronous not in SYNCHRONOUS_MODES:
            raise ValueError(f"Unsupported synchronous mode: {self.synchronous!r}")

    @classmethod
    def from_env(cls) -> "DalSettings":
        """Load DAL settings from environment variables."""
        busy_timeout_ms = get_env_int("POS_DB_BUSY_TIMEOUT_MS", 5000)
        max_include_depth = get_env_int("POS_DAL_MAX_INCLUDE_DEPTH", 8)
        if busy_timeout_ms < 0:
            raise ValueError("POS_DB_BUSY_TIMEOUT_MS must be >= 0.")
        if max_include_depth < 1:
            raise ValueError("POS_DAL_MAX_INCLUDE_DEPTH must be >= 1.")

        return cls(
            db_path=get_env_str("POS_DB_PATH", ":memory:") or ":memory:",
            busy_timeout_ms=busy_timeout_ms,
            journal_mode=get_env_choice("POS_DB_JOURNAL_MODE", "WAL", JOURNAL_MODES),
            synchronous=get_env_choice("POS_DB_SYNCHRONOUS", "NORMAL", SYNCHRONOUS_MODES),
            foreign_keys=get_env_bool("POS_DB_FOREIGN_KEYS", True),
            max_include_depth=max_include_depth,
        )

    def pragmas(self) -> list[str]:
        """Return the PRAGMA statements applied when the connection opens."""
        return [
            f"PRAGMA journal_mode = {self.journal_mode}",
            f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}",
            f"PRAGMA synchronous = {self.synchronous}",
            f"PRAGMA foreign_keys = {'ON' if self.foreign_keys else 'OFF'}",
        ]
