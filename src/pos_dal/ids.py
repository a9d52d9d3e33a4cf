import secrets
import string
import time
from typing import Optional

_BASE36_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 9


def to_base36(value: int) -> str:
    """Encode a non-negative integer in lowercase base 36."""
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_id(now_ms: Optional[int] = None) -> str:
    """Return a roughly time-ordered opaque id.

    Base-36 millisecond timestamp followed by nine random base-36 characters.
    Unique enough for row keys; not a cryptographic guarantee.
    """
    timestamp = now_ms if now_ms is not None else time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{to_base36(timestamp)}{suffix}"
