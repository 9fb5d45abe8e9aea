"""Record identifier generation.

Identifiers are `<PREFIX>-<base36 epoch millis>-<random hex>`, uppercased, so
they sort by creation time and stay unique across concurrent writers.
"""

from __future__ import annotations

import secrets
import time
from enum import Enum

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class IdPrefix(str, Enum):
    """Identifier prefix per record kind, with its random suffix size in bytes."""

    DELIVERY = "DD"
    RECEIPT = "DR"
    SERVICE = "DS"
    AFFIDAVIT = "DA"
    BULK = "DB"

    @property
    def random_bytes(self) -> int:
        return _RANDOM_BYTES[self]


_RANDOM_BYTES = {
    IdPrefix.DELIVERY: 8,
    IdPrefix.RECEIPT: 6,
    IdPrefix.SERVICE: 4,
    IdPrefix.AFFIDAVIT: 4,
    IdPrefix.BULK: 4,
}


def to_base36(value: int) -> str:
    """Encode a non-negative integer in lowercase base 36."""
    if value < 0:
        msg = "base36 encoding requires a non-negative integer"
        raise ValueError(msg)
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id(prefix: IdPrefix, *, now_ms: int | None = None) -> str:
    """Generate a new identifier for the given record kind."""
    millis = now_ms if now_ms is not None else time.time_ns() // 1_000_000
    suffix = secrets.token_hex(prefix.random_bytes)
    return f"{prefix.value}-{to_base36(millis)}-{suffix}".upper()


def has_prefix(identifier: str, prefix: IdPrefix) -> bool:
    """Check that an identifier carries the expected record prefix."""
    return isinstance(identifier, str) and identifier.startswith(f"{prefix.value}-")
