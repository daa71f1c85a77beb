"""
Order numbers — "MXZ-LZ3K9QW0AB7KQ".

    {prefix}-{base36 milliseconds, 9 chars}{4 random chars}

The timestamp part keeps numbers sortable by creation time; the random tail
separates orders created in the same millisecond. Uniqueness is still only
guaranteed by the store's constraint, and a collision is retried as an order
conflict.
"""

from __future__ import annotations

import secrets
import time

_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
# No 0/O, 1/I: order numbers get read over the phone.
_SUFFIX_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_TIMESTAMP_WIDTH = 9
_SUFFIX_LENGTH = 4


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_DIGITS[rem])
    return "".join(reversed(digits))


def generate_order_number(prefix: str = "MXZ", now_ms: int | None = None) -> str:
    millis = time.time_ns() // 1_000_000 if now_ms is None else now_ms
    stamp = _base36(millis).rjust(_TIMESTAMP_WIDTH, "0")[-_TIMESTAMP_WIDTH:]
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{prefix}-{stamp}{suffix}".upper()


__all__ = ("generate_order_number",)
