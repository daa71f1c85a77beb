"""
Core types for settlement.

Re-exports from kungfu/combinators + money helpers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult

# Re-export from combinators
from combinators import LCR

# ═══════════════════════════════════════════════════════════════════════════════
# Money
# ═══════════════════════════════════════════════════════════════════════════════

type Money = Decimal
"""Currency amount. Always quantized to the minor unit before it is stored."""

MINOR_UNIT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value: Decimal | int | str) -> Money:
    """Quantize to the minor unit, rounding half up."""
    return Decimal(value).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def to_cents(value: Money) -> int:
    return int(money(value) * 100)


def from_cents(cents: int) -> Money:
    return money(Decimal(cents) / 100)


# ═══════════════════════════════════════════════════════════════════════════════
# Time
# ═══════════════════════════════════════════════════════════════════════════════

def utc(moment: datetime) -> datetime:
    """Same instant in UTC. Naive values are read as server-local time."""
    return moment.astimezone(timezone.utc)



# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Re-exports from combinators
    "LCR",
    # Money
    "Money",
    "MINOR_UNIT",
    "ZERO",
    "money",
    "to_cents",
    "from_cents",
    # Time
    "utc",
)
