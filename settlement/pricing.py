"""
Pricing — turns resolved lines and promotion amounts into order totals.

Pure: same inputs, same `Pricing`. Every amount it returns is already
quantized to cents, so `total == max(0, subtotal - discount - gift_card + shipping)`
holds exactly on the stored values.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from settlement._types import Money, ZERO, money


@dataclass(frozen=True, slots=True)
class PricedLine:
    quantity: int
    unit_price: Money


@dataclass(frozen=True, slots=True)
class Pricing:
    subtotal: Money
    discount: Money
    gift_card_amount: Money
    shipping: Money
    total: Money


def subtotal_of(lines: Iterable[PricedLine]) -> Money:
    return money(sum((line.unit_price * line.quantity for line in lines), ZERO))


def calculate(
    lines: Iterable[PricedLine],
    discount_amount: Money = ZERO,
    gift_card_balance: Money = ZERO,
    shipping: Money = ZERO,
) -> Pricing:
    """
    Discount is applied first and clamped to the subtotal; the gift card only
    covers what the discount left, and never more than its balance.
    """
    subtotal = subtotal_of(lines)

    discount = money(min(max(discount_amount, ZERO), subtotal))
    remainder = subtotal - discount
    gift_card_amount = money(min(max(gift_card_balance, ZERO), remainder))

    shipping = money(shipping)
    total = max(ZERO, subtotal - discount - gift_card_amount + shipping)

    return Pricing(
        subtotal=subtotal,
        discount=discount,
        gift_card_amount=gift_card_amount,
        shipping=shipping,
        total=money(total),
    )


__all__ = ("PricedLine", "Pricing", "subtotal_of", "calculate")
