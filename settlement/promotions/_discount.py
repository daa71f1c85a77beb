"""
Discount validator.

Rules run in order and the first failure wins:

    unknown or inactive code   → INVALID_CODE
    expiry passed              → EXPIRED
    times_used >= max_uses     → USAGE_LIMIT_REACHED
    subtotal < min_purchase    → BELOW_MINIMUM_PURCHASE

The amount is not clamped here; the pricing calculator caps it at the
subtotal. Usage is only checked, never claimed: the coordinator re-checks it
with a conditional increment at commit time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from settlement._types import Error, Money, Ok, Result, utc
from settlement.domain import Discount, DiscountType
from settlement.store import Store


class DiscountRejectionReason(Enum):
    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    BELOW_MINIMUM_PURCHASE = "below_minimum_purchase"


@dataclass(frozen=True, slots=True)
class DiscountRejection:
    reason: DiscountRejectionReason
    message: str


@dataclass(frozen=True, slots=True)
class DiscountApplication:
    discount_id: int
    code: str
    type: DiscountType
    value: Decimal
    amount: Money
    description: str = ""


def evaluate_discount(
    discount: Discount | None,
    subtotal: Money,
    now: datetime | None = None,
) -> Result[DiscountApplication, DiscountRejection]:
    if discount is None or not discount.active:
        return Error(
            DiscountRejection(DiscountRejectionReason.INVALID_CODE, "Invalid discount code")
        )

    if discount.expires_at is not None:
        current = utc(now) if now is not None else datetime.now(timezone.utc)
        if utc(discount.expires_at) < current:
            return Error(
                DiscountRejection(DiscountRejectionReason.EXPIRED, "Discount code expired")
            )

    if discount.max_uses is not None and discount.times_used >= discount.max_uses:
        return Error(
            DiscountRejection(
                DiscountRejectionReason.USAGE_LIMIT_REACHED,
                "Discount code usage limit reached",
            )
        )

    if discount.min_purchase is not None and subtotal < discount.min_purchase:
        return Error(
            DiscountRejection(
                DiscountRejectionReason.BELOW_MINIMUM_PURCHASE,
                f"Minimum purchase of ${discount.min_purchase:.2f} required",
            )
        )

    match discount.type:
        case DiscountType.PERCENTAGE:
            amount = subtotal * discount.value / 100
        case DiscountType.FIXED:
            amount = discount.value

    return Ok(
        DiscountApplication(
            discount_id=discount.id,
            code=discount.code,
            type=discount.type,
            value=discount.value,
            amount=amount,
            description=discount.description,
        )
    )


async def validate_discount(
    store: Store,
    code: str | None,
    subtotal: Money,
    now: datetime | None = None,
) -> Result[DiscountApplication | None, DiscountRejection]:
    """
    Look up `code` and decide. `Ok(None)` when no code was supplied.

    Store failures propagate as `StoreError`.
    """
    if code is None or not code.strip():
        return Ok(None)

    discount = await store.get_discount(code)
    return evaluate_discount(discount, subtotal, now)


__all__ = (
    "DiscountRejectionReason",
    "DiscountRejection",
    "DiscountApplication",
    "evaluate_discount",
    "validate_discount",
)
