"""
Domain — sneaker storefront checkout.

Products and promotions are shared, mutable records that live in the store.
Everything a checkout produces is a value snapshot: an order keeps the name
and unit price each line was sold at, never a live reference to the product.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from settlement._types import Money, money


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════


class ProductStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True, slots=True)
class Product:
    id: str
    name: str
    price: Money
    quantity: int
    status: ProductStatus = ProductStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status is ProductStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class InventoryAdjustment:
    product_id: str
    adjustment: int
    reason: str
    created_at: datetime
    size: str | None = None
    adjusted_by: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartLine:
    product_id: str
    quantity: int
    size: str = ""


@dataclass(frozen=True, slots=True)
class Customer:
    email: str
    name: str = ""
    phone: str = ""


@dataclass(frozen=True, slots=True)
class ShippingAddress:
    line1: str
    city: str
    state: str
    postal_code: str
    country: str = "US"
    line2: str = ""
    name: str = ""


# ═══════════════════════════════════════════════════════════════════════════════
# Promotions
# ═══════════════════════════════════════════════════════════════════════════════


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True, slots=True)
class Discount:
    """
    Admin-defined discount code.

    `times_used` only ever grows, and never past `max_uses` when one is set.
    """

    id: int
    code: str
    type: DiscountType
    value: Decimal
    active: bool = True
    expires_at: datetime | None = None
    min_purchase: Money | None = None
    max_uses: int | None = None
    times_used: int = 0
    description: str = ""


class GiftCardStatus(Enum):
    ACTIVE = "active"
    DISABLED = "disabled"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class GiftCard:
    """Stored-value card. Invariant: 0 <= balance <= initial_balance."""

    id: int
    code: str
    initial_balance: Money
    balance: Money
    status: GiftCardStatus = GiftCardStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class GiftCardTransaction:
    gift_card_id: int
    amount: Money  # negative for a debit
    order_number: str | None
    created_at: datetime


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


@dataclass(frozen=True, slots=True)
class OrderLineItem:
    product_id: str
    name: str
    size: str
    quantity: int
    unit_price: Money

    @property
    def line_total(self) -> Money:
        return money(self.unit_price * self.quantity)


@dataclass(frozen=True, slots=True)
class Order:
    order_number: str
    customer: Customer
    shipping_address: ShippingAddress
    items: tuple[OrderLineItem, ...]
    subtotal: Money
    discount: Money
    gift_card_amount: Money
    shipping: Money
    total: Money
    status: OrderStatus
    payment_method: str
    created_at: datetime
    discount_code: str | None = None
    gift_card_code: str | None = None
    idempotency_key: str | None = None

    @property
    def units(self) -> int:
        return sum(item.quantity for item in self.items)


__all__ = (
    "ProductStatus",
    "Product",
    "InventoryAdjustment",
    "CartLine",
    "Customer",
    "ShippingAddress",
    "DiscountType",
    "Discount",
    "GiftCardStatus",
    "GiftCard",
    "GiftCardTransaction",
    "OrderStatus",
    "OrderLineItem",
    "Order",
)
