"""
Wire schemas — strict request bodies, response bodies built from the domain.

Request models reject unknown fields and carry no prices: a client can name
products and quantities, never what they cost.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from settlement._types import money
from settlement.coordinator import CheckoutRequest, Quote, Settlement
from settlement.domain import CartLine, Customer, Order, ShippingAddress
from settlement.promotions import DiscountApplication, GiftCardBalance


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ═══════════════════════════════════════════════════════════════════════════════
# Requests
# ═══════════════════════════════════════════════════════════════════════════════

class CartLineIn(_Strict):
    product_id: str = Field(min_length=1)
    size: str = ""
    quantity: int = 1

    def to_domain(self) -> CartLine:
        return CartLine(product_id=self.product_id, quantity=self.quantity, size=self.size)


class CustomerIn(_Strict):
    email: str = ""
    name: str = ""
    phone: str = ""

    def to_domain(self) -> Customer:
        return Customer(email=self.email.strip(), name=self.name, phone=self.phone)


class ShippingAddressIn(_Strict):
    name: str = ""
    line1: str = ""
    line2: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "US"

    def to_domain(self) -> ShippingAddress:
        return ShippingAddress(
            line1=self.line1,
            line2=self.line2,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
            country=self.country,
            name=self.name,
        )


class CheckoutIn(_Strict):
    items: list[CartLineIn] = Field(default_factory=list[CartLineIn])
    customer: CustomerIn | None = None
    shipping_address: ShippingAddressIn | None = None
    discount_code: str | None = None
    gift_card_code: str | None = None
    payment_method: str | None = None

    def to_domain(self, idempotency_key: str | None = None) -> CheckoutRequest:
        return CheckoutRequest(
            lines=tuple(item.to_domain() for item in self.items),
            customer=self.customer.to_domain() if self.customer else None,
            shipping_address=(
                self.shipping_address.to_domain() if self.shipping_address else None
            ),
            discount_code=self.discount_code or None,
            gift_card_code=self.gift_card_code or None,
            payment_method=self.payment_method or None,
            idempotency_key=idempotency_key,
        )


class DiscountValidateIn(_Strict):
    code: str = ""
    subtotal: Decimal = Decimal("0")


class GiftCardCodeIn(_Strict):
    code: str = ""


# ═══════════════════════════════════════════════════════════════════════════════
# Responses
# ═══════════════════════════════════════════════════════════════════════════════

class OrderItemOut(BaseModel):
    product_id: str
    name: str
    size: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class OrderOut(BaseModel):
    order_number: str
    status: str
    customer_email: str
    customer_name: str
    customer_phone: str
    shipping_address: dict[str, str]
    items: list[OrderItemOut]
    subtotal: Decimal
    discount: Decimal
    gift_card_amount: Decimal
    shipping: Decimal
    total: Decimal
    payment_method: str
    discount_code: str | None
    gift_card_code: str | None
    created_at: datetime

    @classmethod
    def from_domain(cls, order: Order) -> OrderOut:
        address = order.shipping_address
        return cls(
            order_number=order.order_number,
            status=order.status.value,
            customer_email=order.customer.email,
            customer_name=order.customer.name,
            customer_phone=order.customer.phone,
            shipping_address={
                "name": address.name,
                "line1": address.line1,
                "line2": address.line2,
                "city": address.city,
                "state": address.state,
                "postal_code": address.postal_code,
                "country": address.country,
            },
            items=[
                OrderItemOut(
                    product_id=item.product_id,
                    name=item.name,
                    size=item.size,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                )
                for item in order.items
            ],
            subtotal=order.subtotal,
            discount=order.discount,
            gift_card_amount=order.gift_card_amount,
            shipping=order.shipping,
            total=order.total,
            payment_method=order.payment_method,
            discount_code=order.discount_code,
            gift_card_code=order.gift_card_code,
            created_at=order.created_at,
        )


class CheckoutOut(BaseModel):
    order: OrderOut
    order_number: str
    replayed: bool = False
    notices: list[str] = Field(default_factory=list[str])

    @classmethod
    def from_domain(cls, settlement: Settlement) -> CheckoutOut:
        return cls(
            order=OrderOut.from_domain(settlement.order),
            order_number=settlement.order.order_number,
            replayed=settlement.replayed,
            notices=list(settlement.notices),
        )


class QuoteLineOut(BaseModel):
    product_id: str
    name: str
    size: str
    quantity: int
    unit_price: Decimal


class QuoteOut(BaseModel):
    items: list[QuoteLineOut]
    subtotal: Decimal
    discount: Decimal
    gift_card_amount: Decimal
    shipping: Decimal
    total: Decimal
    discount_code: str | None = None
    notices: list[str] = Field(default_factory=list[str])

    @classmethod
    def from_domain(cls, quote: Quote) -> QuoteOut:
        pricing = quote.pricing
        return cls(
            items=[
                QuoteLineOut(
                    product_id=line.product_id,
                    name=line.name,
                    size=line.line.size,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for line in quote.lines
            ],
            subtotal=pricing.subtotal,
            discount=pricing.discount,
            gift_card_amount=pricing.gift_card_amount,
            shipping=pricing.shipping,
            total=pricing.total,
            discount_code=quote.discount.code if quote.discount else None,
            notices=list(quote.notices),
        )


class DiscountOut(BaseModel):
    code: str
    type: str
    value: Decimal
    amount: Decimal
    description: str

    @classmethod
    def from_domain(cls, application: DiscountApplication) -> DiscountOut:
        return cls(
            code=application.code,
            type=application.type.value,
            value=application.value,
            amount=money(application.amount),
            description=application.description,
        )


class GiftCardBalanceOut(BaseModel):
    balance: Decimal
    status: str

    @classmethod
    def from_domain(cls, card: GiftCardBalance) -> GiftCardBalanceOut:
        return cls(balance=card.balance, status=card.status.value)


def error_body(message: str, **extra: Any) -> dict[str, Any]:
    return {"error": message, **extra}


__all__ = (
    "CartLineIn",
    "CustomerIn",
    "ShippingAddressIn",
    "CheckoutIn",
    "DiscountValidateIn",
    "GiftCardCodeIn",
    "OrderItemOut",
    "OrderOut",
    "CheckoutOut",
    "QuoteLineOut",
    "QuoteOut",
    "DiscountOut",
    "GiftCardBalanceOut",
    "error_body",
)
