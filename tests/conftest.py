"""Pytest fixtures for settlement tests."""

import asyncio
from datetime import datetime
from decimal import Decimal

import pytest

from settlement import (
    CartLine,
    CheckoutRequest,
    Coordinator,
    Customer,
    Discount,
    DiscountType,
    Error,
    GiftCard,
    GiftCardStatus,
    MemoryStore,
    Ok,
    Product,
    ProductStatus,
    SettlementConfig,
    ShippingAddress,
)

CUSTOMER = Customer(email="jordan@example.com", name="Jordan Doe", phone="555-0100")
ADDRESS = ShippingAddress(
    line1="1 Court St", city="Brooklyn", state="NY", postal_code="11201", name="Jordan Doe"
)

PRODUCTS = (
    Product(id="P1", name="Air Max 90", price=Decimal("50.00"), quantity=10),
    Product(id="P2", name="Jordan 1 Retro High", price=Decimal("120.00"), quantity=3),
    Product(id="LAST", name="Dunk Low Panda", price=Decimal("110.00"), quantity=1),
    Product(
        id="OFF", name="Yeezy 350", price=Decimal("230.00"), quantity=5,
        status=ProductStatus.INACTIVE,
    ),
)

DISCOUNTS = (
    Discount(id=1, code="SAVE10", type=DiscountType.PERCENTAGE, value=Decimal("10")),
    Discount(id=2, code="FIVE", type=DiscountType.FIXED, value=Decimal("5")),
    Discount(
        id=3, code="BIG100", type=DiscountType.PERCENTAGE, value=Decimal("20"),
        min_purchase=Decimal("100.00"),
    ),
    Discount(
        id=4, code="SUMMER20", type=DiscountType.PERCENTAGE, value=Decimal("20"),
        expires_at=datetime(2020, 9, 1),
    ),
    Discount(id=5, code="ONCE", type=DiscountType.FIXED, value=Decimal("15"), max_uses=1),
    Discount(
        id=6, code="USEDUP", type=DiscountType.FIXED, value=Decimal("15"),
        max_uses=1, times_used=1,
    ),
    Discount(id=7, code="RETIRED", type=DiscountType.FIXED, value=Decimal("15"), active=False),
    Discount(id=8, code="HUGE", type=DiscountType.FIXED, value=Decimal("500")),
)

GIFT_CARDS = (
    GiftCard(id=1, code="GC30", initial_balance=Decimal("30.00"), balance=Decimal("30.00")),
    GiftCard(id=2, code="GC-EMPTY", initial_balance=Decimal("50.00"), balance=Decimal("0.00")),
    GiftCard(
        id=3, code="GC-OFF", initial_balance=Decimal("50.00"), balance=Decimal("50.00"),
        status=GiftCardStatus.DISABLED,
    ),
    GiftCard(id=4, code="GC500", initial_balance=Decimal("500.00"), balance=Decimal("500.00")),
)


async def seed(store):
    for product in PRODUCTS:
        await store.add_product(product)
    for discount in DISCOUNTS:
        await store.add_discount(discount)
    for card in GIFT_CARDS:
        await store.add_gift_card(card)
    return store


def checkout(*lines, **kwargs) -> CheckoutRequest:
    """Checkout request with a valid customer and address."""
    kwargs.setdefault("customer", CUSTOMER)
    kwargs.setdefault("shipping_address", ADDRESS)
    return CheckoutRequest(lines=tuple(lines), **kwargs)


def line(product_id: str, quantity: int = 1, size: str = "10") -> CartLine:
    return CartLine(product_id=product_id, quantity=quantity, size=size)


@pytest.fixture
def config():
    """Default config without retry backoff."""
    return SettlementConfig().with_max_attempts(3, backoff=0)


@pytest.fixture
def store():
    """Memory store seeded with the catalog above."""
    return asyncio.run(seed(MemoryStore()))


@pytest.fixture
def coordinator(store, config):
    return Coordinator(store, config)


def ok(result):
    match result:
        case Ok(value):
            return value
        case Error(e):
            pytest.fail(f"expected Ok, got Error({e!r})")


def err(result):
    match result:
        case Error(e):
            return e
        case Ok(value):
            pytest.fail(f"expected Error, got Ok({value!r})")


class StaleReads:
    """
    Serves the given records instead of live ones, as if they were read just
    before another checkout committed.

    `times` bounds how many stale reads are served per record (None: always).
    """

    def __init__(self, live, *, products=(), discounts=(), gift_cards=(), times=None):
        self._live = live
        self._products = {p.id: p for p in products}
        self._discounts = {d.code: d for d in discounts}
        self._gift_cards = {c.code: c for c in gift_cards}
        self._served: dict[str, int] = {}
        self._times = times

    def _stale(self, key):
        served = self._served.get(key, 0)
        if self._times is not None and served >= self._times:
            return False
        self._served[key] = served + 1
        return True

    def __getattr__(self, name):
        return getattr(self._live, name)

    async def get_product(self, product_id):
        if product_id in self._products and self._stale(f"product:{product_id}"):
            return self._products[product_id]
        return await self._live.get_product(product_id)

    async def get_discount(self, code):
        key = code.strip().upper()
        if key in self._discounts and self._stale(f"discount:{key}"):
            return self._discounts[key]
        return await self._live.get_discount(code)

    async def get_gift_card(self, code):
        key = code.strip().upper()
        if key in self._gift_cards and self._stale(f"gift_card:{key}"):
            return self._gift_cards[key]
        return await self._live.get_gift_card(code)

