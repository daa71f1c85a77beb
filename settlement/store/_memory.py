"""
Memory store — single-process store for tests and local tooling.

A transaction holds the store lock and works on a staged copy of the state;
the copy replaces live state only when the block exits without an exception.
Reads never take the lock and always see the last committed state.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime

from settlement._types import Money
from settlement.domain import (
    Discount,
    GiftCard,
    GiftCardStatus,
    GiftCardTransaction,
    InventoryAdjustment,
    Order,
    OrderStatus,
    Product,
)
from settlement.errors import OrderConflict
from settlement.store._protocol import normalize_code


@dataclass(slots=True)
class _State:
    products: dict[str, Product] = field(default_factory=dict[str, Product])
    discounts: dict[int, Discount] = field(default_factory=dict[int, Discount])
    gift_cards: dict[int, GiftCard] = field(default_factory=dict[int, GiftCard])
    orders: dict[str, Order] = field(default_factory=dict[str, Order])
    order_keys: dict[str, str] = field(default_factory=dict[str, str])
    gift_card_transactions: list[GiftCardTransaction] = field(
        default_factory=list[GiftCardTransaction]
    )
    adjustments: list[InventoryAdjustment] = field(default_factory=list[InventoryAdjustment])

    def copy(self) -> _State:
        # Records are frozen, so shallow container copies are enough.
        return _State(
            products=dict(self.products),
            discounts=dict(self.discounts),
            gift_cards=dict(self.gift_cards),
            orders=dict(self.orders),
            order_keys=dict(self.order_keys),
            gift_card_transactions=list(self.gift_card_transactions),
            adjustments=list(self.adjustments),
        )


class _MemoryUnitOfWork:
    def __init__(self, state: _State) -> None:
        self._state = state

    async def increment_discount_usage(self, discount_id: int) -> bool:
        discount = self._state.discounts.get(discount_id)
        if discount is None or not discount.active:
            return False
        if discount.max_uses is not None and discount.times_used >= discount.max_uses:
            return False
        self._state.discounts[discount_id] = replace(discount, times_used=discount.times_used + 1)
        return True

    async def debit_gift_card(
        self, gift_card_id: int, amount: Money, order_number: str
    ) -> bool:
        card = self._state.gift_cards.get(gift_card_id)
        if card is None or card.status is not GiftCardStatus.ACTIVE or card.balance < amount:
            return False
        self._state.gift_cards[gift_card_id] = replace(card, balance=card.balance - amount)
        self._state.gift_card_transactions.append(
            GiftCardTransaction(
                gift_card_id=gift_card_id,
                amount=-amount,
                order_number=order_number,
                created_at=datetime.now(),
            )
        )
        return True

    async def insert_order(self, order: Order) -> None:
        if order.order_number in self._state.orders:
            raise OrderConflict(order.order_number)
        if order.idempotency_key is not None:
            if order.idempotency_key in self._state.order_keys:
                raise OrderConflict(order.order_number)
            self._state.order_keys[order.idempotency_key] = order.order_number
        self._state.orders[order.order_number] = order

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        product = self._state.products.get(product_id)
        if product is None or product.quantity < quantity:
            return False
        self._state.products[product_id] = replace(product, quantity=product.quantity - quantity)
        return True

    async def adjust_stock(self, product_id: str, delta: int) -> int | None:
        product = self._state.products.get(product_id)
        if product is None or product.quantity + delta < 0:
            return None
        self._state.products[product_id] = replace(product, quantity=product.quantity + delta)
        return product.quantity + delta

    async def record_adjustment(self, adjustment: InventoryAdjustment) -> None:
        self._state.adjustments.append(adjustment)

    async def update_order_status(
        self, order_number: str, expected: OrderStatus, new: OrderStatus
    ) -> bool:
        order = self._state.orders.get(order_number)
        if order is None or order.status is not expected:
            return False
        self._state.orders[order_number] = replace(order, status=new)
        return True


class MemoryStore:
    """
    In-memory settlement store.

    Note: single process only; transactions are serialized by one lock.
    """

    def __init__(self) -> None:
        self._state = _State()
        self._lock = asyncio.Lock()

    # ── reads ────────────────────────────────────────────────────────────────

    async def get_product(self, product_id: str) -> Product | None:
        return self._state.products.get(product_id)

    async def get_discount(self, code: str) -> Discount | None:
        code = normalize_code(code)
        return next((d for d in self._state.discounts.values() if d.code == code), None)

    async def get_gift_card(self, code: str) -> GiftCard | None:
        code = normalize_code(code)
        return next((c for c in self._state.gift_cards.values() if c.code == code), None)

    async def get_order(self, order_number: str) -> Order | None:
        return self._state.orders.get(order_number)

    async def find_order_by_key(self, idempotency_key: str) -> Order | None:
        order_number = self._state.order_keys.get(idempotency_key)
        return self._state.orders.get(order_number) if order_number else None

    async def list_gift_card_transactions(self, code: str) -> list[GiftCardTransaction]:
        card = await self.get_gift_card(code)
        if card is None:
            return []
        return [t for t in self._state.gift_card_transactions if t.gift_card_id == card.id]

    async def list_inventory_adjustments(self, product_id: str) -> list[InventoryAdjustment]:
        return [a for a in self._state.adjustments if a.product_id == product_id]

    async def list_orders(self) -> list[Order]:
        return list(self._state.orders.values())

    # ── writes ───────────────────────────────────────────────────────────────

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_MemoryUnitOfWork]:
        async with self._lock:
            staged = self._state.copy()
            yield _MemoryUnitOfWork(staged)
            self._state = staged

    async def add_product(self, product: Product) -> Product:
        async with self._lock:
            self._state.products[product.id] = product
        return product

    async def add_discount(self, discount: Discount) -> Discount:
        discount = replace(discount, code=normalize_code(discount.code))
        async with self._lock:
            self._state.discounts[discount.id] = discount
        return discount

    async def add_gift_card(self, card: GiftCard) -> GiftCard:
        card = replace(card, code=normalize_code(card.code))
        async with self._lock:
            self._state.gift_cards[card.id] = card
        return card


__all__ = ("MemoryStore",)
