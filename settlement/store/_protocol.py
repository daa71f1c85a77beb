"""
Store protocol — what settlement needs from persistence.

Reads happen outside any transaction and may be stale by the time the
checkout commits. Every write goes through a `UnitOfWork` and is conditional:
it re-checks the live row and reports whether it applied. A `False` means a
concurrent writer got there first; the caller raises, and the transaction
rolls back everything done so far.

Infrastructure failures raise `StoreError`.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol

from settlement._types import Money
from settlement.domain import (
    Discount,
    GiftCard,
    GiftCardTransaction,
    InventoryAdjustment,
    Order,
    OrderStatus,
    Product,
)


class UnitOfWork(Protocol):
    """Writes inside one atomic transaction."""

    async def increment_discount_usage(self, discount_id: int) -> bool:
        """+1 `times_used` if the discount is active and below `max_uses`."""
        ...

    async def debit_gift_card(
        self, gift_card_id: int, amount: Money, order_number: str
    ) -> bool:
        """Debit if the card is active and its live balance covers `amount`."""
        ...

    async def insert_order(self, order: Order) -> None:
        """Raises `OrderConflict` on a duplicate order number or idempotency key."""
        ...

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """-quantity if live stock still covers it."""
        ...

    async def adjust_stock(self, product_id: str, delta: int) -> int | None:
        """Relative change; returns the new quantity, None if it would go negative."""
        ...

    async def record_adjustment(self, adjustment: InventoryAdjustment) -> None: ...

    async def update_order_status(
        self, order_number: str, expected: OrderStatus, new: OrderStatus
    ) -> bool:
        """Compare-and-set on the order's status."""
        ...


class Store(Protocol):
    async def get_product(self, product_id: str) -> Product | None: ...

    async def get_discount(self, code: str) -> Discount | None: ...

    async def get_gift_card(self, code: str) -> GiftCard | None: ...

    async def get_order(self, order_number: str) -> Order | None: ...

    async def find_order_by_key(self, idempotency_key: str) -> Order | None: ...

    async def list_gift_card_transactions(self, code: str) -> list[GiftCardTransaction]: ...

    async def list_inventory_adjustments(self, product_id: str) -> list[InventoryAdjustment]: ...

    async def list_orders(self) -> list[Order]: ...

    def transaction(self) -> AbstractAsyncContextManager[UnitOfWork]:
        """All-or-nothing: writes are visible only if the block exits cleanly."""
        ...

    async def add_product(self, product: Product) -> Product: ...

    async def add_discount(self, discount: Discount) -> Discount: ...

    async def add_gift_card(self, card: GiftCard) -> GiftCard: ...


def normalize_code(code: str) -> str:
    return code.strip().upper()


__all__ = ("UnitOfWork", "Store", "normalize_code")
