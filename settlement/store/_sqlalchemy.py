"""
SQLAlchemy store — settlement state in a relational database.

Every write is a conditional UPDATE whose WHERE clause restates the
invariant being protected:

    UPDATE products SET quantity = quantity - :n
     WHERE id = :id AND quantity >= :n

A rowcount of zero means the predicate no longer holds (another checkout got
there first) and the unit of work reports `False`. The whole unit of work runs
inside `session.begin()`, so raising from the block rolls every step back.

Usage:
    session_factory, engine = await create_database("sqlite+aiosqlite:///shop.db")
    store = SQLAlchemyStore(session_factory)

    async with store.transaction() as tx:
        if not await tx.decrement_stock("P1", 2):
            raise ...
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, cast

from sqlalchemy import or_, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from settlement._types import Money, from_cents, to_cents, utc
from settlement.domain import (
    Customer,
    Discount,
    DiscountType,
    GiftCard,
    GiftCardStatus,
    GiftCardTransaction,
    InventoryAdjustment,
    Order,
    OrderLineItem,
    OrderStatus,
    Product,
    ProductStatus,
    ShippingAddress,
)
from settlement.errors import OrderConflict, StoreError
from settlement.store._protocol import normalize_code
from settlement.store._tables import (
    DiscountTable,
    GiftCardTable,
    GiftCardTransactionTable,
    InventoryAdjustmentTable,
    OrderItemTable,
    OrderTable,
    ProductTable,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Row ↔ Domain
# ═══════════════════════════════════════════════════════════════════════════════

def _product(row: ProductTable) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        price=from_cents(row.price_cents),
        quantity=row.quantity,
        status=ProductStatus(row.status),
    )


def _stored_utc(moment: datetime | None) -> datetime | None:
    # SQLite drops the offset; everything is written in UTC.
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=timezone.utc)


def _discount(row: DiscountTable) -> Discount:
    return Discount(
        id=row.id,
        code=row.code,
        type=DiscountType(row.type),
        value=Decimal(row.value_hundredths) / 100,
        active=row.active,
        expires_at=_stored_utc(row.expires_at),
        min_purchase=(
            from_cents(row.min_purchase_cents) if row.min_purchase_cents is not None else None
        ),
        max_uses=row.max_uses,
        times_used=row.times_used,
        description=row.description,
    )


def _gift_card(row: GiftCardTable) -> GiftCard:
    return GiftCard(
        id=row.id,
        code=row.code,
        initial_balance=from_cents(row.initial_balance_cents),
        balance=from_cents(row.balance_cents),
        status=GiftCardStatus(row.status),
    )


def _order(row: OrderTable) -> Order:
    address = row.shipping_address
    return Order(
        order_number=row.order_number,
        customer=Customer(
            email=row.customer_email,
            name=row.customer_name,
            phone=row.customer_phone,
        ),
        shipping_address=ShippingAddress(
            line1=address["line1"],
            line2=address.get("line2", ""),
            city=address["city"],
            state=address["state"],
            postal_code=address["postal_code"],
            country=address.get("country", "US"),
            name=address.get("name", ""),
        ),
        items=tuple(
            OrderLineItem(
                product_id=item.product_id,
                name=item.name,
                size=item.size,
                quantity=item.quantity,
                unit_price=from_cents(item.unit_price_cents),
            )
            for item in row.items
        ),
        subtotal=from_cents(row.subtotal_cents),
        discount=from_cents(row.discount_cents),
        gift_card_amount=from_cents(row.gift_card_cents),
        shipping=from_cents(row.shipping_cents),
        total=from_cents(row.total_cents),
        status=OrderStatus(row.status),
        payment_method=row.payment_method,
        created_at=row.created_at,
        discount_code=row.discount_code,
        gift_card_code=row.gift_card_code,
        idempotency_key=row.idempotency_key,
    )


def _order_row(order: Order) -> OrderTable:
    address = order.shipping_address
    return OrderTable(
        order_number=order.order_number,
        idempotency_key=order.idempotency_key,
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
        subtotal_cents=to_cents(order.subtotal),
        discount_cents=to_cents(order.discount),
        gift_card_cents=to_cents(order.gift_card_amount),
        shipping_cents=to_cents(order.shipping),
        total_cents=to_cents(order.total),
        status=order.status.value,
        payment_method=order.payment_method,
        discount_code=order.discount_code,
        gift_card_code=order.gift_card_code,
        created_at=order.created_at,
        items=[
            OrderItemTable(
                position=position,
                product_id=item.product_id,
                name=item.name,
                size=item.size,
                quantity=item.quantity,
                unit_price_cents=to_cents(item.unit_price),
            )
            for position, item in enumerate(order.items)
        ],
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Unit of Work
# ═══════════════════════════════════════════════════════════════════════════════

class SQLAlchemyUnitOfWork:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _rowcount(self, stmt: Any) -> int:
        cursor = cast(
            CursorResult[Any],
            await self._session.execute(
                stmt.execution_options(synchronize_session=False)
            ),
        )
        return cursor.rowcount

    async def increment_discount_usage(self, discount_id: int) -> bool:
        stmt = (
            update(DiscountTable)
            .where(
                DiscountTable.id == discount_id,
                DiscountTable.active.is_(True),
                or_(
                    DiscountTable.max_uses.is_(None),
                    DiscountTable.times_used < DiscountTable.max_uses,
                ),
            )
            .values(times_used=DiscountTable.times_used + 1)
        )
        return await self._rowcount(stmt) == 1

    async def debit_gift_card(
        self, gift_card_id: int, amount: Money, order_number: str
    ) -> bool:
        cents = to_cents(amount)
        stmt = (
            update(GiftCardTable)
            .where(
                GiftCardTable.id == gift_card_id,
                GiftCardTable.status == GiftCardStatus.ACTIVE.value,
                GiftCardTable.balance_cents >= cents,
            )
            .values(balance_cents=GiftCardTable.balance_cents - cents)
        )
        if await self._rowcount(stmt) != 1:
            return False

        self._session.add(
            GiftCardTransactionTable(
                gift_card_id=gift_card_id,
                amount_cents=-cents,
                order_number=order_number,
                created_at=datetime.now(),
            )
        )
        return True

    async def insert_order(self, order: Order) -> None:
        self._session.add(_order_row(order))
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise OrderConflict(order.order_number) from e

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        stmt = (
            update(ProductTable)
            .where(ProductTable.id == product_id, ProductTable.quantity >= quantity)
            .values(quantity=ProductTable.quantity - quantity)
        )
        return await self._rowcount(stmt) == 1

    async def adjust_stock(self, product_id: str, delta: int) -> int | None:
        stmt = (
            update(ProductTable)
            .where(ProductTable.id == product_id, ProductTable.quantity + delta >= 0)
            .values(quantity=ProductTable.quantity + delta)
        )
        if await self._rowcount(stmt) != 1:
            return None

        result = await self._session.execute(
            select(ProductTable.quantity).where(ProductTable.id == product_id)
        )
        return result.scalar_one()

    async def record_adjustment(self, adjustment: InventoryAdjustment) -> None:
        self._session.add(
            InventoryAdjustmentTable(
                product_id=adjustment.product_id,
                size=adjustment.size,
                adjustment=adjustment.adjustment,
                reason=adjustment.reason,
                adjusted_by=adjustment.adjusted_by,
                created_at=adjustment.created_at,
            )
        )
        await self._session.flush()

    async def update_order_status(
        self, order_number: str, expected: OrderStatus, new: OrderStatus
    ) -> bool:
        stmt = (
            update(OrderTable)
            .where(
                OrderTable.order_number == order_number,
                OrderTable.status == expected.value,
            )
            .values(status=new.value)
        )
        return await self._rowcount(stmt) == 1


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════

class SQLAlchemyStore:
    """
    Settlement store over an async SQLAlchemy session factory.

    Reads use a short-lived session each; `transaction()` opens one session
    and one database transaction for the whole block.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _scalar(self, stmt: Any, what: str) -> Any:
        try:
            async with self._session_factory() as session:
                return (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to get {what}: {e}", e) from e

    async def _scalars(self, stmt: Any, what: str) -> list[Any]:
        try:
            async with self._session_factory() as session:
                return list((await session.execute(stmt)).scalars())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list {what}: {e}", e) from e

    # ── reads ────────────────────────────────────────────────────────────────

    async def get_product(self, product_id: str) -> Product | None:
        row = await self._scalar(
            select(ProductTable).where(ProductTable.id == product_id), "product"
        )
        return _product(row) if row else None

    async def get_discount(self, code: str) -> Discount | None:
        row = await self._scalar(
            select(DiscountTable).where(DiscountTable.code == normalize_code(code)),
            "discount",
        )
        return _discount(row) if row else None

    async def get_gift_card(self, code: str) -> GiftCard | None:
        row = await self._scalar(
            select(GiftCardTable).where(GiftCardTable.code == normalize_code(code)),
            "gift card",
        )
        return _gift_card(row) if row else None

    async def get_order(self, order_number: str) -> Order | None:
        row = await self._scalar(
            select(OrderTable).where(OrderTable.order_number == order_number), "order"
        )
        return _order(row) if row else None

    async def find_order_by_key(self, idempotency_key: str) -> Order | None:
        row = await self._scalar(
            select(OrderTable).where(OrderTable.idempotency_key == idempotency_key),
            "order",
        )
        return _order(row) if row else None

    async def list_gift_card_transactions(self, code: str) -> list[GiftCardTransaction]:
        rows = await self._scalars(
            select(GiftCardTransactionTable)
            .join(GiftCardTable, GiftCardTable.id == GiftCardTransactionTable.gift_card_id)
            .where(GiftCardTable.code == normalize_code(code))
            .order_by(GiftCardTransactionTable.id),
            "gift card transactions",
        )
        return [
            GiftCardTransaction(
                gift_card_id=row.gift_card_id,
                amount=from_cents(row.amount_cents),
                order_number=row.order_number,
                created_at=row.created_at,
            )
            for row in rows
        ]

    async def list_inventory_adjustments(self, product_id: str) -> list[InventoryAdjustment]:
        rows = await self._scalars(
            select(InventoryAdjustmentTable)
            .where(InventoryAdjustmentTable.product_id == product_id)
            .order_by(InventoryAdjustmentTable.id),
            "inventory adjustments",
        )
        return [
            InventoryAdjustment(
                product_id=row.product_id,
                adjustment=row.adjustment,
                reason=row.reason,
                created_at=row.created_at,
                size=row.size,
                adjusted_by=row.adjusted_by,
            )
            for row in rows
        ]

    async def list_orders(self) -> list[Order]:
        rows = await self._scalars(
            select(OrderTable).order_by(OrderTable.created_at), "orders"
        )
        return [_order(row) for row in rows]

    # ── writes ───────────────────────────────────────────────────────────────

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLAlchemyUnitOfWork]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield SQLAlchemyUnitOfWork(session)
        except SQLAlchemyError as e:
            raise StoreError(f"Transaction failed: {e}", e) from e

    async def _add(self, row: Any, what: str) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to add {what}: {e}", e) from e

    async def add_product(self, product: Product) -> Product:
        await self._add(
            ProductTable(
                id=product.id,
                name=product.name,
                price_cents=to_cents(product.price),
                quantity=product.quantity,
                status=product.status.value,
            ),
            "product",
        )
        return product

    async def add_discount(self, discount: Discount) -> Discount:
        code = normalize_code(discount.code)
        await self._add(
            DiscountTable(
                id=discount.id,
                code=code,
                type=discount.type.value,
                value_hundredths=to_cents(discount.value),
                active=discount.active,
                expires_at=utc(discount.expires_at) if discount.expires_at is not None else None,
                min_purchase_cents=(
                    to_cents(discount.min_purchase) if discount.min_purchase is not None else None
                ),
                max_uses=discount.max_uses,
                times_used=discount.times_used,
                description=discount.description,
            ),
            "discount",
        )
        return await self.get_discount(code) or discount

    async def add_gift_card(self, card: GiftCard) -> GiftCard:
        code = normalize_code(card.code)
        await self._add(
            GiftCardTable(
                id=card.id,
                code=code,
                initial_balance_cents=to_cents(card.initial_balance),
                balance_cents=to_cents(card.balance),
                status=card.status.value,
            ),
            "gift card",
        )
        return await self.get_gift_card(code) or card


__all__ = ("SQLAlchemyStore", "SQLAlchemyUnitOfWork")
