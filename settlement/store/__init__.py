"""
Store — persistence for catalog, promotions and orders.

    from settlement import store as St

    # Tests and local tooling
    store = St.MemoryStore()

    # Relational database
    session_factory, engine = await St.create_database("sqlite+aiosqlite:///shop.db")
    store = St.SQLAlchemyStore(session_factory)

Both implementations satisfy `St.Store`: unlocked reads, plus an atomic
`transaction()` whose unit of work only applies conditional writes.
"""

from settlement.store._protocol import (
    Store,
    UnitOfWork,
    normalize_code,
)
from settlement.store._memory import MemoryStore
from settlement.store._sqlalchemy import SQLAlchemyStore, SQLAlchemyUnitOfWork
from settlement.store._tables import (
    Base,
    ProductTable,
    InventoryAdjustmentTable,
    DiscountTable,
    GiftCardTable,
    GiftCardTransactionTable,
    OrderTable,
    OrderItemTable,
    create_database,
)

__all__ = (
    # Protocol
    "Store",
    "UnitOfWork",
    "normalize_code",
    # Implementations
    "MemoryStore",
    "SQLAlchemyStore",
    "SQLAlchemyUnitOfWork",
    # Tables
    "Base",
    "ProductTable",
    "InventoryAdjustmentTable",
    "DiscountTable",
    "GiftCardTable",
    "GiftCardTransactionTable",
    "OrderTable",
    "OrderItemTable",
    "create_database",
)
