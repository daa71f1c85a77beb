"""
settlement — checkout settlement for the sneaker storefront.

    from settlement import Coordinator, CheckoutRequest, MemoryStore

    coordinator = Coordinator(store, SettlementConfig.from_env())
    match await coordinator.settle(request):
        case Ok(settlement): ...
        case Error(error): ...

    from settlement import store as St        # Memory / SQLAlchemy stores
    from settlement import promotions as P    # Discount and gift card rules
    from settlement import http               # FastAPI app
"""

from settlement import store
from settlement import promotions
from settlement._types import (
    Result,
    Ok,
    Error,
    LazyCoroResult,
    LCR,
    Money,
    ZERO,
    money,
)
from settlement.config import SettlementConfig, configure_logging
from settlement.domain import (
    ProductStatus,
    Product,
    InventoryAdjustment,
    CartLine,
    Customer,
    ShippingAddress,
    DiscountType,
    Discount,
    GiftCardStatus,
    GiftCard,
    GiftCardTransaction,
    OrderStatus,
    OrderLineItem,
    Order,
)
from settlement.errors import (
    ErrorKind,
    Stage,
    CommitStep,
    CheckoutError,
    CheckoutErrors,
    StoreError,
    OrderConflict,
)
from settlement.pricing import PricedLine, Pricing, calculate
from settlement.catalog import ResolvedLine, read_cart
from settlement.coordinator import CheckoutRequest, Quote, Settlement, Coordinator
from settlement.inventory import AdjustedStock, adjust_inventory
from settlement.orders import transition_order
from settlement.order_number import generate_order_number
from settlement.store import MemoryStore, SQLAlchemyStore, create_database

__version__ = "0.1.0"

__all__ = (
    # Modules
    "store",
    "promotions",
    # Result types
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    "LCR",
    # Money
    "Money",
    "ZERO",
    "money",
    # Config
    "SettlementConfig",
    "configure_logging",
    # Domain
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
    # Errors
    "ErrorKind",
    "Stage",
    "CommitStep",
    "CheckoutError",
    "CheckoutErrors",
    "StoreError",
    "OrderConflict",
    # Settlement
    "PricedLine",
    "Pricing",
    "calculate",
    "ResolvedLine",
    "read_cart",
    "CheckoutRequest",
    "Quote",
    "Settlement",
    "Coordinator",
    "AdjustedStock",
    "adjust_inventory",
    "transition_order",
    "generate_order_number",
    "MemoryStore",
    "SQLAlchemyStore",
    "create_database",
)
