"""
HTTP — FastAPI routes over the coordinator and promotion validators.

    from settlement.http import create_app

    app = create_app(store, SettlementConfig.from_env())
"""

from settlement.http._app import create_app, status_for, ERROR_STATUS_CODES
from settlement.http._schemas import (
    CartLineIn,
    CustomerIn,
    ShippingAddressIn,
    CheckoutIn,
    DiscountValidateIn,
    GiftCardCodeIn,
    OrderItemOut,
    OrderOut,
    CheckoutOut,
    QuoteLineOut,
    QuoteOut,
    DiscountOut,
    GiftCardBalanceOut,
)

__all__ = (
    # App
    "create_app",
    "status_for",
    "ERROR_STATUS_CODES",
    # Requests
    "CartLineIn",
    "CustomerIn",
    "ShippingAddressIn",
    "CheckoutIn",
    "DiscountValidateIn",
    "GiftCardCodeIn",
    # Responses
    "OrderItemOut",
    "OrderOut",
    "CheckoutOut",
    "QuoteLineOut",
    "QuoteOut",
    "DiscountOut",
    "GiftCardBalanceOut",
)
