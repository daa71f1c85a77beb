"""
Promotions — discount codes and gift cards.

    from settlement import promotions as P

    match await P.validate_discount(store, "SAVE10", subtotal):
        case Ok(None):
            ...  # no code supplied
        case Ok(application):
            application.amount
        case Error(rejection):
            rejection.reason, rejection.message

Each validator is a read followed by a pure `evaluate_*` decision, so the
rules can be tested without a store.
"""

from settlement.promotions._discount import (
    DiscountRejectionReason,
    DiscountRejection,
    DiscountApplication,
    evaluate_discount,
    validate_discount,
)
from settlement.promotions._gift_card import (
    GiftCardRejectionReason,
    GiftCardRejection,
    GiftCardApplication,
    GiftCardBalance,
    evaluate_gift_card,
    validate_gift_card,
    lookup_gift_card,
)

__all__ = (
    # Discounts
    "DiscountRejectionReason",
    "DiscountRejection",
    "DiscountApplication",
    "evaluate_discount",
    "validate_discount",
    # Gift cards
    "GiftCardRejectionReason",
    "GiftCardRejection",
    "GiftCardApplication",
    "GiftCardBalance",
    "evaluate_gift_card",
    "validate_gift_card",
    "lookup_gift_card",
)
