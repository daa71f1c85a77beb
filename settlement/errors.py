"""
Errors — what a checkout can fail with.

`CheckoutError` is the single error type surfaced to callers. It carries a
machine-readable `kind`, a message safe to show a customer, and the stage
(and commit sub-step) where settlement stopped.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    # Input validation, rejected before any store access
    EMPTY_CART = "empty_cart"
    MISSING_CUSTOMER = "missing_customer"
    MISSING_ADDRESS = "missing_address"
    INVALID_QUANTITY = "invalid_quantity"
    # Resource state
    PRODUCT_NOT_FOUND = "product_not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    INVALID_DISCOUNT = "invalid_discount"
    INVALID_GIFT_CARD = "invalid_gift_card"
    ORDER_NOT_FOUND = "order_not_found"
    INVALID_TRANSITION = "invalid_transition"
    # Lost a race at commit time
    CONFLICT = "conflict"
    # Store unavailable or misbehaving
    SERVER_ERROR = "server_error"


class Stage(Enum):
    """Settlement state machine."""

    VALIDATING = "validating"
    PRICING = "pricing"
    RESERVING = "reserving"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class CommitStep(Enum):
    DISCOUNT_USAGE = "discount_usage"
    GIFT_CARD_DEBIT = "gift_card_debit"
    ORDER_INSERT = "order_insert"
    STOCK_DECREMENT = "stock_decrement"
    ORDER_STATUS = "order_status"


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout Error
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutError(Exception):
    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        stage: Stage = Stage.VALIDATING,
        step: CommitStep | None = None,
        product_id: str | None = None,
        product_name: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.stage = stage
        self.step = step
        self.product_id = product_id
        self.product_name = product_name
        self.field = field

    def to_dict(self) -> dict[str, str]:
        data = {"kind": self.kind.value, "message": self.message, "stage": self.stage.value}
        if self.step is not None:
            data["step"] = self.step.value
        if self.product_id is not None:
            data["product_id"] = self.product_id
        if self.product_name is not None:
            data["product_name"] = self.product_name
        if self.field is not None:
            data["field"] = self.field
        return data

    def __repr__(self) -> str:
        return f"CheckoutError({self.kind.name}, {self.message!r})"


class CheckoutErrors:
    @staticmethod
    def empty_cart() -> CheckoutError:
        return CheckoutError(ErrorKind.EMPTY_CART, "Cart is empty", field="items")

    @staticmethod
    def missing_customer() -> CheckoutError:
        return CheckoutError(
            ErrorKind.MISSING_CUSTOMER, "Customer email required", field="customer.email"
        )

    @staticmethod
    def missing_address() -> CheckoutError:
        return CheckoutError(
            ErrorKind.MISSING_ADDRESS, "Shipping address required", field="shipping_address"
        )

    @staticmethod
    def invalid_quantity(product_id: str) -> CheckoutError:
        return CheckoutError(
            ErrorKind.INVALID_QUANTITY,
            "Quantity must be at least 1",
            product_id=product_id,
            field="items.quantity",
        )

    @staticmethod
    def product_not_found(product_id: str) -> CheckoutError:
        return CheckoutError(
            ErrorKind.PRODUCT_NOT_FOUND,
            f"Product {product_id} not found",
            product_id=product_id,
        )

    @staticmethod
    def insufficient_stock(
        product_id: str,
        name: str,
        *,
        stage: Stage = Stage.VALIDATING,
        step: CommitStep | None = None,
    ) -> CheckoutError:
        return CheckoutError(
            ErrorKind.INSUFFICIENT_STOCK,
            f"{name} is out of stock. Lower the quantity or try again later.",
            stage=stage,
            step=step,
            product_id=product_id,
            product_name=name,
        )

    @staticmethod
    def invalid_discount(message: str) -> CheckoutError:
        return CheckoutError(
            ErrorKind.INVALID_DISCOUNT, message, stage=Stage.PRICING, field="discount_code"
        )

    @staticmethod
    def invalid_gift_card(message: str) -> CheckoutError:
        return CheckoutError(
            ErrorKind.INVALID_GIFT_CARD, message, stage=Stage.PRICING, field="gift_card_code"
        )

    @staticmethod
    def conflict(
        step: CommitStep,
        message: str,
        stage: Stage = Stage.RESERVING,
        *,
        product_id: str | None = None,
        product_name: str | None = None,
    ) -> CheckoutError:
        return CheckoutError(
            ErrorKind.CONFLICT,
            f"{message} Please try again.",
            stage=stage,
            step=step,
            product_id=product_id,
            product_name=product_name,
        )

    @staticmethod
    def order_not_found(order_number: str) -> CheckoutError:
        return CheckoutError(ErrorKind.ORDER_NOT_FOUND, f"Order {order_number} not found")

    @staticmethod
    def invalid_transition(current: str, target: str) -> CheckoutError:
        return CheckoutError(
            ErrorKind.INVALID_TRANSITION,
            f"Cannot move an order from {current} to {target}",
            field="status",
        )

    @staticmethod
    def server_error(stage: Stage) -> CheckoutError:
        return CheckoutError(ErrorKind.SERVER_ERROR, "Server error", stage=stage)


# ═══════════════════════════════════════════════════════════════════════════════
# Store Errors
# ═══════════════════════════════════════════════════════════════════════════════


class StoreError(Exception):
    """Storage operation error."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class OrderConflict(Exception):
    """Order number or idempotency key already taken."""

    def __init__(self, order_number: str) -> None:
        super().__init__(f"Order {order_number} conflicts with an existing order")
        self.order_number = order_number


__all__ = (
    "ErrorKind",
    "Stage",
    "CommitStep",
    "CheckoutError",
    "CheckoutErrors",
    "StoreError",
    "OrderConflict",
)
