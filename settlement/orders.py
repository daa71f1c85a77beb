"""
Order status transitions.

    pending → confirmed → processing → shipped → delivered
       │          │            │
       └──────────┴────────────┴──→ cancelled

    confirmed / processing / shipped / delivered ──→ refunded

A transition is a compare-and-set on the status read just before it, so two
staff members acting on one order cannot both win.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from settlement._types import Error, Ok, Result
from settlement.domain import Order, OrderStatus
from settlement.errors import CheckoutError, CheckoutErrors, CommitStep, Stage, StoreError
from settlement.store import Store

logger = logging.getLogger(__name__)

_PAID = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
})

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({
        OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED,
    }),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def is_paid(status: OrderStatus) -> bool:
    return status in _PAID


async def transition_order(
    store: Store, order_number: str, target: OrderStatus
) -> Result[Order, CheckoutError]:
    try:
        order = await store.get_order(order_number)
        if order is None:
            return Error(CheckoutErrors.order_not_found(order_number))
        if not can_transition(order.status, target):
            return Error(CheckoutErrors.invalid_transition(order.status.value, target.value))

        async with store.transaction() as tx:
            if not await tx.update_order_status(order_number, order.status, target):
                raise CheckoutErrors.conflict(
                    CommitStep.ORDER_STATUS,
                    f"Order {order_number} was updated by someone else.",
                    stage=Stage.COMMITTING,
                )
    except CheckoutError as e:
        return Error(e)
    except StoreError:
        logger.exception("Status change failed for %s", order_number)
        return Error(CheckoutErrors.server_error(Stage.COMMITTING))

    logger.info("Order %s: %s -> %s", order_number, order.status.value, target.value)
    return Ok(replace(order, status=target))


__all__ = ("ALLOWED_TRANSITIONS", "can_transition", "is_paid", "transition_order")
