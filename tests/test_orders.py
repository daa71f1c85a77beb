"""Tests for order status transitions."""

import asyncio

import pytest

from conftest import checkout, err, line, ok
from settlement import CommitStep, ErrorKind, OrderStatus, transition_order
from settlement.orders import ALLOWED_TRANSITIONS, can_transition, is_paid


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def order(coordinator):
    return ok(run(coordinator.settle(checkout(line("P1", 1))))).order


class TestTransitionTable:
    def test_forward_path(self):
        path = [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ]
        for current, target in zip(path, path[1:]):
            assert can_transition(current, target)

    def test_no_skipping_ahead(self):
        assert not can_transition(OrderStatus.PENDING, OrderStatus.SHIPPED)

    def test_cancel_only_before_shipping(self):
        assert can_transition(OrderStatus.PROCESSING, OrderStatus.CANCELLED)
        assert not can_transition(OrderStatus.SHIPPED, OrderStatus.CANCELLED)

    def test_refund_only_paid_orders(self):
        for status in OrderStatus:
            assert can_transition(status, OrderStatus.REFUNDED) == is_paid(status)

    def test_terminal_states(self):
        assert ALLOWED_TRANSITIONS[OrderStatus.CANCELLED] == frozenset()
        assert ALLOWED_TRANSITIONS[OrderStatus.REFUNDED] == frozenset()


class TestTransitionOrder:
    def test_confirm(self, store, order):
        updated = ok(run(transition_order(store, order.order_number, OrderStatus.CONFIRMED)))

        assert updated.status is OrderStatus.CONFIRMED
        assert run(store.get_order(order.order_number)).status is OrderStatus.CONFIRMED

    def test_invalid_transition(self, store, order):
        error = err(run(transition_order(store, order.order_number, OrderStatus.DELIVERED)))

        assert error.kind is ErrorKind.INVALID_TRANSITION
        assert run(store.get_order(order.order_number)).status is OrderStatus.PENDING

    def test_unknown_order(self, store):
        error = err(run(transition_order(store, "MXZ-NOPE", OrderStatus.CONFIRMED)))
        assert error.kind is ErrorKind.ORDER_NOT_FOUND

    def test_lost_race_is_conflict(self, store, order):
        class StaleOrders:
            def __getattr__(self, name):
                return getattr(store, name)

            async def get_order(self, order_number):
                return order

        ok(run(transition_order(store, order.order_number, OrderStatus.CONFIRMED)))
        error = err(run(transition_order(StaleOrders(), order.order_number, OrderStatus.CANCELLED)))

        assert error.kind is ErrorKind.CONFLICT
        assert error.step is CommitStep.ORDER_STATUS
        assert run(store.get_order(order.order_number)).status is OrderStatus.CONFIRMED
