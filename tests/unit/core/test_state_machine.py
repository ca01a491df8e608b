"""Tests for OrderStateMachine transition rules and operation guards."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from ordersaga.core.exceptions import InvalidStateError
from ordersaga.core.state_machine import OrderStateMachine
from ordersaga.core.types import Order, OrderStatus, ShippingInfo


def make_order(status: OrderStatus) -> Order:
    return Order(
        id="order-1",
        order_number="ORD-1-AAAA",
        customer_id="cust-1",
        status=status,
        subtotal=Decimal("100"),
        tax=Decimal("10"),
        shipping=Decimal("3000"),
        discount=Decimal("0"),
        total_amount=Decimal("3110"),
        currency="KRW",
        items=(),
        shipping_info=ShippingInfo("Kim", "010", "Addr", "Busan", "48058", "KR"),
    )


TERMINAL = [
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
    OrderStatus.FAILED,
]


class TestTransitionGraph:
    """Test the status graph."""

    @pytest.mark.parametrize(
        ("from_status", "to_status"),
        [
            (OrderStatus.PENDING, OrderStatus.PROCESSING),
            (OrderStatus.PROCESSING, OrderStatus.PAYMENT_PENDING),
            (OrderStatus.PAYMENT_PENDING, OrderStatus.PAID),
            (OrderStatus.PAID, OrderStatus.PREPARING),
            (OrderStatus.PAID, OrderStatus.SHIPPED),
            (OrderStatus.PREPARING, OrderStatus.SHIPPED),
            (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
            (OrderStatus.PROCESSING, OrderStatus.FAILED),
            (OrderStatus.PREPARING, OrderStatus.CANCELLED),
            (OrderStatus.SHIPPED, OrderStatus.REFUNDED),
        ],
    )
    def test_allowed(self, from_status, to_status):
        assert OrderStateMachine().can_transition(from_status, to_status)

    @pytest.mark.parametrize(
        ("from_status", "to_status"),
        [
            (OrderStatus.PENDING, OrderStatus.PAID),
            (OrderStatus.PAYMENT_PENDING, OrderStatus.PROCESSING),
            (OrderStatus.PAID, OrderStatus.PAYMENT_PENDING),
            (OrderStatus.PREPARING, OrderStatus.DELIVERED),
            (OrderStatus.SHIPPED, OrderStatus.PAID),
        ],
    )
    def test_forbidden(self, from_status, to_status):
        assert not OrderStateMachine().can_transition(from_status, to_status)

    @pytest.mark.parametrize("status", TERMINAL)
    def test_terminal_states_have_no_exits(self, status):
        machine = OrderStateMachine()

        assert machine.is_terminal(status)
        assert not any(machine.can_transition(status, target) for target in OrderStatus)

    def test_non_terminal_states(self):
        machine = OrderStateMachine()

        assert not machine.is_terminal(OrderStatus.PENDING)
        assert not machine.is_terminal(OrderStatus.SHIPPED)

    def test_is_valid_path(self):
        machine = OrderStateMachine()

        assert machine.is_valid_path(
            [
                OrderStatus.PENDING,
                OrderStatus.PROCESSING,
                OrderStatus.PAYMENT_PENDING,
                OrderStatus.PAID,
                OrderStatus.CANCELLED,
            ]
        )
        assert not machine.is_valid_path(
            [OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.SHIPPED]
        )
        assert machine.is_valid_path([OrderStatus.PENDING])


class TestOperationGuards:
    """Test per-operation guards on top of the graph."""

    @pytest.mark.parametrize(
        "status",
        [
            OrderStatus.PENDING,
            OrderStatus.PAYMENT_PENDING,
            OrderStatus.PAID,
            OrderStatus.PREPARING,
        ],
    )
    def test_cancel_allowed(self, status):
        OrderStateMachine().ensure(make_order(status), OrderStatus.CANCELLED, "cancel")

    @pytest.mark.parametrize(
        "status", [OrderStatus.PROCESSING, OrderStatus.SHIPPED, *TERMINAL]
    )
    def test_cancel_rejected(self, status):
        with pytest.raises(InvalidStateError) as exc_info:
            OrderStateMachine().ensure(make_order(status), OrderStatus.CANCELLED, "cancel")

        assert exc_info.value.current == status
        assert exc_info.value.to_dict()["current_status"] == status.value

    def test_complete_payment_only_from_payment_pending(self):
        machine = OrderStateMachine()
        machine.ensure(make_order(OrderStatus.PAYMENT_PENDING), OrderStatus.PAID, "complete payment")

        with pytest.raises(InvalidStateError):
            machine.ensure(make_order(OrderStatus.PAID), OrderStatus.PAID, "complete payment")

    def test_unguarded_operation_uses_graph_only(self):
        machine = OrderStateMachine()
        machine.ensure(make_order(OrderStatus.PENDING), OrderStatus.PROCESSING, "process")

        with pytest.raises(InvalidStateError):
            machine.ensure(make_order(OrderStatus.PENDING), OrderStatus.SHIPPED, "process")


class TestTransitionHook:
    def test_hook_receives_transition(self):
        hook = MagicMock()
        machine = OrderStateMachine(on_transition=hook)
        order = make_order(OrderStatus.PAID)

        assert machine.transitioned(order, OrderStatus.PAYMENT_PENDING) is order
        hook.assert_called_once_with(order, OrderStatus.PAYMENT_PENDING, OrderStatus.PAID)

    def test_no_hook(self):
        order = make_order(OrderStatus.PAID)

        assert OrderStateMachine().transitioned(order, OrderStatus.PAYMENT_PENDING) is order
