"""
Order State Machine - the only authority on order status transitions.

State Diagram:

    PENDING → PROCESSING → PAYMENT_PENDING → PAID → PREPARING → SHIPPED → DELIVERED
                                               │                   ▲
                                               └───────────────────┘

    Every non-terminal state before DELIVERED may also move to
    CANCELLED, REFUNDED or FAILED. DELIVERED, CANCELLED, REFUNDED and FAILED
    are terminal.
"""

from collections.abc import Callable
from typing import Any

from ordersaga.core.exceptions import InvalidStateError
from ordersaga.core.types import Order, OrderStatus

_SIDE_BRANCHES = [OrderStatus.CANCELLED, OrderStatus.REFUNDED, OrderStatus.FAILED]


class OrderStateMachine:
    """
    Validates order status transitions.

    Operation guards narrow the graph further: e.g. ``cancel`` is only allowed
    from PENDING, PAYMENT_PENDING, PAID and PREPARING even though the graph
    would allow cancelling a PROCESSING order.

    Usage:
        >>> sm = OrderStateMachine()
        >>> sm.ensure(order, OrderStatus.PAID, operation="complete payment")
    """

    # Valid transitions: from_status -> [to_status, ...]
    VALID_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
        OrderStatus.PENDING: [OrderStatus.PROCESSING, *_SIDE_BRANCHES],
        OrderStatus.PROCESSING: [OrderStatus.PAYMENT_PENDING, *_SIDE_BRANCHES],
        OrderStatus.PAYMENT_PENDING: [OrderStatus.PAID, *_SIDE_BRANCHES],
        OrderStatus.PAID: [OrderStatus.PREPARING, OrderStatus.SHIPPED, *_SIDE_BRANCHES],
        OrderStatus.PREPARING: [OrderStatus.SHIPPED, *_SIDE_BRANCHES],
        OrderStatus.SHIPPED: [OrderStatus.DELIVERED, *_SIDE_BRANCHES],
        OrderStatus.DELIVERED: [],  # Terminal state
        OrderStatus.CANCELLED: [],  # Terminal state
        OrderStatus.REFUNDED: [],  # Terminal state
        OrderStatus.FAILED: [],  # Terminal state
    }

    # Statuses each coordinator operation may start from
    OPERATION_GUARDS: dict[str, frozenset[OrderStatus]] = {
        "complete payment": frozenset({OrderStatus.PAYMENT_PENDING}),
        "cancel": frozenset(
            {
                OrderStatus.PENDING,
                OrderStatus.PAYMENT_PENDING,
                OrderStatus.PAID,
                OrderStatus.PREPARING,
            }
        ),
        "start preparing": frozenset({OrderStatus.PAID}),
        "ship": frozenset({OrderStatus.PAID, OrderStatus.PREPARING}),
        "deliver": frozenset({OrderStatus.SHIPPED}),
    }

    def __init__(
        self,
        on_transition: Callable[[Order, OrderStatus, OrderStatus], Any] | None = None,
    ):
        """
        Args:
            on_transition: Optional callback invoked after a validated transition
        """
        self._on_transition = on_transition

    def can_transition(self, from_status: OrderStatus, to_status: OrderStatus) -> bool:
        return to_status in self.VALID_TRANSITIONS.get(from_status, [])

    def is_terminal(self, status: OrderStatus) -> bool:
        return not self.VALID_TRANSITIONS.get(status)

    def ensure(self, order: Order, target: OrderStatus, operation: str) -> None:
        """
        Check that ``operation`` may move ``order`` to ``target``.

        Raises:
            InvalidStateError: If the operation guard or the graph forbids it
        """
        allowed = self.OPERATION_GUARDS.get(operation)
        if allowed is not None and order.status not in allowed:
            raise InvalidStateError(order.id, order.status, operation)
        if not self.can_transition(order.status, target):
            raise InvalidStateError(order.id, order.status, operation)

    def transitioned(self, order: Order, from_status: OrderStatus) -> Order:
        """Notify the transition hook; returns the order unchanged."""
        if self._on_transition:
            self._on_transition(order, from_status, order.status)
        return order

    def is_valid_path(self, statuses: list[OrderStatus]) -> bool:
        """True if consecutive statuses are all valid transitions."""
        return all(
            self.can_transition(current, following)
            for current, following in zip(statuses, statuses[1:], strict=False)
        )
