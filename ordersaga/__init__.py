"""
ordersaga - order creation and lifecycle saga coordinator

Creates orders across an inventory store, an order repository and a payment
gateway that share no transaction, compensating reservations when a later
step fails. Supports:
- Fail-fast distributed locks per customer (creation) and per order (lifecycle)
- Parallel stock reservation with reverse-order compensation
- Compare-and-set status transitions over an explicit state machine
- In-memory, Redis and PostgreSQL backends
- Fire-and-forget lifecycle events and customer notifications
- Prometheus metrics and structured JSON logging

Usage:
    >>> from ordersaga import CoordinatorConfig, CreateOrderInput, create_coordinator
    >>>
    >>> coordinator = create_coordinator(
    ...     CoordinatorConfig.from_env(), catalog=catalog, gateway=gateway
    ... )
    >>> async with coordinator:
    ...     order = await coordinator.create_order(
    ...         CreateOrderInput(customer_id="c-1", shipping_info=address,
    ...                          payment_method="card", items=[LineItemRequest("p-1", 2)])
    ...     )
    ...     await coordinator.complete_payment(order.id, order.payment_id)
"""

from ordersaga.core import (
    ConcurrentOperationError,
    CoordinatorConfig,
    CreateOrderInput,
    EmptyOrderError,
    InsufficientStockError,
    InvalidCouponError,
    InvalidStateError,
    InventoryError,
    LineItemRequest,
    MissingDependencyError,
    Order,
    OrderError,
    OrderFilter,
    OrderItem,
    OrderNotFoundError,
    OrderPage,
    OrderPersistenceError,
    OrderStateMachine,
    OrderStats,
    OrderStatus,
    PaymentInitiationError,
    ProductNotFoundError,
    RefundFailedError,
    ShippingInfo,
    StatusChange,
)
from ordersaga.core.coordinator import OrderCoordinator
from ordersaga.factory import create_coordinator

__version__ = "0.1.0"

__all__ = [
    "ConcurrentOperationError",
    "CoordinatorConfig",
    "CreateOrderInput",
    "EmptyOrderError",
    "InsufficientStockError",
    "InvalidCouponError",
    "InvalidStateError",
    "InventoryError",
    "LineItemRequest",
    "MissingDependencyError",
    "Order",
    "OrderCoordinator",
    "OrderError",
    "OrderFilter",
    "OrderItem",
    "OrderNotFoundError",
    "OrderPage",
    "OrderPersistenceError",
    "OrderStateMachine",
    "OrderStats",
    "OrderStatus",
    "PaymentInitiationError",
    "ProductNotFoundError",
    "RefundFailedError",
    "ShippingInfo",
    "StatusChange",
    "create_coordinator",
]
