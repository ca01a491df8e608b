"""
Core building blocks: order types, state machine, pricing, configuration and errors.

The coordinator itself lives in ``ordersaga.core.coordinator`` and is exported
from the top-level package.
"""

from ordersaga.core.config import CoordinatorConfig
from ordersaga.core.exceptions import (
    ConcurrentOperationError,
    EmptyOrderError,
    InsufficientStockError,
    InvalidCouponError,
    InvalidStateError,
    InventoryError,
    MissingDependencyError,
    OrderError,
    OrderNotFoundError,
    OrderPersistenceError,
    PaymentInitiationError,
    ProductNotFoundError,
    RefundFailedError,
)
from ordersaga.core.state_machine import OrderStateMachine
from ordersaga.core.types import (
    CreateOrderInput,
    LineItemRequest,
    Order,
    OrderFilter,
    OrderItem,
    OrderPage,
    OrderStats,
    OrderStatus,
    ShippingInfo,
    StatusChange,
)

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
]
