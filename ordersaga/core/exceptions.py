"""
All order-coordinator exceptions

Every error raised across the coordinator boundary derives from OrderError and
carries a stable ``code`` plus a human-readable ``reason``. Storage and gateway
failures are chained (``raise ... from e``) but never copied into ``reason``.
"""

from typing import Any


class OrderError(Exception):
    """Base order error"""

    code = "order_error"

    def __init__(self, reason: str, **details: Any):
        super().__init__(reason)
        self.reason = reason
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Stable, serialisable representation for the routing layer."""
        return {"code": self.code, "reason": self.reason, **self.details}


class ConcurrentOperationError(OrderError):
    """
    Another operation holds the lock for this customer or order.

    Retryable: callers should back off and try again.
    """

    code = "concurrent_operation"
    retryable = True

    def __init__(self, lock_key: str, reason: str | None = None):
        super().__init__(
            reason or "Another operation is in progress. Please retry shortly.",
            lock_key=lock_key,
        )
        self.lock_key = lock_key


class EmptyOrderError(OrderError):
    """No line items could be resolved for the order"""

    code = "empty_order"

    def __init__(self, customer_id: str):
        super().__init__("There are no items to order.", customer_id=customer_id)
        self.customer_id = customer_id


class ProductNotFoundError(OrderError):
    """A requested product does not exist in the catalog"""

    code = "product_not_found"

    def __init__(self, product_id: str):
        super().__init__(f"Product not found: {product_id}", product_id=product_id)
        self.product_id = product_id


class InsufficientStockError(OrderError):
    """Not enough available stock to reserve the requested quantity"""

    code = "insufficient_stock"

    def __init__(self, product_id: str, product_name: str, requested: int):
        super().__init__(
            f"Insufficient stock for {product_name}",
            product_id=product_id,
            product_name=product_name,
            requested=requested,
        )
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested


class PaymentInitiationError(OrderError):
    """The payment gateway refused or failed to start the payment"""

    code = "payment_initiation_failed"

    def __init__(self, order_id: str):
        super().__init__("Payment could not be initiated.", order_id=order_id)
        self.order_id = order_id


class InvalidStateError(OrderError):
    """An illegal status transition was attempted"""

    code = "invalid_state"

    def __init__(self, order_id: str, current: Any, operation: str):
        current_value = getattr(current, "value", current)
        super().__init__(
            f"Cannot {operation} order in status '{current_value}'",
            order_id=order_id,
            current_status=current_value,
            operation=operation,
        )
        self.order_id = order_id
        self.current = current
        self.operation = operation


class RefundFailedError(OrderError):
    """
    The refund call failed while cancelling a paid order.

    The cancellation itself (stock release, CANCELLED status) has already been
    committed; ``order`` holds the cancelled order so the caller can report it
    and hand the payment to a reconciliation process.
    """

    code = "refund_failed"

    def __init__(self, order: Any, payment_id: str | None):
        super().__init__(
            "Order was cancelled but the refund failed and will be retried.",
            order_id=order.id,
            payment_id=payment_id,
        )
        self.order = order
        self.payment_id = payment_id


class OrderNotFoundError(OrderError):
    """Order does not exist or is not visible to this customer"""

    code = "order_not_found"

    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}", order_id=order_id)
        self.order_id = order_id


class InvalidCouponError(OrderError):
    """Coupon code is unknown, expired, or below its minimum"""

    code = "invalid_coupon"

    def __init__(self, coupon_code: str, reason: str | None = None):
        super().__init__(reason or f"Coupon cannot be applied: {coupon_code}", coupon_code=coupon_code)
        self.coupon_code = coupon_code


class OrderPersistenceError(OrderError):
    """The durable order write failed"""

    code = "persistence_failed"

    def __init__(self, order_id: str, reason: str = "The order could not be saved."):
        super().__init__(reason, order_id=order_id)
        self.order_id = order_id


class InventoryError(OrderError):
    """Inventory counters rejected an operation"""

    code = "inventory_error"

    def __init__(self, product_id: str, reason: str):
        super().__init__(reason, product_id=product_id)
        self.product_id = product_id


class MissingDependencyError(OrderError):
    """
    Raised when an optional backend dependency is not installed.
    """

    code = "missing_dependency"

    INSTALL_COMMANDS = {
        "redis": "pip install redis",
        "asyncpg": "pip install asyncpg",
        "prometheus-client": "pip install prometheus-client",
    }

    def __init__(self, package: str, feature: str | None = None):
        self.package = package
        self.feature = feature
        install_cmd = self.INSTALL_COMMANDS.get(package, f"pip install {package}")
        message = f"Missing dependency '{package}'"
        if feature:
            message += f" (required for {feature})"
        super().__init__(f"{message}. Install with: {install_cmd}", package=package)
