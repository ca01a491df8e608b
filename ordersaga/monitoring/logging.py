"""
Structured logging for order operations

Propagates the order being worked on (order id, customer, operation) through a
context variable so every log line emitted inside a coordinator operation can
be correlated, including lines from inventory and storage backends.
"""

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from ordersaga.core.exceptions import OrderError

# Context variable carrying the current order operation
order_context: ContextVar[dict[str, Any]] = ContextVar("order_context", default={})


class OrderJsonFormatter(logging.Formatter):
    """
    JSON formatter for order logs with structured fields
    """

    # Fields to extract from log record if present
    _EXTRA_FIELDS = (
        "order_id",
        "customer_id",
        "operation",
        "product_id",
        "duration_ms",
        "error_type",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""
        log_entry = self._build_base_entry(record)
        self._add_order_context(log_entry)
        self._add_record_extras(log_entry, record)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)

    def _build_base_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

    def _add_order_context(self, log_entry: dict[str, Any]) -> None:
        context = order_context.get({})
        for key, value in context.items():
            if value is not None:
                log_entry[key] = value

    def _add_record_extras(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self._EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, ""):
                log_entry[field] = value


class OrderContextFilter(logging.Filter):
    """
    Logging filter that adds order context to log records
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = order_context.get({})

        if not hasattr(record, "order_id"):
            record.order_id = context.get("order_id") or ""
        if not hasattr(record, "customer_id"):
            record.customer_id = context.get("customer_id") or ""
        if not hasattr(record, "operation"):
            record.operation = context.get("operation") or ""

        return True


@contextmanager
def bind_order_context(**fields: Any):
    """
    Bind fields to the order context for the duration of the block.

    Nested bindings are merged and the previous context is restored on exit.

    Example:
        >>> with bind_order_context(operation="cancel", order_id=order_id):
        ...     logger.info("Cancelling")
    """
    token = order_context.set({**order_context.get({}), **fields})
    try:
        yield
    finally:
        order_context.reset(token)


class OrderLogger:
    """
    Order-aware logger for the saga milestones of the coordinator
    """

    def __init__(self, name: str = "ordersaga.orders"):
        self.logger = logging.getLogger(name)
        self.logger.addFilter(OrderContextFilter())

    def operation_started(self, operation: str, **fields: Any) -> None:
        self.logger.info(f"{operation} started", extra={"operation": operation, **fields})

    def operation_completed(self, operation: str, duration_ms: float, **fields: Any) -> None:
        self.logger.info(
            f"{operation} completed",
            extra={"operation": operation, "duration_ms": duration_ms, **fields},
        )

    def operation_failed(self, operation: str, error: Exception, **fields: Any) -> None:
        """Expected business failures are logged at WARNING, everything else at ERROR."""
        level = logging.WARNING if isinstance(error, OrderError) else logging.ERROR
        self.logger.log(
            level,
            f"{operation} failed: {error!s}",
            extra={"operation": operation, "error_type": type(error).__name__, **fields},
            exc_info=level == logging.ERROR,
        )

    def compensation_started(self, order_id: str, count: int) -> None:
        self.logger.warning(
            f"Compensating {count} action(s) for order {order_id}",
            extra={"order_id": order_id},
        )

    def compensation_failed(self, order_id: str, action: str, product_id: str, error: Exception) -> None:
        """Failed compensation leaves stock inconsistent - critical error"""
        self.logger.critical(
            f"Compensation FAILED: {action} {product_id} for order {order_id} - {error!s}",
            extra={
                "order_id": order_id,
                "product_id": product_id,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
