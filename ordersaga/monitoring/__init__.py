"""
Observability for order operations: structured logging and Prometheus metrics.
"""

from ordersaga.monitoring.logging import (
    OrderContextFilter,
    OrderJsonFormatter,
    OrderLogger,
    bind_order_context,
    order_context,
)
from ordersaga.monitoring.prometheus import PrometheusMetrics, start_metrics_server

__all__ = [
    "OrderContextFilter",
    "OrderJsonFormatter",
    "OrderLogger",
    "PrometheusMetrics",
    "bind_order_context",
    "order_context",
    "start_metrics_server",
]
