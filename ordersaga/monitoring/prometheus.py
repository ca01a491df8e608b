"""
Prometheus metrics integration for the order coordinator.

Quick Start:
    >>> from ordersaga.monitoring.prometheus import PrometheusMetrics, start_metrics_server
    >>>
    >>> start_metrics_server(port=8000)
    >>> metrics = PrometheusMetrics()
    >>> coordinator = create_coordinator(config, metrics=metrics)

Requirements:
    pip install prometheus-client
"""

from typing import Any

from ordersaga.core.logger import get_logger

# Check if prometheus_client is installed
try:
    from prometheus_client import REGISTRY, Counter, Gauge, Histogram, start_http_server

    PROMETHEUS_AVAILABLE = True
except ImportError:  # pragma: no cover
    PROMETHEUS_AVAILABLE = False
    REGISTRY: Any = None  # type: ignore[no-redef]
    Counter: Any = None  # type: ignore[no-redef]
    Gauge: Any = None  # type: ignore[no-redef]
    Histogram: Any = None  # type: ignore[no-redef]
    start_http_server: Any = None  # type: ignore[no-redef]


logger = get_logger(__name__)


class PrometheusMetrics:
    """
    Prometheus-compatible metrics collector for order operations.

    Exposes the following metrics:
        - ordersaga_operations_total: Counter of operations by name and outcome
        - ordersaga_operation_duration_seconds: Histogram of operation durations
        - ordersaga_operations_in_progress: Gauge of running operations
        - ordersaga_compensations_total: Counter of compensation actions by action and result
        - ordersaga_lock_conflicts_total: Counter of fail-fast lock rejections
        - ordersaga_refund_failures_total: Counter of cancellations whose refund failed
        - ordersaga_best_effort_failures_total: Counter of tolerated cache/event/cart failures
    """

    def __init__(self, prefix: str = "ordersaga", registry: Any = None):
        """
        Initialize Prometheus metrics.

        Args:
            prefix: Metric name prefix (default: "ordersaga")
            registry: Collector registry (default: the global prometheus registry)
        """
        if not PROMETHEUS_AVAILABLE:
            logger.warning(
                "prometheus-client not installed. Metrics will not be collected. "
                "Install with: pip install prometheus-client"
            )
            self._enabled = False
            return

        self._enabled = True
        self._prefix = prefix
        registry = registry if registry is not None else REGISTRY

        self._operations_total = Counter(
            f"{prefix}_operations_total",
            "Total order operations",
            ["operation", "outcome"],
            registry=registry,
        )

        self._operation_duration = Histogram(
            f"{prefix}_operation_duration_seconds",
            "Order operation duration in seconds",
            ["operation"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry,
        )

        self._in_progress = Gauge(
            f"{prefix}_operations_in_progress",
            "Number of order operations currently running",
            ["operation"],
            registry=registry,
        )

        self._compensations_total = Counter(
            f"{prefix}_compensations_total",
            "Compensation actions executed",
            ["action", "result"],
            registry=registry,
        )

        self._lock_conflicts_total = Counter(
            f"{prefix}_lock_conflicts_total",
            "Operations rejected because the lock was held",
            ["scope"],
            registry=registry,
        )

        self._refund_failures_total = Counter(
            f"{prefix}_refund_failures_total",
            "Cancelled orders whose refund failed",
            registry=registry,
        )

        self._best_effort_failures_total = Counter(
            f"{prefix}_best_effort_failures_total",
            "Tolerated failures of cache, event or cart side effects",
            ["kind"],
            registry=registry,
        )

    def operation_started(self, operation: str) -> None:
        if not self._enabled:
            return
        self._in_progress.labels(operation=operation).inc()

    def operation_finished(self, operation: str, outcome: str, duration: float) -> None:
        """
        Record a finished operation.

        Args:
            operation: Coordinator operation name (create_order, cancel_order, ...)
            outcome: "success" or the error code of the failure
            duration: Execution duration in seconds
        """
        if not self._enabled:
            return
        self._in_progress.labels(operation=operation).dec()
        self._operations_total.labels(operation=operation, outcome=outcome).inc()
        self._operation_duration.labels(operation=operation).observe(duration)

    def record_compensation(self, action: str, succeeded: bool) -> None:
        if not self._enabled:
            return
        result = "success" if succeeded else "failure"
        self._compensations_total.labels(action=action, result=result).inc()

    def record_lock_conflict(self, scope: str) -> None:
        if not self._enabled:
            return
        self._lock_conflicts_total.labels(scope=scope).inc()

    def record_refund_failure(self) -> None:
        if not self._enabled:
            return
        self._refund_failures_total.inc()

    def record_best_effort_failure(self, kind: str) -> None:
        if not self._enabled:
            return
        self._best_effort_failures_total.labels(kind=kind).inc()


def start_metrics_server(port: int = 8000, addr: str = "0.0.0.0") -> None:
    """
    Start a Prometheus HTTP metrics server.

    Args:
        port: Port to listen on (default: 8000)
        addr: Address to bind to (default: 0.0.0.0 for all interfaces)
    """
    if not PROMETHEUS_AVAILABLE:
        logger.error(
            "Cannot start metrics server: prometheus-client not installed. "
            "Install with: pip install prometheus-client"
        )
        return

    start_http_server(port, addr)
    logger.info(f"Prometheus metrics server started on port {port}")


def is_prometheus_available() -> bool:
    """Check if prometheus-client is installed."""
    return PROMETHEUS_AVAILABLE
