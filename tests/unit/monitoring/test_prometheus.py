"""Tests for PrometheusMetrics against an isolated registry."""

from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry

from ordersaga.monitoring.prometheus import (
    PrometheusMetrics,
    is_prometheus_available,
    start_metrics_server,
)


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return PrometheusMetrics(registry=registry)


class TestPrometheusMetrics:
    def test_operation_lifecycle(self, metrics, registry):
        metrics.operation_started("create_order")
        assert (
            registry.get_sample_value(
                "ordersaga_operations_in_progress", {"operation": "create_order"}
            )
            == 1.0
        )

        metrics.operation_finished("create_order", "success", 0.02)

        assert (
            registry.get_sample_value(
                "ordersaga_operations_in_progress", {"operation": "create_order"}
            )
            == 0.0
        )
        assert (
            registry.get_sample_value(
                "ordersaga_operations_total",
                {"operation": "create_order", "outcome": "success"},
            )
            == 1.0
        )
        assert (
            registry.get_sample_value(
                "ordersaga_operation_duration_seconds_count", {"operation": "create_order"}
            )
            == 1.0
        )

    def test_counters(self, metrics, registry):
        metrics.record_compensation("release_stock", succeeded=True)
        metrics.record_compensation("release_stock", succeeded=False)
        metrics.record_lock_conflict("create")
        metrics.record_refund_failure()
        metrics.record_best_effort_failure("cache")

        assert (
            registry.get_sample_value(
                "ordersaga_compensations_total",
                {"action": "release_stock", "result": "failure"},
            )
            == 1.0
        )
        assert (
            registry.get_sample_value("ordersaga_lock_conflicts_total", {"scope": "create"})
            == 1.0
        )
        assert registry.get_sample_value("ordersaga_refund_failures_total") == 1.0
        assert (
            registry.get_sample_value("ordersaga_best_effort_failures_total", {"kind": "cache"})
            == 1.0
        )

    def test_custom_prefix(self, registry):
        metrics = PrometheusMetrics(prefix="shop", registry=registry)

        metrics.record_refund_failure()

        assert registry.get_sample_value("shop_refund_failures_total") == 1.0

    def test_disabled_without_client(self):
        with patch("ordersaga.monitoring.prometheus.PROMETHEUS_AVAILABLE", False):
            metrics = PrometheusMetrics()

            metrics.operation_started("create_order")
            metrics.operation_finished("create_order", "success", 0.1)
            metrics.record_refund_failure()

        assert metrics._enabled is False

    def test_start_metrics_server(self):
        with patch("ordersaga.monitoring.prometheus.start_http_server") as server:
            start_metrics_server(port=9100)

        server.assert_called_once_with(9100, "0.0.0.0")

    def test_start_metrics_server_without_client(self):
        with (
            patch("ordersaga.monitoring.prometheus.PROMETHEUS_AVAILABLE", False),
            patch("ordersaga.monitoring.prometheus.start_http_server") as server,
        ):
            start_metrics_server()

        server.assert_not_called()

    def test_is_available(self):
        assert is_prometheus_available() is True
