"""
In-memory order repository

Provides a simple in-memory backend for development and testing.
Not suitable for production use as state is lost on process restart.
"""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from ordersaga.core.types import (
    REVENUE_EXCLUDED_STATUSES,
    Order,
    OrderFilter,
    OrderPage,
    OrderStats,
    OrderStatus,
    StatusChange,
)
from ordersaga.repository.base import DuplicateOrderError, OrderRepository


class InMemoryOrderRepository(OrderRepository):
    """
    Dictionary-backed order storage.

    Orders are immutable dataclasses, so stored values are never aliased by callers.
    """

    def __init__(self):
        self._orders: dict[str, Order] = {}
        self._history: dict[str, list[StatusChange]] = {}
        self._lock = asyncio.Lock()

    async def create_order(self, order: Order) -> Order:
        async with self._lock:
            if order.id in self._orders:
                msg = "Order already exists"
                raise DuplicateOrderError(msg, {"order_id": order.id})
            if any(o.order_number == order.order_number for o in self._orders.values()):
                msg = "Order number already exists"
                raise DuplicateOrderError(msg, {"order_number": order.order_number})
            self._orders[order.id] = order
            self._history[order.id] = [
                StatusChange(order.id, None, order.status, order.created_at)
            ]
            return order

    async def get_order(self, order_id: str, customer_id: str | None = None) -> Order | None:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None or (customer_id and order.customer_id != customer_id):
                return None
            return order

    async def transition(
        self,
        order_id: str,
        from_status: OrderStatus,
        to_status: OrderStatus,
        *,
        payment_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        shipping: dict[str, Any] | None = None,
    ) -> Order | None:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status != from_status:
                return None

            now = datetime.now(UTC)
            changes: dict[str, Any] = {"status": to_status, "updated_at": now}
            if payment_id is not None:
                changes["payment_id"] = payment_id
            if metadata:
                changes["metadata"] = {**order.metadata, **metadata}
            if shipping:
                changes["shipping_info"] = replace(order.shipping_info, **shipping)

            updated = order.evolve(**changes)
            self._orders[order_id] = updated
            self._history[order_id].append(StatusChange(order_id, from_status, to_status, now))
            return updated

    async def update_metadata(self, order_id: str, metadata: dict[str, Any]) -> Order | None:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            updated = order.evolve(
                metadata={**order.metadata, **metadata}, updated_at=datetime.now(UTC)
            )
            self._orders[order_id] = updated
            return updated

    async def delete_order(self, order_id: str) -> bool:
        async with self._lock:
            self._history.pop(order_id, None)
            return self._orders.pop(order_id, None) is not None

    async def list_orders(self, order_filter: OrderFilter) -> OrderPage:
        async with self._lock:
            matching = [
                order
                for order in self._orders.values()
                if self._matches(order, order_filter.customer_id, order_filter.start_date,
                                 order_filter.end_date)
                and (order_filter.status is None or order.status == order_filter.status)
            ]
        matching.sort(key=lambda o: o.created_at, reverse=True)
        start = order_filter.offset
        return OrderPage(orders=matching[start : start + order_filter.limit], total=len(matching))

    async def get_stats(
        self,
        customer_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> OrderStats:
        async with self._lock:
            orders = [
                o for o in self._orders.values()
                if self._matches(o, customer_id, start_date, end_date)
            ]
        return compute_stats(orders)

    async def get_status_history(self, order_id: str) -> list[StatusChange]:
        async with self._lock:
            return list(self._history.get(order_id, []))

    @staticmethod
    def _matches(
        order: Order,
        customer_id: str | None,
        start_date: datetime | None,
        end_date: datetime | None,
    ) -> bool:
        if customer_id and order.customer_id != customer_id:
            return False
        if start_date and order.created_at < start_date:
            return False
        return not (end_date and order.created_at > end_date)


def compute_stats(orders: list[Order]) -> OrderStats:
    """Aggregate statistics; revenue figures ignore cancelled, failed and refunded orders."""
    if not orders:
        return OrderStats()

    revenue_amounts = [
        o.total_amount for o in orders if o.status not in REVENUE_EXCLUDED_STATUSES
    ]
    total_revenue = sum(revenue_amounts, Decimal("0"))
    return OrderStats(
        total_orders=len(orders),
        delivered_orders=sum(1 for o in orders if o.status == OrderStatus.DELIVERED),
        cancelled_orders=sum(1 for o in orders if o.status == OrderStatus.CANCELLED),
        total_revenue=total_revenue,
        avg_order_value=(total_revenue / len(revenue_amounts)) if revenue_amounts else Decimal("0"),
        max_order_value=max(revenue_amounts, default=Decimal("0")),
        min_order_value=min(revenue_amounts, default=Decimal("0")),
    )
