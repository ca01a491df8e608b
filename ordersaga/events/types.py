"""
Order lifecycle events.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ordersaga.core.types import Order


class OrderEventType(Enum):
    """Lifecycle transitions broadcast on the event channel."""

    ORDER_CREATED = "ORDER_CREATED"
    ORDER_PAID = "ORDER_PAID"
    ORDER_PREPARING = "ORDER_PREPARING"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_FAILED = "ORDER_FAILED"


@dataclass(frozen=True)
class OrderEvent:
    """
    A published lifecycle transition.

    Attributes:
        event_type: Which transition happened
        order_id: Aggregate id, also used as the message key
        customer_id: Owner of the order (notification recipient)
        payload: Event-specific data (status, totals, tracking, reason)
        event_id: Unique id for consumer-side deduplication
        occurred_at: When the transition was committed
    """

    event_type: OrderEventType
    order_id: str
    customer_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def for_order(
        cls, event_type: OrderEventType, order: Order, **extra: Any
    ) -> "OrderEvent":
        """Build an event carrying the order's public summary plus ``extra`` fields."""
        payload = {
            "order_number": order.order_number,
            "status": order.status.value,
            "total_amount": str(order.total_amount),
            "currency": order.currency,
            "item_count": len(order.items),
            **extra,
        }
        return cls(
            event_type=event_type,
            order_id=order.id,
            customer_id=order.customer_id,
            payload=payload,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "payload": self.payload,
            "timestamp": self.occurred_at.isoformat(),
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), default=str).encode("utf-8")
