"""
Customer notifications driven by order events.

The subscriber maps lifecycle events to notification templates and hands them
to a ``Notifier`` (email, SMS, push). It runs in the publisher's background
tasks, so a slow or failing notifier never affects an order operation.
"""

from typing import Any, Protocol, runtime_checkable

from ordersaga.core.logger import get_logger
from ordersaga.events.types import OrderEvent, OrderEventType

logger = get_logger(__name__)

NOTIFICATION_TEMPLATES: dict[OrderEventType, str] = {
    OrderEventType.ORDER_CREATED: "order_confirmation",
    OrderEventType.ORDER_PREPARING: "order_preparing",
    OrderEventType.ORDER_SHIPPED: "order_shipped",
    OrderEventType.ORDER_DELIVERED: "order_delivered",
    OrderEventType.ORDER_CANCELLED: "order_cancelled",
}


@runtime_checkable
class Notifier(Protocol):
    async def send(self, recipient_id: str, template: str, context: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Writes notifications to the log instead of delivering them."""

    async def send(self, recipient_id: str, template: str, context: dict[str, Any]) -> None:
        logger.info(
            f"Notification {template} for customer {recipient_id}: "
            f"order {context.get('order_number')} ({context.get('status')})"
        )


class NotificationSubscriber:
    """Sends the customer a notice for each event type with a template."""

    def __init__(
        self,
        notifier: Notifier,
        templates: dict[OrderEventType, str] | None = None,
    ):
        self.notifier = notifier
        self.templates = templates if templates is not None else dict(NOTIFICATION_TEMPLATES)

    async def handle(self, event: OrderEvent) -> None:
        template = self.templates.get(event.event_type)
        if template is None:
            return
        context = {"order_id": event.order_id, **event.payload}
        await self.notifier.send(event.customer_id, template, context)
