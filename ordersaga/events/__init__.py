"""
Order lifecycle events: types, publisher, brokers and notification subscriber.
"""

from ordersaga.events.brokers import InMemoryBroker, MessageBroker
from ordersaga.events.notifications import LoggingNotifier, NotificationSubscriber, Notifier
from ordersaga.events.publisher import EventPublisher, EventSubscriber
from ordersaga.events.types import OrderEvent, OrderEventType

__all__ = [
    "EventPublisher",
    "EventSubscriber",
    "InMemoryBroker",
    "LoggingNotifier",
    "MessageBroker",
    "NotificationSubscriber",
    "Notifier",
    "OrderEvent",
    "OrderEventType",
]
