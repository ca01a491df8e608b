"""
Message brokers for order events.
"""

from ordersaga.events.brokers.base import (
    BaseBroker,
    BrokerConnectionError,
    BrokerError,
    BrokerPublishError,
    MessageBroker,
)
from ordersaga.events.brokers.memory import InMemoryBroker

__all__ = [
    "BaseBroker",
    "BrokerConnectionError",
    "BrokerError",
    "BrokerPublishError",
    "InMemoryBroker",
    "MessageBroker",
]
