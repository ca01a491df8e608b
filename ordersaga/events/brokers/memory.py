"""
In-Memory Message Broker - For testing and development.
"""

from ordersaga.events.brokers.base import BaseBroker, BrokerConnectionError


class InMemoryBroker(BaseBroker):
    """
    In-memory message broker for testing and development.

    Usage:
        >>> broker = InMemoryBroker()
        >>> await broker.connect()
        >>> await broker.publish("order-events", b'{"order_id": "1"}')
        >>> assert len(broker.get_messages("order-events")) == 1
    """

    def __init__(self):
        super().__init__()
        self._messages: dict[str, list] = {}

    async def connect(self) -> None:
        self._connected = True

    async def publish(
        self,
        topic: str,
        message: bytes,
        headers: dict[str, str] | None = None,
        key: str | None = None,
    ) -> None:
        if not self._connected:
            msg = "Broker not connected"
            raise BrokerConnectionError(msg)

        self._messages.setdefault(topic, []).append(
            {
                "message": message,
                "headers": headers or {},
                "key": key,
            }
        )

    async def close(self) -> None:
        self._connected = False

    async def health_check(self) -> bool:
        return self._connected

    def get_messages(self, topic: str) -> list:
        """Get all messages for a topic (for testing)."""
        return self._messages.get(topic, [])

    def clear(self) -> None:
        self._messages.clear()
