"""
Event Publisher

Broadcasts order lifecycle events on the configured channel and hands them to
in-process subscribers. Publishing is fire-and-forget from the coordinator's
point of view: broker errors are logged and counted, never raised, and each
subscriber runs in its own background task after ``publish`` returns.
"""

import asyncio
from typing import Any, Protocol, runtime_checkable

from ordersaga.core.logger import get_logger
from ordersaga.events.brokers.base import MessageBroker
from ordersaga.events.types import OrderEvent

logger = get_logger(__name__)


@runtime_checkable
class EventSubscriber(Protocol):
    """Receives every published event (notifications, analytics)."""

    async def handle(self, event: OrderEvent) -> None: ...


class EventPublisher:
    """
    Publishes order events to a broker and dispatches them to subscribers.

    Example:
        >>> publisher = EventPublisher(InMemoryBroker(), channel="order-events")
        >>> publisher.subscribe(NotificationSubscriber(LoggingNotifier()))
        >>> await publisher.start()
        >>> await publisher.publish(OrderEvent.for_order(OrderEventType.ORDER_CREATED, order))
        >>> await publisher.drain()
    """

    def __init__(
        self,
        broker: MessageBroker | None = None,
        channel: str = "order-events",
        subscribers: list[EventSubscriber] | None = None,
        metrics: Any = None,
    ):
        self.broker = broker
        self.channel = channel
        self.subscribers: list[EventSubscriber] = list(subscribers or [])
        self.metrics = metrics
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, subscriber: EventSubscriber) -> None:
        self.subscribers.append(subscriber)

    async def start(self) -> None:
        """Connect the broker; a broker that cannot connect is logged and left disconnected."""
        if self.broker is None:
            return
        try:
            await self.broker.connect()
        except Exception as e:
            logger.warning(f"Event broker unavailable, events will not be broadcast: {e}")

    async def publish(self, event: OrderEvent) -> bool:
        """
        Publish one event.

        Returns:
            True if the broker accepted the event (or there is no broker)
        """
        delivered = True
        if self.broker is not None:
            try:
                await self.broker.publish(
                    self.channel,
                    event.to_json(),
                    headers={
                        "event_id": event.event_id,
                        "event_type": event.event_type.value,
                        "content_type": "application/json",
                    },
                    key=event.order_id,
                )
            except Exception as e:
                delivered = False
                logger.warning(
                    f"Failed to publish {event.event_type.value} for order {event.order_id}: {e}"
                )
                if self.metrics:
                    self.metrics.record_best_effort_failure("event")

        for subscriber in self.subscribers:
            task = asyncio.create_task(self._dispatch(subscriber, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return delivered

    async def _dispatch(self, subscriber: EventSubscriber, event: OrderEvent) -> None:
        try:
            await subscriber.handle(event)
        except Exception as e:
            logger.warning(
                f"Subscriber {type(subscriber).__name__} failed on "
                f"{event.event_type.value} for order {event.order_id}: {e}",
                exc_info=True,
            )
            if self.metrics:
                self.metrics.record_best_effort_failure("subscriber")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all in-flight subscriber tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self.broker is not None:
            await self.broker.close()
