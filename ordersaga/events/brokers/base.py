"""
Message broker interface for order events.

The coordinator only needs ``publish(channel, payload)``; no delivery or
ordering guarantee is required of the broker.
"""

from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable


@runtime_checkable
class MessageBroker(Protocol):
    """
    Protocol for message broker implementations.
    """

    async def connect(self) -> None:
        """
        Connect to the message broker.

        Raises:
            BrokerConnectionError: If connection fails
        """
        ...

    async def publish(
        self,
        topic: str,
        message: bytes,
        headers: dict[str, str] | None = None,
        key: str | None = None,
    ) -> None:
        """
        Publish a message to the broker.

        Args:
            topic: Channel to publish to
            message: Message payload as bytes
            headers: Optional message headers
            key: Optional message key (the order id)

        Raises:
            BrokerError: If publishing fails
        """
        ...

    async def close(self) -> None:
        """Close the broker connection."""
        ...

    async def health_check(self) -> bool:
        """Return True if the broker connection is healthy."""
        ...


class BrokerError(Exception):
    """Base exception for broker errors."""


class BrokerConnectionError(BrokerError):
    """Error connecting to the broker."""


class BrokerPublishError(BrokerError):
    """Error publishing a message."""


class BaseBroker(ABC):
    """
    Abstract base class for message broker implementations.
    """

    def __init__(self):
        self._connected = False

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def publish(
        self,
        topic: str,
        message: bytes,
        headers: dict[str, str] | None = None,
        key: str | None = None,
    ) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def health_check(self) -> bool: ...

    @property
    def is_connected(self) -> bool:
        return self._connected
