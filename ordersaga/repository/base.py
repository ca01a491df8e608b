"""
Base interface for order persistence.

Defines the durable store for orders and their line items. Status changes are
compare-and-set on the current status, so concurrent writers cannot overwrite
each other's transitions.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ordersaga.core.types import (
    Order,
    OrderFilter,
    OrderPage,
    OrderStats,
    OrderStatus,
    StatusChange,
)


class StorageError(Exception):
    """
    Base exception for all repository operations.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class StorageConnectionError(StorageError):
    """Failed to connect to the storage backend."""


class DuplicateOrderError(StorageError):
    """An order with the same id or order number already exists."""


class OrderRepository(ABC):
    """
    Abstract base class for order persistence.
    """

    @abstractmethod
    async def create_order(self, order: Order) -> Order:
        """
        Persist the order and all of its items as one atomic write.

        Either everything is stored or nothing is.

        Raises:
            StorageError: If the write fails (nothing was stored)
        """

    @abstractmethod
    async def get_order(self, order_id: str, customer_id: str | None = None) -> Order | None:
        """
        Load an order with its items.

        Args:
            order_id: Order identifier
            customer_id: If given, only return the order when it belongs to this customer
        """

    @abstractmethod
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
        """
        Atomically move the order from ``from_status`` to ``to_status``.

        Args:
            payment_id: Payment reference to attach (kept if None)
            metadata: Keys merged into the order metadata
            shipping: Tracking fields to set (tracking_number, carrier, estimated_delivery)

        Returns:
            The updated order, or None if the order is missing or its status
            is no longer ``from_status``
        """

    @abstractmethod
    async def update_metadata(self, order_id: str, metadata: dict[str, Any]) -> Order | None:
        """Merge keys into the order metadata without touching the status."""

    @abstractmethod
    async def delete_order(self, order_id: str) -> bool:
        """Delete an order and its items. Returns True if it existed."""

    @abstractmethod
    async def list_orders(self, order_filter: OrderFilter) -> OrderPage:
        """List orders newest first, with the total count before pagination."""

    @abstractmethod
    async def get_stats(
        self,
        customer_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> OrderStats:
        """Aggregate statistics over the matching orders."""

    @abstractmethod
    async def get_status_history(self, order_id: str) -> list[StatusChange]:
        """Recorded transitions of the order, oldest first."""

    async def close(self) -> None:  # noqa: B027
        """Release backend resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
