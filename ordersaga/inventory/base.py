"""
Base interface for the inventory reservation service.

Each product has three counters:

    available ──reserve──▶ reserved ──confirm──▶ sold
        ▲                     │                    │
        └──────release────────┘                    │
        └──────────────────restock─────────────────┘

Every operation is a single atomic step per product, safe under arbitrary
interleaving of concurrent orders.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class StockLevel:
    """Current counters of one product."""

    product_id: str
    available: int
    reserved: int
    sold: int
    low_stock_threshold: int = 10

    @property
    def total(self) -> int:
        return self.available + self.reserved

    @property
    def low_stock(self) -> bool:
        return self.available <= self.low_stock_threshold

    @property
    def out_of_stock(self) -> bool:
        return self.available <= 0

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "available": self.available,
            "reserved": self.reserved,
            "sold": self.sold,
            "total": self.total,
            "low_stock": self.low_stock,
            "out_of_stock": self.out_of_stock,
        }


class InventoryService(ABC):
    """
    Abstract inventory reservation service.
    """

    @abstractmethod
    async def reserve_stock(self, product_id: str, quantity: int) -> bool:
        """
        Move ``quantity`` from available to reserved if enough is available.

        Returns:
            True if reserved, False if stock was insufficient (nothing changes)
        """

    @abstractmethod
    async def release_stock(self, product_id: str, quantity: int) -> int:
        """
        Move up to ``quantity`` from reserved back to available.

        Never releases more than is currently reserved.

        Returns:
            The quantity actually released
        """

    @abstractmethod
    async def confirm_reservation(self, product_id: str, quantity: int) -> None:
        """
        Move ``quantity`` from reserved to sold. Irreversible for the reservation.

        Raises:
            InventoryError: If less than ``quantity`` is reserved
        """

    @abstractmethod
    async def restock(self, product_id: str, quantity: int) -> int:
        """
        Return up to ``quantity`` sold units to available (cancelled paid orders).

        Returns:
            The quantity actually restocked
        """

    @abstractmethod
    async def get_stock(self, product_id: str) -> StockLevel | None:
        """Return the product's counters, or None if it is not tracked."""

    @abstractmethod
    async def set_stock(self, product_id: str, available: int) -> StockLevel:
        """Set available stock (administration and seeding); other counters are kept."""

    async def close(self) -> None:  # noqa: B027
        """Release backend resources."""

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity <= 0:
            msg = f"quantity must be positive, got {quantity}"
            raise ValueError(msg)
