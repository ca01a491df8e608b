"""
In-memory inventory reservation service

Provides a simple in-memory backend for development and testing.
All counter updates run under one asyncio lock, which makes each operation
atomic within the process.
"""

import asyncio

from ordersaga.core.exceptions import InventoryError
from ordersaga.core.logger import get_logger
from ordersaga.inventory.base import InventoryService, StockLevel

logger = get_logger(__name__)


class InMemoryInventoryService(InventoryService):
    """Dictionary-backed counters: product_id -> [available, reserved, sold]."""

    def __init__(self, low_stock_threshold: int = 10):
        self.low_stock_threshold = low_stock_threshold
        self._counters: dict[str, list[int]] = {}
        self._lock = asyncio.Lock()

    def _counter(self, product_id: str) -> list[int]:
        counter = self._counters.get(product_id)
        if counter is None:
            raise InventoryError(product_id, f"Product {product_id} is not tracked in inventory")
        return counter

    async def reserve_stock(self, product_id: str, quantity: int) -> bool:
        self._check_quantity(quantity)
        async with self._lock:
            counter = self._counters.get(product_id)
            if counter is None or counter[0] < quantity:
                return False
            counter[0] -= quantity
            counter[1] += quantity
            return True

    async def release_stock(self, product_id: str, quantity: int) -> int:
        self._check_quantity(quantity)
        async with self._lock:
            counter = self._counter(product_id)
            released = min(quantity, counter[1])
            if released < quantity:
                logger.warning(
                    f"Release of {quantity} x {product_id} exceeds reserved {counter[1]}; "
                    f"releasing {released}"
                )
            counter[1] -= released
            counter[0] += released
            return released

    async def confirm_reservation(self, product_id: str, quantity: int) -> None:
        self._check_quantity(quantity)
        async with self._lock:
            counter = self._counter(product_id)
            if counter[1] < quantity:
                raise InventoryError(
                    product_id,
                    f"Cannot confirm {quantity} units of {product_id}: only {counter[1]} reserved",
                )
            counter[1] -= quantity
            counter[2] += quantity

    async def restock(self, product_id: str, quantity: int) -> int:
        self._check_quantity(quantity)
        async with self._lock:
            counter = self._counter(product_id)
            restocked = min(quantity, counter[2])
            counter[2] -= restocked
            counter[0] += restocked
            return restocked

    async def get_stock(self, product_id: str) -> StockLevel | None:
        async with self._lock:
            counter = self._counters.get(product_id)
            if counter is None:
                return None
            return self._level(product_id, counter)

    async def set_stock(self, product_id: str, available: int) -> StockLevel:
        if available < 0:
            msg = "available stock cannot be negative"
            raise ValueError(msg)
        async with self._lock:
            counter = self._counters.setdefault(product_id, [0, 0, 0])
            counter[0] = available
            return self._level(product_id, counter)

    def _level(self, product_id: str, counter: list[int]) -> StockLevel:
        return StockLevel(
            product_id=product_id,
            available=counter[0],
            reserved=counter[1],
            sold=counter[2],
            low_stock_threshold=self.low_stock_threshold,
        )
