"""
Inventory reservation backends.
"""

from ordersaga.inventory.base import InventoryService, StockLevel
from ordersaga.inventory.memory import InMemoryInventoryService

__all__ = [
    "InMemoryInventoryService",
    "InventoryService",
    "StockLevel",
]
