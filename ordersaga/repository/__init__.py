"""
Order persistence backends.
"""

from ordersaga.repository.base import (
    DuplicateOrderError,
    OrderRepository,
    StorageConnectionError,
    StorageError,
)
from ordersaga.repository.memory import InMemoryOrderRepository, compute_stats

__all__ = [
    "DuplicateOrderError",
    "InMemoryOrderRepository",
    "OrderRepository",
    "StorageConnectionError",
    "StorageError",
    "compute_stats",
]
