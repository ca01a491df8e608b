"""
Distributed coordination store: locks and the order cache.
"""

from ordersaga.coordination.base import (
    CoordinationConnectionError,
    CoordinationError,
    CoordinationStore,
    Lock,
)
from ordersaga.coordination.memory import InMemoryCoordinationStore

__all__ = [
    "CoordinationConnectionError",
    "CoordinationError",
    "CoordinationStore",
    "InMemoryCoordinationStore",
    "Lock",
]
