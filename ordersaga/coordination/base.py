"""
Base interface for the distributed coordination store.

One backing key-value store serves two purposes:

1. Mutual-exclusion locks: create-if-absent with a TTL, released only by the
   holder of the ownership token.
2. A short-lived cache of assembled order documents. The cache is a read
   optimisation only and never the system of record.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from ordersaga.core.exceptions import ConcurrentOperationError
from ordersaga.core.logger import get_logger

logger = get_logger(__name__)


class CoordinationError(Exception):
    """Base exception for coordination store errors."""


class CoordinationConnectionError(CoordinationError):
    """Failed to reach the coordination store."""


@dataclass(frozen=True)
class Lock:
    """An acquired lock: at most one holder per key until release or expiry."""

    key: str
    token: str
    ttl_seconds: int


class CoordinationStore(ABC):
    """
    Abstract lock + cache store.

    Implementations must make ``acquire_lock`` a single atomic
    create-if-absent and ``release_lock`` a single atomic compare-and-delete.
    """

    @staticmethod
    def new_token() -> str:
        return uuid.uuid4().hex

    @abstractmethod
    async def acquire_lock(self, key: str, ttl_seconds: int) -> Lock | None:
        """
        Try to take the lock without waiting.

        Returns:
            The Lock if acquired, None if another holder has it
        """

    @abstractmethod
    async def release_lock(self, lock: Lock) -> bool:
        """
        Release the lock if ``lock.token`` still owns it.

        Returns:
            True if released, False if it had expired or belongs to someone else
        """

    @abstractmethod
    async def cache_get(self, key: str) -> str | None:
        """Return the cached value or None."""

    @abstractmethod
    async def cache_set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL."""

    @abstractmethod
    async def cache_delete(self, key: str) -> None:
        """Remove a cached value (no error if absent)."""

    async def close(self) -> None:  # noqa: B027
        """Release backend resources."""

    async def health_check(self) -> bool:
        return True

    @asynccontextmanager
    async def locked(self, key: str, ttl_seconds: int) -> AsyncIterator[Lock]:
        """
        Hold ``key`` for the body of the ``async with`` block.

        Fails fast with ConcurrentOperationError if the lock is held or the
        store cannot be reached; the lock is released on every exit path.

        Example:
            >>> async with store.locked("lock:order:create:cust-1", 30):
            ...     await create()
        """
        try:
            lock = await self.acquire_lock(key, ttl_seconds)
        except CoordinationError as e:
            raise ConcurrentOperationError(
                key, reason="The service is temporarily busy. Please retry shortly."
            ) from e
        if lock is None:
            raise ConcurrentOperationError(key)
        try:
            yield lock
        finally:
            try:
                released = await self.release_lock(lock)
                if not released:
                    logger.warning(f"Lock {key} expired before release")
            except CoordinationError as e:
                # Unreleased locks expire on their own after the TTL
                logger.warning(f"Failed to release lock {key}: {e}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
