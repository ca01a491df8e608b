"""
In-memory coordination store

Single-process implementation for development and testing. Locks and cache
entries expire against an injectable monotonic clock.
"""

import asyncio
import time
from collections.abc import Callable

from ordersaga.coordination.base import CoordinationConnectionError, CoordinationStore, Lock


class InMemoryCoordinationStore(CoordinationStore):
    """
    Dictionary-backed lock + cache store.

    Not shared across processes; use RedisCoordinationStore in production.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._locks: dict[str, tuple[str, float]] = {}
        self._cache: dict[str, tuple[str, float]] = {}
        self._mutex = asyncio.Lock()
        self.available = True

    def _alive(self, expires_at: float) -> bool:
        return expires_at > self._clock()

    def _check_available(self) -> None:
        if not self.available:
            msg = "In-memory coordination store marked unavailable"
            raise CoordinationConnectionError(msg)

    async def acquire_lock(self, key: str, ttl_seconds: int) -> Lock | None:
        self._check_available()
        async with self._mutex:
            current = self._locks.get(key)
            if current is not None and self._alive(current[1]):
                return None
            token = self.new_token()
            self._locks[key] = (token, self._clock() + ttl_seconds)
            return Lock(key=key, token=token, ttl_seconds=ttl_seconds)

    async def release_lock(self, lock: Lock) -> bool:
        self._check_available()
        async with self._mutex:
            current = self._locks.get(lock.key)
            if current is None or current[0] != lock.token or not self._alive(current[1]):
                return False
            del self._locks[lock.key]
            return True

    async def cache_get(self, key: str) -> str | None:
        self._check_available()
        async with self._mutex:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if not self._alive(entry[1]):
                del self._cache[key]
                return None
            return entry[0]

    async def cache_set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._check_available()
        async with self._mutex:
            self._cache[key] = (value, self._clock() + ttl_seconds)

    async def cache_delete(self, key: str) -> None:
        self._check_available()
        async with self._mutex:
            self._cache.pop(key, None)

    async def health_check(self) -> bool:
        return self.available

    def is_locked(self, key: str) -> bool:
        """Inspection helper for tests."""
        current = self._locks.get(key)
        return current is not None and self._alive(current[1])
