"""
Redis coordination store

Locks use ``SET key token NX PX ttl`` for acquisition and a compare-and-delete
Lua script for release, so a holder whose lock already expired can never
delete the lock of a later holder. Cached orders are plain strings with EX.

Requires: pip install redis
"""

from typing import Any

from ordersaga.coordination.base import (
    CoordinationConnectionError,
    CoordinationError,
    CoordinationStore,
    Lock,
)
from ordersaga.core.exceptions import MissingDependencyError
from ordersaga.core.logger import get_logger

try:
    import redis.asyncio as redis

    REDIS_AVAILABLE = True
except ImportError:  # pragma: no cover
    REDIS_AVAILABLE = False  # pragma: no cover
    redis: Any = None  # type: ignore[no-redef]  # pragma: no cover

logger = get_logger(__name__)

# KEYS[1] = lock key, ARGV[1] = owner token
RELEASE_LOCK_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""


class RedisCoordinationStore(CoordinationStore):
    """
    Redis implementation of the coordination store.

    Example:
        >>> async with RedisCoordinationStore("redis://localhost:6379/0") as store:
        ...     async with store.locked("lock:order:create:cust-1", 30):
        ...         ...
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", **redis_kwargs):
        if not REDIS_AVAILABLE:
            msg = "redis"
            raise MissingDependencyError(msg, "Redis coordination store")

        self.redis_url = redis_url
        self.redis_kwargs = redis_kwargs
        self._redis = None
        self._release_script = None

    async def _get_redis(self):
        """Get Redis connection, creating if necessary"""
        if self._redis is None:
            try:
                client = redis.from_url(self.redis_url, decode_responses=True, **self.redis_kwargs)
                await client.ping()
            except Exception as e:
                msg = f"Failed to connect to Redis: {e}"
                raise CoordinationConnectionError(msg) from e
            self._redis = client
            self._release_script = client.register_script(RELEASE_LOCK_SCRIPT)
        return self._redis

    async def acquire_lock(self, key: str, ttl_seconds: int) -> Lock | None:
        client = await self._get_redis()
        token = self.new_token()
        try:
            acquired = await client.set(key, token, nx=True, px=int(ttl_seconds * 1000))
        except redis.RedisError as e:
            msg = f"Failed to acquire lock {key}: {e}"
            raise CoordinationError(msg) from e
        if not acquired:
            return None
        return Lock(key=key, token=token, ttl_seconds=ttl_seconds)

    async def release_lock(self, lock: Lock) -> bool:
        await self._get_redis()
        try:
            deleted = await self._release_script(keys=[lock.key], args=[lock.token])
        except redis.RedisError as e:
            msg = f"Failed to release lock {lock.key}: {e}"
            raise CoordinationError(msg) from e
        return bool(deleted)

    async def cache_get(self, key: str) -> str | None:
        client = await self._get_redis()
        try:
            return await client.get(key)  # type: ignore[no-any-return]
        except redis.RedisError as e:
            msg = f"Failed to read cache key {key}: {e}"
            raise CoordinationError(msg) from e

    async def cache_set(self, key: str, value: str, ttl_seconds: int) -> None:
        client = await self._get_redis()
        try:
            await client.set(key, value, ex=ttl_seconds)
        except redis.RedisError as e:
            msg = f"Failed to write cache key {key}: {e}"
            raise CoordinationError(msg) from e

    async def cache_delete(self, key: str) -> None:
        client = await self._get_redis()
        try:
            await client.delete(key)
        except redis.RedisError as e:
            msg = f"Failed to delete cache key {key}: {e}"
            raise CoordinationError(msg) from e

    async def health_check(self) -> bool:
        try:
            client = await self._get_redis()
            return bool(await client.ping())
        except Exception:
            return False

    async def close(self) -> None:
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis connection: {e}")
            finally:
                self._redis = None
                self._release_script = None
