"""
Redis Message Broker - order events on a Redis Stream.

Usage:
    >>> broker = RedisBroker(RedisBrokerConfig(url="redis://localhost:6379/0"))
    >>> await broker.connect()
    >>> await broker.publish("order-events", b'{"order_id": "123"}')
"""

from dataclasses import dataclass
from typing import Any

from ordersaga.core.env import EnvManager, get_env
from ordersaga.core.exceptions import MissingDependencyError
from ordersaga.core.logger import get_logger
from ordersaga.events.brokers.base import (
    BaseBroker,
    BrokerConnectionError,
    BrokerError,
    BrokerPublishError,
)

try:
    import redis.asyncio as redis

    REDIS_AVAILABLE = True
except ImportError:  # pragma: no cover
    REDIS_AVAILABLE = False  # pragma: no cover
    redis: Any = None  # type: ignore[no-redef]  # pragma: no cover


logger = get_logger(__name__)


@dataclass
class RedisBrokerConfig:
    """
    Redis Streams broker configuration.

    Attributes:
        url: Redis URL (redis://[user:pass@]host:port/db)
        stream_name: Stream the events are appended to
        max_stream_length: Approximate MAXLEN for XADD trimming
        connection_timeout_seconds: Socket and connect timeout
    """

    url: str = "redis://localhost:6379/0"
    stream_name: str = "order-events"
    max_stream_length: int = 10000
    connection_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls, env: EnvManager | None = None) -> "RedisBrokerConfig":
        """
        Environment variables:
            ORDERSAGA_REDIS_URL: Redis connection URL
            ORDERSAGA_EVENT_STREAM: Stream name
            ORDERSAGA_EVENT_STREAM_MAXLEN: Maximum stream length
        """
        env = env or get_env()
        return cls(
            url=env.get("ORDERSAGA_REDIS_URL", cls.url),
            stream_name=env.get("ORDERSAGA_EVENT_STREAM", cls.stream_name),
            max_stream_length=env.get_int("ORDERSAGA_EVENT_STREAM_MAXLEN", cls.max_stream_length),
        )


class RedisBroker(BaseBroker):
    """
    Redis Streams message broker.

    Each publish is one XADD entry with ``topic``, ``payload``, ``key`` and
    ``header:*`` fields, trimmed to roughly ``max_stream_length`` entries.
    """

    def __init__(self, config: RedisBrokerConfig | None = None, client: Any = None):
        if not REDIS_AVAILABLE:
            msg = "redis"
            raise MissingDependencyError(msg, "Redis event broker")

        super().__init__()
        self.config = config or RedisBrokerConfig()
        self._client = client
        if client is not None:
            self._connected = True

    async def connect(self) -> None:
        """
        Establish connection to Redis.

        Raises:
            BrokerConnectionError: If connection fails
        """
        if self._connected:
            return
        try:
            self._client = redis.from_url(
                self.config.url,
                socket_timeout=self.config.connection_timeout_seconds,
                socket_connect_timeout=self.config.connection_timeout_seconds,
                decode_responses=False,
            )
            await self._client.ping()
            self._connected = True
            logger.info("Connected to Redis event stream")
        except Exception as e:
            self._connected = False
            msg = f"Failed to connect to Redis: {e}"
            raise BrokerConnectionError(msg) from e

    async def publish(
        self,
        topic: str,
        message: bytes,
        headers: dict[str, str] | None = None,
        key: str | None = None,
    ) -> None:
        if not self._connected or self._client is None:
            msg = "Not connected to Redis"
            raise BrokerError(msg)

        fields: dict[bytes, bytes] = {b"topic": topic.encode(), b"payload": message}
        if key:
            fields[b"key"] = key.encode()
        for h_key, h_value in (headers or {}).items():
            fields[f"header:{h_key}".encode()] = str(h_value).encode()

        try:
            message_id = await self._client.xadd(
                self.config.stream_name,
                fields,
                maxlen=self.config.max_stream_length,
                approximate=True,
            )
            logger.debug(f"Published message to stream {self.config.stream_name}: {message_id}")
        except Exception as e:
            msg = f"Failed to publish to Redis stream: {e}"
            raise BrokerPublishError(msg) from e

    async def close(self) -> None:
        if self._client:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis connection: {e}")
            finally:
                self._client = None
                self._connected = False

    async def health_check(self) -> bool:
        if not self._client:
            return False
        try:
            await self._client.ping()
            return True
        except Exception:
            return False
