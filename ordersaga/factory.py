"""
Backend factory - builds a wired OrderCoordinator from configuration.

Backends are picked from the configured URLs: ``database_url`` selects the
PostgreSQL repository and inventory, ``redis_url`` selects the Redis lock/cache
store and the Redis Streams event broker. Without URLs everything runs in
memory, which is what development and tests use.

Examples:
    >>> coordinator = create_coordinator(
    ...     CoordinatorConfig.from_env(),
    ...     catalog=catalog,
    ...     gateway=gateway,
    ... )
    >>> async with coordinator:
    ...     order = await coordinator.create_order(request)
"""

from typing import Any

from ordersaga.collaborators import CartService, CouponService, PaymentGateway, ProductCatalog
from ordersaga.coordination.base import CoordinationStore
from ordersaga.coordination.memory import InMemoryCoordinationStore
from ordersaga.core.config import CoordinatorConfig
from ordersaga.core.coordinator import OrderCoordinator
from ordersaga.events.brokers.base import MessageBroker
from ordersaga.events.brokers.memory import InMemoryBroker
from ordersaga.events.publisher import EventPublisher, EventSubscriber
from ordersaga.inventory.base import InventoryService
from ordersaga.inventory.memory import InMemoryInventoryService
from ordersaga.repository.base import OrderRepository
from ordersaga.repository.memory import InMemoryOrderRepository


def create_coordination_store(config: CoordinatorConfig) -> CoordinationStore:
    if not config.redis_url:
        return InMemoryCoordinationStore()

    from ordersaga.coordination.redis import RedisCoordinationStore

    return RedisCoordinationStore(redis_url=config.redis_url)


def create_repository(config: CoordinatorConfig) -> OrderRepository:
    if not config.database_url:
        return InMemoryOrderRepository()

    from ordersaga.repository.postgresql import PostgreSQLOrderRepository

    return PostgreSQLOrderRepository(
        connection_string=config.database_url,
        pool_min_size=config.pool_min_size,
        pool_max_size=config.pool_max_size,
    )


def create_inventory(config: CoordinatorConfig) -> InventoryService:
    if not config.database_url:
        return InMemoryInventoryService(low_stock_threshold=config.low_stock_threshold)

    from ordersaga.inventory.postgresql import PostgreSQLInventoryService

    return PostgreSQLInventoryService(
        connection_string=config.database_url,
        low_stock_threshold=config.low_stock_threshold,
        pool_min_size=config.pool_min_size,
        pool_max_size=config.pool_max_size,
    )


def create_broker(config: CoordinatorConfig) -> MessageBroker:
    if not config.redis_url:
        return InMemoryBroker()

    from ordersaga.events.brokers.redis import RedisBroker, RedisBrokerConfig

    return RedisBroker(RedisBrokerConfig(url=config.redis_url, stream_name=config.event_channel))


def create_coordinator(
    config: CoordinatorConfig | None = None,
    *,
    catalog: ProductCatalog,
    gateway: PaymentGateway,
    carts: CartService | None = None,
    coupons: CouponService | None = None,
    subscribers: list[EventSubscriber] | None = None,
    metrics: Any = None,
) -> OrderCoordinator:
    """
    Create an OrderCoordinator with backends chosen from ``config``.

    Args:
        config: Coordinator configuration (default: CoordinatorConfig())
        catalog: Product lookup
        gateway: Payment gateway client
        carts: Cart service, required for cart-based orders
        coupons: Coupon validation
        subscribers: In-process event subscribers (e.g. NotificationSubscriber)
        metrics: PrometheusMetrics instance, or None to disable metrics

    Raises:
        MissingDependencyError: If a selected backend's driver isn't installed
    """
    config = config or CoordinatorConfig()
    publisher = EventPublisher(
        create_broker(config),
        channel=config.event_channel,
        subscribers=subscribers,
        metrics=metrics,
    )
    return OrderCoordinator(
        store=create_coordination_store(config),
        repository=create_repository(config),
        inventory=create_inventory(config),
        catalog=catalog,
        gateway=gateway,
        carts=carts,
        coupons=coupons,
        publisher=publisher,
        config=config,
        metrics=metrics,
    )
