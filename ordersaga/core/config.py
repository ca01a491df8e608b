"""
CoordinatorConfig - Unified configuration for the order coordinator.

Wires together the business policy (tax, shipping, currency), the coordination
timings (lock and cache TTLs) and the backend locations used by the factory.

Example:
    >>> from ordersaga.core.config import CoordinatorConfig
    >>>
    >>> # Development defaults (in-memory backends)
    >>> config = CoordinatorConfig()
    >>>
    >>> # Production, from ORDERSAGA_* environment variables / .env
    >>> config = CoordinatorConfig.from_env()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ordersaga.core.env import EnvManager, get_env


def _default_regional_fees() -> dict[str, Decimal]:
    return {"서울": Decimal("2500"), "Seoul": Decimal("2500")}


@dataclass
class CoordinatorConfig:
    """
    Configuration for OrderCoordinator and its backends.

    Attributes:
        lock_ttl_seconds: Lifetime of creation/lifecycle locks
        cache_ttl_seconds: Lifetime of cached order documents
        tax_rate: Flat tax applied to (subtotal - discount)
        currency: ISO currency code stamped on every order
        currency_exponent: Number of minor-unit digits (0 for KRW, 2 for USD)
        free_shipping_threshold: Subtotal at or above which shipping is free
        base_shipping_fee: Shipping fee for destinations without a regional fee
        regional_shipping_fees: Per-city flat fees
        order_number_prefix: Prefix of human-readable order numbers
        event_channel: Channel/stream that order events are published to
        lock_prefix: Key prefix for locks in the coordination store
        cache_prefix: Key prefix for cached orders in the coordination store
        low_stock_threshold: Available quantity at or below which stock is "low"
        database_url: PostgreSQL DSN; None selects in-memory repository/inventory
        redis_url: Redis URL; None selects in-memory coordination store/broker
    """

    lock_ttl_seconds: int = 30
    cache_ttl_seconds: int = 300

    tax_rate: Decimal = Decimal("0.1")
    currency: str = "KRW"
    currency_exponent: int = 0
    free_shipping_threshold: Decimal = Decimal("50000")
    base_shipping_fee: Decimal = Decimal("3000")
    regional_shipping_fees: dict[str, Decimal] = field(default_factory=_default_regional_fees)

    order_number_prefix: str = "ORD"
    event_channel: str = "order-events"
    lock_prefix: str = "lock:"
    cache_prefix: str = "order:"
    low_stock_threshold: int = 10

    database_url: str | None = None
    redis_url: str | None = None
    pool_min_size: int = 2
    pool_max_size: int = 10

    def __post_init__(self) -> None:
        if self.lock_ttl_seconds <= 0:
            msg = "lock_ttl_seconds must be positive"
            raise ValueError(msg)
        if self.cache_ttl_seconds <= 0:
            msg = "cache_ttl_seconds must be positive"
            raise ValueError(msg)
        if self.tax_rate < 0:
            msg = "tax_rate cannot be negative"
            raise ValueError(msg)
        if self.currency_exponent < 0:
            msg = "currency_exponent cannot be negative"
            raise ValueError(msg)

        # Accept ints/strings from callers, store Decimals
        self.tax_rate = Decimal(str(self.tax_rate))
        self.free_shipping_threshold = Decimal(str(self.free_shipping_threshold))
        self.base_shipping_fee = Decimal(str(self.base_shipping_fee))
        self.regional_shipping_fees = {
            city: Decimal(str(fee)) for city, fee in self.regional_shipping_fees.items()
        }

    @property
    def minor_unit(self) -> Decimal:
        """Smallest representable amount, e.g. Decimal('1') for KRW, Decimal('0.01') for USD."""
        return Decimal(1).scaleb(-self.currency_exponent)

    def creation_lock_key(self, customer_id: str) -> str:
        return f"{self.lock_prefix}order:create:{customer_id}"

    def order_lock_key(self, order_id: str) -> str:
        return f"{self.lock_prefix}order:{order_id}"

    def cache_key(self, order_id: str) -> str:
        return f"{self.cache_prefix}{order_id}"

    @classmethod
    def from_env(cls, env: EnvManager | None = None) -> CoordinatorConfig:
        """
        Create configuration from environment variables.

        Environment variables:
            ORDERSAGA_DATABASE_URL: PostgreSQL DSN
            ORDERSAGA_REDIS_URL: Redis URL
            ORDERSAGA_LOCK_TTL: Lock TTL in seconds
            ORDERSAGA_CACHE_TTL: Cache TTL in seconds
            ORDERSAGA_TAX_RATE: Tax rate, e.g. 0.1
            ORDERSAGA_CURRENCY / ORDERSAGA_CURRENCY_EXPONENT
            ORDERSAGA_FREE_SHIPPING_THRESHOLD / ORDERSAGA_BASE_SHIPPING_FEE
            ORDERSAGA_REGIONAL_SHIPPING_FEES: "Seoul=2500,Busan=2800"
            ORDERSAGA_EVENT_CHANNEL: Event stream name
        """
        env = env or get_env()
        defaults = cls()
        return cls(
            lock_ttl_seconds=env.get_int("ORDERSAGA_LOCK_TTL", defaults.lock_ttl_seconds),
            cache_ttl_seconds=env.get_int("ORDERSAGA_CACHE_TTL", defaults.cache_ttl_seconds),
            tax_rate=env.get_decimal("ORDERSAGA_TAX_RATE", defaults.tax_rate),
            currency=env.get("ORDERSAGA_CURRENCY", defaults.currency),
            currency_exponent=env.get_int(
                "ORDERSAGA_CURRENCY_EXPONENT", defaults.currency_exponent
            ),
            free_shipping_threshold=env.get_decimal(
                "ORDERSAGA_FREE_SHIPPING_THRESHOLD", defaults.free_shipping_threshold
            ),
            base_shipping_fee=env.get_decimal(
                "ORDERSAGA_BASE_SHIPPING_FEE", defaults.base_shipping_fee
            ),
            regional_shipping_fees=env.get_mapping(
                "ORDERSAGA_REGIONAL_SHIPPING_FEES", defaults.regional_shipping_fees
            ),
            order_number_prefix=env.get("ORDERSAGA_ORDER_PREFIX", defaults.order_number_prefix),
            event_channel=env.get("ORDERSAGA_EVENT_CHANNEL", defaults.event_channel),
            low_stock_threshold=env.get_int(
                "ORDERSAGA_LOW_STOCK_THRESHOLD", defaults.low_stock_threshold
            ),
            database_url=env.get("ORDERSAGA_DATABASE_URL"),
            redis_url=env.get("ORDERSAGA_REDIS_URL"),
            pool_min_size=env.get_int("ORDERSAGA_POOL_MIN_SIZE", defaults.pool_min_size),
            pool_max_size=env.get_int("ORDERSAGA_POOL_MAX_SIZE", defaults.pool_max_size),
        )
