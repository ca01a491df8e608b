"""
All type definitions, enums, and dataclasses

Money is always ``Decimal``; timestamps are timezone-aware UTC datetimes.
``to_dict``/``from_dict`` give the JSON-safe shape used by the order cache
and the event payloads.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class OrderStatus(Enum):
    """
    Overall order status.

    Happy path:
        PENDING → PROCESSING → PAYMENT_PENDING → PAID → PREPARING → SHIPPED → DELIVERED

    Side branches CANCELLED / REFUNDED / FAILED are reachable before DELIVERED.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    PREPARING = "preparing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _dec(value: Any) -> Decimal | None:
    return None if value is None else Decimal(str(value))


@dataclass(frozen=True)
class ShippingInfo:
    """Shipping address snapshot plus carrier tracking fields."""

    name: str
    phone: str
    address: str
    city: str
    postal_code: str
    country: str
    email: str | None = None
    state: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    estimated_delivery: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "tracking_number": self.tracking_number,
            "carrier": self.carrier,
            "estimated_delivery": _iso(self.estimated_delivery),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShippingInfo":
        return cls(
            name=data["name"],
            phone=data["phone"],
            email=data.get("email"),
            address=data["address"],
            city=data["city"],
            state=data.get("state"),
            postal_code=data["postal_code"],
            country=data["country"],
            tracking_number=data.get("tracking_number"),
            carrier=data.get("carrier"),
            estimated_delivery=_parse_dt(data.get("estimated_delivery")),
        )


@dataclass(frozen=True)
class OrderItem:
    """
    Immutable snapshot of one ordered product.

    Catalog changes after the order is placed never affect these values.
    """

    id: str
    order_id: str
    product_id: str
    product_name: str
    product_sku: str
    quantity: int
    price: Decimal
    total: Decimal
    original_price: Decimal | None = None
    discount: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "price": str(self.price),
            "original_price": None if self.original_price is None else str(self.original_price),
            "discount": str(self.discount),
            "total": str(self.total),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            id=data["id"],
            order_id=data["order_id"],
            product_id=data["product_id"],
            product_name=data["product_name"],
            product_sku=data["product_sku"],
            quantity=int(data["quantity"]),
            price=Decimal(str(data["price"])),
            original_price=_dec(data.get("original_price")),
            discount=Decimal(str(data.get("discount") or "0")),
            total=Decimal(str(data["total"])),
        )


@dataclass(frozen=True)
class Order:
    """
    Durable order record.

    Line items never change after creation; status, payment reference,
    shipping/tracking fields and metadata change only through the coordinator.
    """

    id: str
    order_number: str
    customer_id: str
    status: OrderStatus
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total_amount: Decimal
    currency: str
    items: tuple[OrderItem, ...]
    shipping_info: ShippingInfo
    payment_id: str | None = None
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def evolve(self, **changes: Any) -> "Order":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    @property
    def item_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "status": self.status.value,
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "shipping": str(self.shipping),
            "discount": str(self.discount),
            "total_amount": str(self.total_amount),
            "currency": self.currency,
            "items": [item.to_dict() for item in self.items],
            "shipping_info": self.shipping_info.to_dict(),
            "payment_id": self.payment_id,
            "notes": self.notes,
            "metadata": self.metadata,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            order_number=data["order_number"],
            customer_id=data["customer_id"],
            status=OrderStatus(data["status"]),
            subtotal=Decimal(str(data["subtotal"])),
            tax=Decimal(str(data["tax"])),
            shipping=Decimal(str(data["shipping"])),
            discount=Decimal(str(data["discount"])),
            total_amount=Decimal(str(data["total_amount"])),
            currency=data["currency"],
            items=tuple(OrderItem.from_dict(item) for item in data.get("items", [])),
            shipping_info=ShippingInfo.from_dict(data["shipping_info"]),
            payment_id=data.get("payment_id"),
            notes=data.get("notes"),
            metadata=dict(data.get("metadata") or {}),
            created_at=_parse_dt(data["created_at"]),
            updated_at=_parse_dt(data["updated_at"]),
        )


@dataclass(frozen=True)
class LineItemRequest:
    """A requested product and quantity, before resolution against the catalog."""

    product_id: str
    quantity: int

    def __post_init__(self):
        if self.quantity <= 0:
            msg = f"quantity must be positive for product {self.product_id}"
            raise ValueError(msg)


@dataclass
class CreateOrderInput:
    """
    Input of OrderCoordinator.create_order.

    Items come from ``cart_id`` when given, otherwise from ``items``.
    """

    customer_id: str
    shipping_info: ShippingInfo
    payment_method: str
    items: list[LineItemRequest] = field(default_factory=list)
    cart_id: str | None = None
    coupon_code: str | None = None
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Reservation:
    """Stock held for one create-order attempt; exists only to drive compensation."""

    product_id: str
    quantity: int


@dataclass(frozen=True)
class OrderTotals:
    """Money breakdown of an order."""

    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


@dataclass(frozen=True)
class StatusChange:
    """One recorded status transition."""

    order_id: str
    from_status: OrderStatus | None
    to_status: OrderStatus
    changed_at: datetime


@dataclass
class OrderFilter:
    """Filter and pagination for order listings (page is 1-based)."""

    customer_id: str | None = None
    status: OrderStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = 1
    limit: int = 20

    def __post_init__(self):
        self.page = max(1, self.page)
        self.limit = max(1, min(self.limit, 100))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class OrderPage:
    orders: list[Order]
    total: int


@dataclass(frozen=True)
class OrderStats:
    """Aggregate order statistics for a customer and/or date range."""

    total_orders: int = 0
    delivered_orders: int = 0
    cancelled_orders: int = 0
    total_revenue: Decimal = Decimal("0")
    avg_order_value: Decimal = Decimal("0")
    max_order_value: Decimal = Decimal("0")
    min_order_value: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_orders": self.total_orders,
            "delivered_orders": self.delivered_orders,
            "cancelled_orders": self.cancelled_orders,
            "total_revenue": str(self.total_revenue),
            "avg_order_value": str(self.avg_order_value),
            "max_order_value": str(self.max_order_value),
            "min_order_value": str(self.min_order_value),
        }


# Statuses whose totals count towards revenue
REVENUE_EXCLUDED_STATUSES = frozenset(
    {OrderStatus.CANCELLED, OrderStatus.FAILED, OrderStatus.REFUNDED}
)
