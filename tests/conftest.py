"""
Pytest configuration and shared fixtures for order saga tests

Everything runs against the in-memory backends; PostgreSQL and Redis
backends are tested separately with mocked drivers.
"""

from decimal import Decimal

import pytest

from ordersaga.collaborators import (
    Cart,
    InMemoryCartService,
    InMemoryProductCatalog,
    Product,
    SimulatedPaymentGateway,
    StaticCouponService,
)
from ordersaga.coordination.memory import InMemoryCoordinationStore
from ordersaga.core.config import CoordinatorConfig
from ordersaga.core.coordinator import OrderCoordinator
from ordersaga.core.types import CreateOrderInput, LineItemRequest, ShippingInfo
from ordersaga.events.brokers.memory import InMemoryBroker
from ordersaga.events.publisher import EventPublisher
from ordersaga.inventory.memory import InMemoryInventoryService
from ordersaga.repository.memory import InMemoryOrderRepository

# product id -> (name, price, initial stock)
CATALOG = {
    "prod-a": ("Product A", Decimal("1000"), 1),
    "prod-b": ("Product B", Decimal("2000"), 5),
    "prod-c": ("Product C", Decimal("100"), 10),
    "prod-d": ("Product D", Decimal("30000"), 20),
}


class RecordingSubscriber:
    """Event subscriber that remembers everything it receives."""

    def __init__(self):
        self.events = []

    async def handle(self, event):
        self.events.append(event)

    @property
    def types(self):
        return [event.event_type for event in self.events]


@pytest.fixture
def config():
    return CoordinatorConfig()


@pytest.fixture
def shipping_info():
    return ShippingInfo(
        name="Kim Minji",
        phone="010-1234-5678",
        address="123 Teheran-ro",
        city="Busan",
        postal_code="48058",
        country="KR",
        email="minji@example.com",
    )


@pytest.fixture
def catalog():
    catalog = InMemoryProductCatalog()
    for product_id, (name, price, _) in CATALOG.items():
        catalog.add(Product(id=product_id, name=name, sku=product_id.upper(), price=price))
    return catalog


@pytest.fixture
async def inventory():
    inventory = InMemoryInventoryService()
    for product_id, (_, _, stock) in CATALOG.items():
        await inventory.set_stock(product_id, stock)
    return inventory


@pytest.fixture
def store():
    return InMemoryCoordinationStore()


@pytest.fixture
def repository():
    return InMemoryOrderRepository()


@pytest.fixture
def gateway():
    return SimulatedPaymentGateway()


@pytest.fixture
def carts():
    return InMemoryCartService()


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def subscriber():
    return RecordingSubscriber()


@pytest.fixture
async def publisher(broker, subscriber, config):
    publisher = EventPublisher(broker, channel=config.event_channel, subscribers=[subscriber])
    await publisher.start()
    return publisher


@pytest.fixture
def coordinator(store, repository, inventory, catalog, gateway, carts, publisher, config):
    return OrderCoordinator(
        store=store,
        repository=repository,
        inventory=inventory,
        catalog=catalog,
        gateway=gateway,
        carts=carts,
        coupons=StaticCouponService(),
        publisher=publisher,
        config=config,
    )


@pytest.fixture
def make_request(shipping_info):
    """Build a CreateOrderInput from ``product_id=quantity`` pairs."""

    def _make(customer_id="cust-1", cart_id=None, coupon_code=None, **quantities):
        return CreateOrderInput(
            customer_id=customer_id,
            shipping_info=shipping_info,
            payment_method="card",
            items=[LineItemRequest(pid.replace("_", "-"), qty) for pid, qty in quantities.items()],
            cart_id=cart_id,
            coupon_code=coupon_code,
        )

    return _make


@pytest.fixture
def put_cart(carts):
    def _put(cart_id, customer_id="cust-1", **quantities):
        carts.put(
            Cart(
                id=cart_id,
                customer_id=customer_id,
                items=[
                    LineItemRequest(pid.replace("_", "-"), qty) for pid, qty in quantities.items()
                ],
            )
        )

    return _put
