"""
Tests for the order lifecycle: payment completion, cancellation, fulfilment
transitions and cache-first reads.
"""

from unittest.mock import AsyncMock

import pytest

from ordersaga.coordination.base import CoordinationConnectionError
from ordersaga.core.exceptions import (
    ConcurrentOperationError,
    InvalidStateError,
    InventoryError,
    OrderNotFoundError,
    OrderPersistenceError,
    RefundFailedError,
)
from ordersaga.core.types import OrderFilter, OrderStatus
from ordersaga.events.notifications import NotificationSubscriber
from ordersaga.events.types import OrderEventType
from ordersaga.repository.base import StorageError


async def _stock(inventory, product_id):
    level = await inventory.get_stock(product_id)
    return level.available, level.reserved, level.sold


@pytest.fixture
async def pending_order(coordinator, make_request, publisher, subscriber):
    order = await coordinator.create_order(make_request(prod_c=2, prod_b=1))
    await publisher.drain()
    subscriber.events.clear()
    return order


@pytest.fixture
async def paid_order(coordinator, pending_order, publisher, subscriber):
    order = await coordinator.complete_payment(pending_order.id, pending_order.payment_id)
    await publisher.drain()
    subscriber.events.clear()
    return order


class TestCompletePayment:
    """PAYMENT_PENDING -> PAID with stock confirmation."""

    @pytest.mark.asyncio
    async def test_marks_paid_and_confirms_stock(self, coordinator, pending_order, inventory):
        order = await coordinator.complete_payment(pending_order.id, "pay_settled")

        assert order.status == OrderStatus.PAID
        assert order.payment_id == "pay_settled"
        assert "paid_at" in order.metadata
        assert await _stock(inventory, "prod-c") == (8, 0, 2)
        assert await _stock(inventory, "prod-b") == (4, 0, 1)

    @pytest.mark.asyncio
    async def test_publishes_order_paid(self, coordinator, pending_order, publisher, subscriber):
        await coordinator.complete_payment(pending_order.id, pending_order.payment_id)
        await publisher.drain()

        assert subscriber.types == [OrderEventType.ORDER_PAID]
        assert subscriber.events[0].payload["payment_id"] == pending_order.payment_id

    @pytest.mark.asyncio
    async def test_already_paid_is_rejected(self, coordinator, paid_order, inventory):
        with pytest.raises(InvalidStateError) as exc_info:
            await coordinator.complete_payment(paid_order.id, paid_order.payment_id)

        assert exc_info.value.current == OrderStatus.PAID
        assert await _stock(inventory, "prod-c") == (8, 0, 2)

    @pytest.mark.asyncio
    async def test_unknown_order(self, coordinator):
        with pytest.raises(OrderNotFoundError):
            await coordinator.complete_payment("missing", "pay_x")

    @pytest.mark.asyncio
    async def test_confirmation_failure_is_recorded(
        self, coordinator, pending_order, inventory, repository, monkeypatch
    ):
        real_confirm = inventory.confirm_reservation

        async def flaky_confirm(product_id, quantity):
            if product_id == "prod-b":
                raise RuntimeError("inventory db timeout")
            await real_confirm(product_id, quantity)

        monkeypatch.setattr(inventory, "confirm_reservation", flaky_confirm)

        with pytest.raises(InventoryError) as exc_info:
            await coordinator.complete_payment(pending_order.id, pending_order.payment_id)

        assert exc_info.value.product_id == "prod-b"
        stored = await repository.get_order(pending_order.id)
        assert stored.status == OrderStatus.PAID
        assert stored.metadata["confirmation_failures"] == [
            {"product_id": "prod-b", "quantity": 1}
        ]
        # Unconfirmed units stay reserved, never oversold
        assert await _stock(inventory, "prod-b") == (4, 1, 0)
        assert await _stock(inventory, "prod-c") == (8, 0, 2)

    @pytest.mark.asyncio
    async def test_order_lock_held_fails_fast(self, coordinator, pending_order, store, config):
        await store.acquire_lock(config.order_lock_key(pending_order.id), 30)

        with pytest.raises(ConcurrentOperationError):
            await coordinator.complete_payment(pending_order.id, pending_order.payment_id)

    @pytest.mark.asyncio
    async def test_lost_compare_and_set_raises_invalid_state(
        self, coordinator, pending_order, repository
    ):
        repository.transition = AsyncMock(return_value=None)

        with pytest.raises(InvalidStateError):
            await coordinator.complete_payment(pending_order.id, pending_order.payment_id)

    @pytest.mark.asyncio
    async def test_storage_failure_maps_to_persistence_error(
        self, coordinator, pending_order, repository
    ):
        repository.transition = AsyncMock(side_effect=StorageError("deadlock detected"))

        with pytest.raises(OrderPersistenceError):
            await coordinator.complete_payment(pending_order.id, pending_order.payment_id)


class TestCancelOrder:
    """Cancellation returns stock and refunds captured payments."""

    @pytest.mark.asyncio
    async def test_cancel_unpaid_releases_reservations(
        self, coordinator, pending_order, inventory, gateway
    ):
        order = await coordinator.cancel_order(pending_order.id, reason="changed my mind")

        assert order.status == OrderStatus.CANCELLED
        assert order.metadata["cancel_reason"] == "changed my mind"
        assert "cancelled_at" in order.metadata
        assert "refund_status" not in order.metadata
        assert await _stock(inventory, "prod-c") == (10, 0, 0)
        assert await _stock(inventory, "prod-b") == (5, 0, 0)
        assert gateway.refunds == []

    @pytest.mark.asyncio
    async def test_cancel_paid_restocks_and_refunds(
        self, coordinator, paid_order, inventory, gateway
    ):
        order = await coordinator.cancel_order(paid_order.id, customer_id="cust-1")

        assert order.status == OrderStatus.CANCELLED
        assert order.metadata["refund_status"] == "refunded"
        assert await _stock(inventory, "prod-c") == (10, 0, 0)
        assert await _stock(inventory, "prod-b") == (5, 0, 0)
        assert len(gateway.refunds) == 1
        assert gateway.refunds[0]["payment_id"] == paid_order.payment_id
        assert gateway.refunds[0]["amount"] == paid_order.total_amount

    @pytest.mark.asyncio
    async def test_cancel_preparing_order_refunds(
        self, coordinator, paid_order, inventory, gateway
    ):
        await coordinator.start_preparation(paid_order.id)

        order = await coordinator.cancel_order(paid_order.id)

        assert order.status == OrderStatus.CANCELLED
        assert len(gateway.refunds) == 1
        assert await _stock(inventory, "prod-c") == (10, 0, 0)

    @pytest.mark.asyncio
    async def test_refund_failure_keeps_cancellation(
        self, coordinator, paid_order, inventory, gateway, repository, publisher, subscriber
    ):
        gateway.fail_refunds = True

        with pytest.raises(RefundFailedError) as exc_info:
            await coordinator.cancel_order(paid_order.id)
        await publisher.drain()

        assert exc_info.value.payment_id == paid_order.payment_id
        assert exc_info.value.order.status == OrderStatus.CANCELLED
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        stored = await repository.get_order(paid_order.id)
        assert stored.status == OrderStatus.CANCELLED
        assert stored.metadata["refund_status"] == "failed"
        assert await _stock(inventory, "prod-c") == (10, 0, 0)
        assert subscriber.types == [OrderEventType.ORDER_CANCELLED]

    @pytest.mark.asyncio
    async def test_double_cancel_is_rejected(self, coordinator, paid_order, gateway, inventory):
        await coordinator.cancel_order(paid_order.id)

        with pytest.raises(InvalidStateError) as exc_info:
            await coordinator.cancel_order(paid_order.id)

        assert exc_info.value.current == OrderStatus.CANCELLED
        assert len(gateway.refunds) == 1
        assert await _stock(inventory, "prod-c") == (10, 0, 0)

    @pytest.mark.asyncio
    async def test_other_customer_cannot_cancel(self, coordinator, pending_order, inventory):
        with pytest.raises(OrderNotFoundError):
            await coordinator.cancel_order(pending_order.id, customer_id="intruder")

        assert await _stock(inventory, "prod-c") == (8, 2, 0)

    @pytest.mark.asyncio
    async def test_shipped_order_cannot_be_cancelled(self, coordinator, paid_order):
        await coordinator.update_shipping_status(paid_order.id, "TRK-1", "CJ")

        with pytest.raises(InvalidStateError):
            await coordinator.cancel_order(paid_order.id)

    @pytest.mark.asyncio
    async def test_partial_release_failure_restores_stock(
        self, coordinator, pending_order, inventory, repository, monkeypatch
    ):
        real_release = inventory.release_stock

        async def flaky_release(product_id, quantity):
            if product_id == "prod-b":
                raise RuntimeError("inventory db timeout")
            return await real_release(product_id, quantity)

        monkeypatch.setattr(inventory, "release_stock", flaky_release)

        with pytest.raises(InventoryError):
            await coordinator.cancel_order(pending_order.id)

        assert (await repository.get_order(pending_order.id)).status == OrderStatus.PAYMENT_PENDING
        assert await _stock(inventory, "prod-c") == (8, 2, 0)
        assert await _stock(inventory, "prod-b") == (4, 1, 0)

    @pytest.mark.asyncio
    async def test_lost_status_update_takes_stock_back(
        self, coordinator, pending_order, inventory, repository
    ):
        repository.transition = AsyncMock(return_value=None)

        with pytest.raises(InvalidStateError):
            await coordinator.cancel_order(pending_order.id)

        assert await _stock(inventory, "prod-c") == (8, 2, 0)
        assert await _stock(inventory, "prod-b") == (4, 1, 0)

    @pytest.mark.asyncio
    async def test_lost_status_update_of_paid_order_recommits_stock(
        self, coordinator, paid_order, inventory, repository, gateway
    ):
        repository.transition = AsyncMock(return_value=None)

        with pytest.raises(InvalidStateError):
            await coordinator.cancel_order(paid_order.id)

        assert await _stock(inventory, "prod-c") == (8, 0, 2)
        assert gateway.refunds == []


class TestCancelDuringCreation:
    """A cancel racing a create never returns the same stock twice."""

    @pytest.mark.asyncio
    async def test_cancel_of_order_being_created_fails_fast(
        self, coordinator, make_request, repository, inventory, monkeypatch
    ):
        other = await coordinator.create_order(make_request("cust-2", prod_c=3))
        real_create = repository.create_order
        cancel_errors = []

        async def create_then_cancel(order):
            stored = await real_create(order)
            try:
                await coordinator.cancel_order(stored.id)
            except ConcurrentOperationError as e:
                cancel_errors.append(e)
            return stored

        monkeypatch.setattr(repository, "create_order", create_then_cancel)

        order = await coordinator.create_order(make_request("cust-1", prod_c=2))

        assert len(cancel_errors) == 1
        assert order.status == OrderStatus.PAYMENT_PENDING
        assert await _stock(inventory, "prod-c") == (5, 5, 0)

        paid = await coordinator.complete_payment(other.id, other.payment_id)

        assert paid.status == OrderStatus.PAID
        assert await _stock(inventory, "prod-c") == (5, 2, 3)

    @pytest.mark.asyncio
    async def test_cancel_after_lock_expiry_is_not_compensated_again(
        self, coordinator, make_request, repository, inventory, store, config, monkeypatch
    ):
        other = await coordinator.create_order(make_request("cust-2", prod_c=3))
        real_create = repository.create_order

        async def create_then_cancel(order):
            stored = await real_create(order)
            # The creation's order lock outlived its TTL
            store._locks.pop(config.order_lock_key(stored.id))
            await coordinator.cancel_order(stored.id)
            return stored

        monkeypatch.setattr(repository, "create_order", create_then_cancel)

        with pytest.raises(InvalidStateError) as exc_info:
            await coordinator.create_order(make_request("cust-1", prod_c=2))

        assert exc_info.value.current == OrderStatus.CANCELLED
        # The cancel returned the 2 units once; the other order keeps its 3
        assert await _stock(inventory, "prod-c") == (7, 3, 0)

        paid = await coordinator.complete_payment(other.id, other.payment_id)

        assert paid.status == OrderStatus.PAID
        assert await _stock(inventory, "prod-c") == (7, 0, 3)


class TestFulfilment:
    """PAID -> PREPARING -> SHIPPED -> DELIVERED."""

    @pytest.mark.asyncio
    async def test_full_fulfilment_path(self, coordinator, paid_order, publisher, subscriber):
        preparing = await coordinator.start_preparation(paid_order.id)
        shipped = await coordinator.update_shipping_status(paid_order.id, "TRK-42", "CJ")
        delivered = await coordinator.mark_delivered(paid_order.id)
        await publisher.drain()

        assert preparing.status == OrderStatus.PREPARING
        assert shipped.status == OrderStatus.SHIPPED
        assert shipped.shipping_info.tracking_number == "TRK-42"
        assert shipped.shipping_info.carrier == "CJ"
        assert delivered.status == OrderStatus.DELIVERED
        assert "delivered_at" in delivered.metadata
        assert subscriber.types == [
            OrderEventType.ORDER_PREPARING,
            OrderEventType.ORDER_SHIPPED,
            OrderEventType.ORDER_DELIVERED,
        ]
        assert subscriber.events[1].payload["tracking_number"] == "TRK-42"

    @pytest.mark.asyncio
    async def test_ship_directly_from_paid(self, coordinator, paid_order):
        order = await coordinator.update_shipping_status(paid_order.id, "TRK-1", "Hanjin")

        assert order.status == OrderStatus.SHIPPED

    @pytest.mark.asyncio
    async def test_unpaid_order_cannot_ship(self, coordinator, pending_order):
        with pytest.raises(InvalidStateError):
            await coordinator.update_shipping_status(pending_order.id, "TRK-1", "CJ")

    @pytest.mark.asyncio
    async def test_unpaid_order_cannot_start_preparation(self, coordinator, pending_order):
        with pytest.raises(InvalidStateError):
            await coordinator.start_preparation(pending_order.id)

    @pytest.mark.asyncio
    async def test_delivery_requires_shipping(self, coordinator, paid_order):
        with pytest.raises(InvalidStateError):
            await coordinator.mark_delivered(paid_order.id)


class TestQueries:
    """Cache-first reads and listings."""

    @pytest.mark.asyncio
    async def test_get_order_serves_from_cache(self, coordinator, pending_order, repository):
        await repository.update_metadata(pending_order.id, {"note": "written behind the cache"})

        order = await coordinator.get_order(pending_order.id)

        assert order.id == pending_order.id
        assert "note" not in order.metadata

    @pytest.mark.asyncio
    async def test_transition_invalidates_cache(self, coordinator, pending_order):
        await coordinator.get_order(pending_order.id)
        await coordinator.complete_payment(pending_order.id, pending_order.payment_id)

        order = await coordinator.get_order(pending_order.id)

        assert order.status == OrderStatus.PAID

    @pytest.mark.asyncio
    async def test_cache_miss_loads_and_fills_cache(
        self, coordinator, pending_order, store, config
    ):
        await store.cache_delete(config.cache_key(pending_order.id))

        order = await coordinator.get_order(pending_order.id)

        assert order == pending_order
        assert await store.cache_get(config.cache_key(pending_order.id)) is not None

    @pytest.mark.asyncio
    async def test_cache_miss_while_order_is_locked_is_not_cached(
        self, coordinator, pending_order, store, config
    ):
        await store.cache_delete(config.cache_key(pending_order.id))

        async with store.locked(config.order_lock_key(pending_order.id), 30):
            order = await coordinator.get_order(pending_order.id)

        assert order.status == OrderStatus.PAYMENT_PENDING
        assert await store.cache_get(config.cache_key(pending_order.id)) is None

    @pytest.mark.asyncio
    async def test_transition_cannot_run_while_cache_is_filled(
        self, coordinator, pending_order, repository, store, config, monkeypatch
    ):
        await store.cache_delete(config.cache_key(pending_order.id))
        real_get = repository.get_order
        attempts = []

        async def get_then_pay(order_id, customer_id=None):
            order = await real_get(order_id, customer_id)
            if not attempts:
                attempts.append(order_id)
                with pytest.raises(ConcurrentOperationError):
                    await coordinator.complete_payment(order_id, pending_order.payment_id)
            return order

        monkeypatch.setattr(repository, "get_order", get_then_pay)

        await coordinator.get_order(pending_order.id)
        await coordinator.complete_payment(pending_order.id, pending_order.payment_id)
        order = await coordinator.get_order(pending_order.id)

        assert attempts == [pending_order.id]
        assert order.status == OrderStatus.PAID
        assert (await real_get(pending_order.id)).status == OrderStatus.PAID

    @pytest.mark.asyncio
    async def test_unreadable_cache_entry_is_ignored(
        self, coordinator, pending_order, store, config
    ):
        await store.cache_set(config.cache_key(pending_order.id), "{not json", 60)

        order = await coordinator.get_order(pending_order.id)

        assert order.status == OrderStatus.PAYMENT_PENDING

    @pytest.mark.asyncio
    async def test_cache_outage_falls_back_to_repository(
        self, coordinator, pending_order, store
    ):
        store.cache_get = AsyncMock(side_effect=CoordinationConnectionError("redis down"))
        store.cache_set = AsyncMock(side_effect=CoordinationConnectionError("redis down"))

        order = await coordinator.get_order(pending_order.id)

        assert order.id == pending_order.id

    @pytest.mark.asyncio
    async def test_get_order_of_other_customer(self, coordinator, pending_order):
        with pytest.raises(OrderNotFoundError):
            await coordinator.get_order(pending_order.id, customer_id="intruder")

    @pytest.mark.asyncio
    async def test_get_missing_order(self, coordinator):
        with pytest.raises(OrderNotFoundError):
            await coordinator.get_order("missing")

    @pytest.mark.asyncio
    async def test_listing_and_stats(self, coordinator, make_request):
        first = await coordinator.create_order(make_request("cust-1", prod_c=1))
        await coordinator.create_order(make_request("cust-2", prod_c=2))
        await coordinator.cancel_order(first.id)

        page = await coordinator.get_orders(OrderFilter(customer_id="cust-2"))
        stats = await coordinator.get_order_stats()

        assert page.total == 1
        assert page.orders[0].customer_id == "cust-2"
        assert stats.total_orders == 2
        assert stats.cancelled_orders == 1
        assert stats.total_revenue == page.orders[0].total_amount

    @pytest.mark.asyncio
    async def test_get_stock(self, coordinator, pending_order):
        level = await coordinator.get_stock("prod-c")

        assert level.available == 8
        assert level.reserved == 2


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def send(self, recipient_id, template, context):
        self.sent.append((recipient_id, template, context))


class TestNotifications:
    """Customer notices follow lifecycle events."""

    @pytest.mark.asyncio
    async def test_customer_is_notified_through_the_lifecycle(
        self, coordinator, make_request, publisher
    ):
        notifier = RecordingNotifier()
        publisher.subscribe(NotificationSubscriber(notifier))

        order = await coordinator.create_order(make_request(prod_c=1))
        await coordinator.complete_payment(order.id, order.payment_id)
        await coordinator.update_shipping_status(order.id, "TRK-7", "CJ")
        await publisher.drain()

        assert [template for _, template, _ in notifier.sent] == [
            "order_confirmation",
            "order_shipped",
        ]
        recipient, _, context = notifier.sent[1]
        assert recipient == "cust-1"
        assert context["order_id"] == order.id
        assert context["tracking_number"] == "TRK-7"
