"""
Order Coordinator - the order-creation and order-lifecycle saga.

create_order spans three systems that share no transaction: the inventory
counters, the order repository and the payment gateway. Each inventory side
effect is recorded in an OrderTransaction as soon as it happens; any failure
before the order reaches PAYMENT_PENDING runs those records backwards, so the
caller never observes stock held by an order that does not exist.

Flow:

    lock(customer) ─▶ resolve items ─▶ reserve (parallel) ─▶ price ─▶ persist
        ─▶ PROCESSING ─▶ payment ─▶ PAYMENT_PENDING ─▶ cart/cache/event ─▶ unlock

Lifecycle operations (complete_payment, cancel_order, shipping helpers) run
under a per-order lock and change status only by compare-and-set, so two
writers can never both win a transition.
"""

import asyncio
import json
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from ordersaga.collaborators import (
    CartService,
    CouponService,
    PaymentGateway,
    Product,
    ProductCatalog,
)
from ordersaga.coordination.base import CoordinationStore
from ordersaga.core.compensation import CompensationExecutor, OrderTransaction
from ordersaga.core.config import CoordinatorConfig
from ordersaga.core.exceptions import (
    ConcurrentOperationError,
    EmptyOrderError,
    InsufficientStockError,
    InvalidStateError,
    InventoryError,
    OrderError,
    OrderNotFoundError,
    OrderPersistenceError,
    PaymentInitiationError,
    ProductNotFoundError,
    RefundFailedError,
)
from ordersaga.core.logger import get_logger
from ordersaga.core.pricing import calculate_totals, generate_order_number, line_item_amounts
from ordersaga.core.state_machine import OrderStateMachine
from ordersaga.core.types import (
    CreateOrderInput,
    LineItemRequest,
    Order,
    OrderFilter,
    OrderItem,
    OrderPage,
    OrderStats,
    OrderStatus,
    StatusChange,
)
from ordersaga.events.publisher import EventPublisher
from ordersaga.events.types import OrderEvent, OrderEventType
from ordersaga.inventory.base import InventoryService, StockLevel
from ordersaga.monitoring.logging import OrderLogger, bind_order_context
from ordersaga.repository.base import OrderRepository, StorageError

logger = get_logger(__name__)

# Statuses whose stock has been confirmed (sold) rather than merely reserved
_CONFIRMED_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.PREPARING})


class OrderCoordinator:
    """
    Coordinates order creation and lifecycle transitions.

    All collaborators are injected, so in-memory implementations can stand
    in for Redis, PostgreSQL and the payment provider.

    Example:
        >>> coordinator = OrderCoordinator(
        ...     store=InMemoryCoordinationStore(),
        ...     repository=InMemoryOrderRepository(),
        ...     inventory=InMemoryInventoryService(),
        ...     catalog=catalog,
        ...     gateway=SimulatedPaymentGateway(),
        ... )
        >>> order = await coordinator.create_order(request)
        >>> order.status
        <OrderStatus.PAYMENT_PENDING: 'payment_pending'>
    """

    def __init__(
        self,
        *,
        store: CoordinationStore,
        repository: OrderRepository,
        inventory: InventoryService,
        catalog: ProductCatalog,
        gateway: PaymentGateway,
        carts: CartService | None = None,
        coupons: CouponService | None = None,
        publisher: EventPublisher | None = None,
        config: CoordinatorConfig | None = None,
        metrics: Any = None,
        state_machine: OrderStateMachine | None = None,
    ):
        self.store = store
        self.repository = repository
        self.inventory = inventory
        self.catalog = catalog
        self.gateway = gateway
        self.carts = carts
        self.coupons = coupons
        self.config = config or CoordinatorConfig()
        self.publisher = publisher or EventPublisher(channel=self.config.event_channel)
        self.metrics = metrics
        self.state_machine = state_machine or OrderStateMachine()
        self.order_logger = OrderLogger()
        self.compensator = CompensationExecutor(inventory, metrics, self.order_logger)

    # ------------------------------------------------------------------
    # Order creation
    # ------------------------------------------------------------------

    async def create_order(self, request: CreateOrderInput) -> Order:
        """
        Create an order and initiate its payment.

        Returns:
            The order in PAYMENT_PENDING with its payment reference

        Raises:
            ConcurrentOperationError: Another order for this customer is being created
            EmptyOrderError: No line items resolved
            ProductNotFoundError: A product does not exist
            InsufficientStockError: A product could not be reserved
            InvalidCouponError: The coupon was rejected
            OrderPersistenceError: The order could not be stored
            PaymentInitiationError: The gateway failed; the order is FAILED
        """
        async with self._operation("create_order", customer_id=request.customer_id):
            lock_key = self.config.creation_lock_key(request.customer_id)
            async with self.store.locked(lock_key, self.config.lock_ttl_seconds):
                return await self._create_order_locked(request)

    async def _create_order_locked(self, request: CreateOrderInput) -> Order:
        lines = await self._resolve_line_items(request)
        order_id = str(uuid.uuid4())
        transaction = OrderTransaction(order_id)

        # The order lock keeps cancel and payment off the order until it is
        # PAYMENT_PENDING and cached
        with bind_order_context(order_id=order_id):
            async with self._order_lock(order_id):
                try:
                    products = await self._reserve_all(transaction, lines)
                    order = await self._assemble_order(order_id, request, lines, products)
                    order = await self._persist(order)
                    order = await self._initiate_payment(order, request.payment_method)
                except InvalidStateError as e:
                    if e.current == OrderStatus.CANCELLED:
                        # A cancel that outlived the lock TTL already returned the stock
                        logger.warning(f"Order {order_id} was cancelled during creation")
                        transaction.compensations.clear()
                    await self.compensator.run(transaction)
                    raise
                except (Exception, asyncio.CancelledError):
                    await self.compensator.run(transaction)
                    raise

                await self._after_create(order, request)
                return order

    async def _resolve_line_items(self, request: CreateOrderInput) -> list[LineItemRequest]:
        """Items from the cart when ``cart_id`` is given, else the explicit list; merged by product."""
        requested = list(request.items)
        if request.cart_id and self.carts is not None:
            cart = await self.carts.get_cart(request.cart_id)
            owned = cart is not None and cart.customer_id in (None, request.customer_id)
            requested = list(cart.items) if owned else []

        merged: dict[str, int] = {}
        for line in requested:
            merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
        if not merged:
            raise EmptyOrderError(request.customer_id)
        return [LineItemRequest(product_id, quantity) for product_id, quantity in merged.items()]

    async def _reserve_all(
        self, transaction: OrderTransaction, lines: list[LineItemRequest]
    ) -> list[Product]:
        """
        Look up and reserve every line concurrently.

        All lines run to completion before failures are handled; a request
        that was interrupted mid-flight may still have committed, so only
        finished results decide what gets compensated.
        """
        tasks = [asyncio.create_task(self._reserve_line(line)) for line in lines]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        first_error: BaseException | None = None
        products: list[Product] = []
        for line, result in zip(lines, results, strict=True):
            if isinstance(result, BaseException):
                first_error = first_error or result
            else:
                transaction.record_reservation(line.product_id, line.quantity)
                products.append(result)

        if first_error is not None:
            raise first_error
        return products

    async def _reserve_line(self, line: LineItemRequest) -> Product:
        product = await self.catalog.get_product(line.product_id)
        if product is None:
            raise ProductNotFoundError(line.product_id)

        try:
            reserved = await self.inventory.reserve_stock(product.id, line.quantity)
        except OrderError:
            raise
        except Exception as e:
            raise InventoryError(product.id, "Stock could not be reserved.") from e

        if not reserved:
            raise InsufficientStockError(product.id, product.name, line.quantity)
        return product

    async def _assemble_order(
        self,
        order_id: str,
        request: CreateOrderInput,
        lines: list[LineItemRequest],
        products: list[Product],
    ) -> Order:
        items = []
        for line, product in zip(lines, products, strict=True):
            total, discount = line_item_amounts(
                product.price, product.original_price, line.quantity, self.config
            )
            items.append(
                OrderItem(
                    id=str(uuid.uuid4()),
                    order_id=order_id,
                    product_id=product.id,
                    product_name=product.name,
                    product_sku=product.sku,
                    quantity=line.quantity,
                    price=product.price,
                    total=total,
                    original_price=product.original_price,
                    discount=discount,
                )
            )

        subtotal = sum((item.total for item in items), Decimal("0"))
        discount = Decimal("0")
        if request.coupon_code and self.coupons is not None:
            discount = await self.coupons.apply_coupon(request.coupon_code, subtotal)

        totals = calculate_totals(items, discount, request.shipping_info, self.config)
        metadata = dict(request.metadata)
        if request.cart_id:
            metadata["cart_id"] = request.cart_id
        if request.coupon_code:
            metadata["coupon_code"] = request.coupon_code

        return Order(
            id=order_id,
            order_number=generate_order_number(self.config.order_number_prefix),
            customer_id=request.customer_id,
            status=OrderStatus.PENDING,
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping=totals.shipping,
            discount=totals.discount,
            total_amount=totals.total,
            currency=self.config.currency,
            items=tuple(items),
            shipping_info=request.shipping_info,
            notes=request.notes,
            metadata=metadata,
        )

    async def _persist(self, order: Order) -> Order:
        try:
            return await self.repository.create_order(order)
        except StorageError as e:
            logger.error(f"Failed to persist order {order.id}: {e}")
            raise OrderPersistenceError(order.id) from e

    async def _initiate_payment(self, order: Order, payment_method: str) -> Order:
        """PENDING -> PROCESSING -> gateway -> PAYMENT_PENDING; FAILED on any error."""
        try:
            order = await self._transition(order, OrderStatus.PROCESSING, "process")
        except OrderError:
            await self._mark_failed(order, "status_update_failed")
            raise

        try:
            payment = await self.gateway.process_payment(
                order.id,
                payment_method,
                order.customer_id,
                order.total_amount,
                order.currency,
            )
        except Exception as e:
            logger.warning(f"Payment initiation failed for order {order.id}: {e}")
            await self._mark_failed(order, "payment_initiation_failed")
            raise PaymentInitiationError(order.id) from e

        try:
            return await self._transition(
                order, OrderStatus.PAYMENT_PENDING, "await payment", payment_id=payment.id
            )
        except OrderError:
            # The payment was initiated; keep its reference for reconciliation
            await self._mark_failed(order, "status_update_failed", payment_id=payment.id)
            raise

    async def _mark_failed(self, order: Order, reason: str, payment_id: str | None = None) -> None:
        """Best-effort move to FAILED; the original error is what the caller sees."""
        try:
            failed = await self.repository.transition(
                order.id,
                order.status,
                OrderStatus.FAILED,
                payment_id=payment_id,
                metadata={"failure_reason": reason, "failed_at": _now_iso()},
            )
        except Exception as e:
            logger.error(f"Could not mark order {order.id} as failed: {e}")
            return

        if failed is None:
            logger.error(f"Could not mark order {order.id} as failed: status changed concurrently")
            return
        self.state_machine.transitioned(failed, order.status)
        await self._publish(OrderEventType.ORDER_FAILED, failed, reason=reason)

    async def _after_create(self, order: Order, request: CreateOrderInput) -> None:
        """Post-commit side effects; failures are logged and never undo the order."""
        if request.cart_id and self.carts is not None:
            try:
                await self.carts.clear_cart(request.cart_id)
            except Exception as e:
                self._best_effort_failed("cart", f"Failed to clear cart {request.cart_id}", e)

        await self._cache_order(order)
        await self._publish(OrderEventType.ORDER_CREATED, order)

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    async def complete_payment(self, order_id: str, payment_id: str) -> Order:
        """
        Mark the order PAID and confirm every reservation (reserved -> sold).

        The status change is committed first; a confirmation that then fails
        leaves its units reserved (never oversold), is recorded under the
        order's ``confirmation_failures`` metadata, and raises InventoryError.
        """
        async with self._operation("complete_payment", order_id=order_id):
            async with self._order_lock(order_id):
                order = await self._load(order_id)
                self.state_machine.ensure(order, OrderStatus.PAID, "complete payment")
                order = await self._transition(
                    order,
                    OrderStatus.PAID,
                    "complete payment",
                    payment_id=payment_id,
                    metadata={"paid_at": _now_iso()},
                )

                failures = []
                for item in order.items:
                    try:
                        await self.inventory.confirm_reservation(item.product_id, item.quantity)
                    except Exception as e:
                        logger.error(
                            f"Failed to confirm {item.quantity} x {item.product_id} "
                            f"for order {order_id}: {e}"
                        )
                        failures.append(item)

                await self._invalidate(order_id)
                if failures:
                    await self._record_metadata(
                        order_id,
                        {
                            "confirmation_failures": [
                                {"product_id": item.product_id, "quantity": item.quantity}
                                for item in failures
                            ]
                        },
                    )
                    raise InventoryError(
                        failures[0].product_id,
                        "Payment was recorded but stock could not be confirmed for every item.",
                    )

                await self._publish(OrderEventType.ORDER_PAID, order, payment_id=payment_id)
                return order

    async def cancel_order(
        self, order_id: str, customer_id: str | None = None, reason: str | None = None
    ) -> Order:
        """
        Cancel the order, return its stock and refund a captured payment.

        Stock is returned first. A refund failure does not undo the
        cancellation: the order stays CANCELLED with ``refund_status`` set to
        ``"failed"`` and RefundFailedError is raised for reconciliation.
        """
        async with self._operation("cancel_order", order_id=order_id, customer_id=customer_id):
            async with self._order_lock(order_id):
                order = await self._load(order_id, customer_id)
                self.state_machine.ensure(order, OrderStatus.CANCELLED, "cancel")
                was_confirmed = order.status in _CONFIRMED_STATUSES

                await self._return_stock(order, was_confirmed)

                metadata = {"cancel_reason": reason, "cancelled_at": _now_iso()}
                try:
                    cancelled = await self._transition(
                        order, OrderStatus.CANCELLED, "cancel", metadata=metadata
                    )
                except OrderError:
                    await self._undo_stock_return(order, was_confirmed)
                    raise

                refund_error = None
                if was_confirmed and cancelled.payment_id:
                    refund_error = await self._refund(cancelled, reason)
                    refund_status = "failed" if refund_error else "refunded"
                    cancelled = await self._record_metadata(
                        order_id, {"refund_status": refund_status}
                    ) or cancelled

                await self._invalidate(order_id)
                await self._publish(OrderEventType.ORDER_CANCELLED, cancelled, reason=reason)

                if refund_error is not None:
                    raise RefundFailedError(cancelled, cancelled.payment_id) from refund_error
                return cancelled

    async def _return_stock(self, order: Order, confirmed: bool) -> None:
        """
        Release held reservations, or restock sold units of a paid order.

        If any item fails, the items already returned are taken back so the
        order's stock stays consistent with its unchanged status.
        """
        transaction = OrderTransaction(order.id)
        try:
            for item in order.items:
                if confirmed:
                    returned = await self.inventory.restock(item.product_id, item.quantity)
                    if returned:
                        transaction.record_restock(item.product_id, returned)
                else:
                    returned = await self.inventory.release_stock(item.product_id, item.quantity)
                    if returned:
                        transaction.record_release(item.product_id, returned)
        except Exception as e:
            await self.compensator.run(transaction)
            if isinstance(e, OrderError):
                raise
            raise InventoryError(item.product_id, "Stock could not be returned.") from e

    async def _undo_stock_return(self, order: Order, confirmed: bool) -> None:
        """Take back stock returned for a cancellation whose status update lost."""
        transaction = OrderTransaction(order.id)
        for item in order.items:
            if confirmed:
                transaction.record_restock(item.product_id, item.quantity)
            else:
                transaction.record_release(item.product_id, item.quantity)
        await self.compensator.run(transaction)

    async def _refund(self, order: Order, reason: str | None) -> Exception | None:
        try:
            await self.gateway.refund_payment(order.payment_id, order.total_amount, reason)
        except Exception as e:
            logger.error(
                f"Refund failed for order {order.id} (payment {order.payment_id}); "
                f"manual reconciliation required: {e}"
            )
            if self.metrics:
                self.metrics.record_refund_failure()
            return e
        return None

    async def start_preparation(self, order_id: str) -> Order:
        """PAID -> PREPARING."""
        async with self._operation("start_preparation", order_id=order_id):
            async with self._order_lock(order_id):
                order = await self._load(order_id)
                self.state_machine.ensure(order, OrderStatus.PREPARING, "start preparing")
                order = await self._transition(
                    order,
                    OrderStatus.PREPARING,
                    "start preparing",
                    metadata={"preparing_at": _now_iso()},
                )
                await self._invalidate(order_id)
                await self._publish(OrderEventType.ORDER_PREPARING, order)
                return order

    async def update_shipping_status(
        self,
        order_id: str,
        tracking_number: str,
        carrier: str,
        estimated_delivery: datetime | None = None,
    ) -> Order:
        """PAID or PREPARING -> SHIPPED, recording tracking details."""
        async with self._operation("update_shipping_status", order_id=order_id):
            async with self._order_lock(order_id):
                order = await self._load(order_id)
                self.state_machine.ensure(order, OrderStatus.SHIPPED, "ship")
                order = await self._transition(
                    order,
                    OrderStatus.SHIPPED,
                    "ship",
                    metadata={"shipped_at": _now_iso()},
                    shipping={
                        "tracking_number": tracking_number,
                        "carrier": carrier,
                        "estimated_delivery": estimated_delivery,
                    },
                )
                await self._invalidate(order_id)
                await self._publish(
                    OrderEventType.ORDER_SHIPPED,
                    order,
                    tracking_number=tracking_number,
                    carrier=carrier,
                )
                return order

    async def mark_delivered(self, order_id: str) -> Order:
        """SHIPPED -> DELIVERED."""
        async with self._operation("mark_delivered", order_id=order_id):
            async with self._order_lock(order_id):
                order = await self._load(order_id)
                self.state_machine.ensure(order, OrderStatus.DELIVERED, "deliver")
                order = await self._transition(
                    order,
                    OrderStatus.DELIVERED,
                    "deliver",
                    metadata={"delivered_at": _now_iso()},
                )
                await self._invalidate(order_id)
                await self._publish(OrderEventType.ORDER_DELIVERED, order)
                return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, order_id: str, customer_id: str | None = None) -> Order:
        """
        Cache-first lookup; the repository is authoritative.

        A miss refills the cache only while holding the order lock, so a
        read cannot store a document older than a concurrent transition.
        When the lock is busy the order is served uncached.

        Raises:
            OrderNotFoundError: Missing, or owned by another customer
        """
        order = await self._cached_order(order_id)
        if order is None:
            try:
                async with self._order_lock(order_id):
                    order = await self._load(order_id)
                    await self._cache_order(order)
            except ConcurrentOperationError:
                order = await self._load(order_id)

        if customer_id and order.customer_id != customer_id:
            raise OrderNotFoundError(order_id)
        return order

    async def get_orders(self, order_filter: OrderFilter) -> OrderPage:
        return await self.repository.list_orders(order_filter)

    async def get_order_stats(
        self,
        customer_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> OrderStats:
        return await self.repository.get_stats(customer_id, start_date, end_date)

    async def get_status_history(self, order_id: str) -> list[StatusChange]:
        return await self.repository.get_status_history(order_id)

    async def get_stock(self, product_id: str) -> StockLevel | None:
        return await self.inventory.get_stock(product_id)

    async def close(self) -> None:
        """Drain pending event subscribers and close every backend."""
        await self.publisher.close()
        await self.store.close()
        await self.repository.close()
        await self.inventory.close()

    async def __aenter__(self):
        await self.publisher.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _operation(self, name: str, **context: Any) -> AsyncIterator[None]:
        """Bind log context and record duration/outcome metrics for one operation."""
        start = time.perf_counter()
        outcome = "success"
        if self.metrics:
            self.metrics.operation_started(name)

        with bind_order_context(operation=name, **context):
            self.order_logger.operation_started(name)
            try:
                yield
            except asyncio.CancelledError:
                outcome = "cancelled"
                raise
            except Exception as e:
                outcome = e.code if isinstance(e, OrderError) else "error"
                if isinstance(e, ConcurrentOperationError) and self.metrics:
                    self.metrics.record_lock_conflict(name)
                self.order_logger.operation_failed(name, e)
                raise
            finally:
                duration = time.perf_counter() - start
                if self.metrics:
                    self.metrics.operation_finished(name, outcome, duration)
                if outcome == "success":
                    self.order_logger.operation_completed(name, duration * 1000)

    def _order_lock(self, order_id: str):
        return self.store.locked(
            self.config.order_lock_key(order_id), self.config.lock_ttl_seconds
        )

    async def _load(self, order_id: str, customer_id: str | None = None) -> Order:
        try:
            order = await self.repository.get_order(order_id, customer_id)
        except StorageError as e:
            raise OrderPersistenceError(order_id, reason="The order could not be loaded.") from e
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def _transition(
        self, order: Order, target: OrderStatus, operation: str, **changes: Any
    ) -> Order:
        """Compare-and-set ``order.status -> target``; InvalidStateError if another writer won."""
        if not self.state_machine.can_transition(order.status, target):
            raise InvalidStateError(order.id, order.status, operation)

        try:
            updated = await self.repository.transition(order.id, order.status, target, **changes)
        except StorageError as e:
            raise OrderPersistenceError(
                order.id, reason="The order status could not be updated."
            ) from e

        if updated is None:
            try:
                current = await self.repository.get_order(order.id)
            except StorageError:
                current = None
            raise InvalidStateError(
                order.id, current.status if current else order.status, operation
            )
        return self.state_machine.transitioned(updated, order.status)

    async def _record_metadata(self, order_id: str, metadata: dict[str, Any]) -> Order | None:
        try:
            return await self.repository.update_metadata(order_id, metadata)
        except StorageError as e:
            logger.error(f"Failed to record {sorted(metadata)} on order {order_id}: {e}")
            return None

    async def _cached_order(self, order_id: str) -> Order | None:
        try:
            cached = await self.store.cache_get(self.config.cache_key(order_id))
        except Exception as e:
            self._best_effort_failed("cache", f"Cache read failed for order {order_id}", e)
            return None
        if cached is None:
            return None

        try:
            return Order.from_dict(json.loads(cached))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable cache entry for order {order_id}: {e}")
            return None

    async def _cache_order(self, order: Order) -> None:
        try:
            await self.store.cache_set(
                self.config.cache_key(order.id),
                json.dumps(order.to_dict(), default=str),
                self.config.cache_ttl_seconds,
            )
        except Exception as e:
            self._best_effort_failed("cache", f"Cache write failed for order {order.id}", e)

    async def _invalidate(self, order_id: str) -> None:
        try:
            await self.store.cache_delete(self.config.cache_key(order_id))
        except Exception as e:
            self._best_effort_failed("cache", f"Cache invalidation failed for order {order_id}", e)

    async def _publish(self, event_type: OrderEventType, order: Order, **extra: Any) -> None:
        try:
            await self.publisher.publish(OrderEvent.for_order(event_type, order, **extra))
        except Exception as e:
            self._best_effort_failed("event", f"Failed to publish {event_type.value}", e)

    def _best_effort_failed(self, kind: str, message: str, error: Exception) -> None:
        logger.warning(f"{message}: {error}")
        if self.metrics:
            self.metrics.record_best_effort_failure(kind)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()
