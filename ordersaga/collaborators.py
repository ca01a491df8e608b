"""
Collaborator contracts consumed by the order coordinator.

Product lookup, cart access, the payment gateway and coupon validation are
implemented elsewhere; this module fixes their async boundary and ships small
in-memory implementations for development and tests.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Protocol, runtime_checkable

from ordersaga.core.exceptions import InvalidCouponError
from ordersaga.core.logger import get_logger
from ordersaga.core.types import LineItemRequest

logger = get_logger(__name__)


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    sku: str
    price: Decimal
    original_price: Decimal | None = None


@dataclass
class Cart:
    id: str
    customer_id: str | None = None
    items: list[LineItemRequest] = field(default_factory=list)


@dataclass(frozen=True)
class PaymentResult:
    id: str
    status: str


@runtime_checkable
class ProductCatalog(Protocol):
    async def get_product(self, product_id: str) -> Product | None:
        """Return the current product, or None if it does not exist."""
        ...


@runtime_checkable
class CartService(Protocol):
    async def get_cart(self, cart_id: str) -> Cart | None: ...

    async def clear_cart(self, cart_id: str) -> None: ...


@runtime_checkable
class PaymentGateway(Protocol):
    """
    Third-party payment processor client.

    Implementations raise any exception on gateway-level failure.
    """

    async def process_payment(
        self, order_id: str, method: str, customer_id: str, amount: Decimal, currency: str
    ) -> PaymentResult: ...

    async def refund_payment(
        self, payment_id: str, amount: Decimal | None = None, reason: str | None = None
    ) -> PaymentResult: ...


@runtime_checkable
class CouponService(Protocol):
    async def apply_coupon(self, code: str, subtotal: Decimal) -> Decimal:
        """
        Return the discount for ``code`` at ``subtotal``.

        Raises:
            InvalidCouponError: Unknown, expired, or below minimum
        """
        ...


# ============================================
# IN-MEMORY IMPLEMENTATIONS
# ============================================


class InMemoryProductCatalog:
    """Dictionary-backed catalog."""

    def __init__(self, products: list[Product] | None = None):
        self._products = {product.id: product for product in products or []}

    def add(self, product: Product) -> None:
        self._products[product.id] = product

    async def get_product(self, product_id: str) -> Product | None:
        return self._products.get(product_id)


class InMemoryCartService:
    """Dictionary-backed carts."""

    def __init__(self):
        self._carts: dict[str, Cart] = {}

    def put(self, cart: Cart) -> None:
        self._carts[cart.id] = cart

    async def get_cart(self, cart_id: str) -> Cart | None:
        cart = self._carts.get(cart_id)
        if cart is None:
            return None
        return Cart(id=cart.id, customer_id=cart.customer_id, items=list(cart.items))

    async def clear_cart(self, cart_id: str) -> None:
        cart = self._carts.get(cart_id)
        if cart is not None:
            cart.items.clear()


@dataclass(frozen=True)
class CouponRule:
    """Percentage or fixed discount with an optional minimum subtotal and expiry."""

    code: str
    percent: Decimal | None = None
    amount: Decimal | None = None
    min_subtotal: Decimal = Decimal("0")
    expires_at: datetime | None = None


class StaticCouponService:
    """
    Coupon validation from a fixed rule table.

    ``WELCOME10`` (10 % off) is registered by default.
    """

    def __init__(self, rules: list[CouponRule] | None = None):
        if rules is None:
            rules = [CouponRule(code="WELCOME10", percent=Decimal("0.1"))]
        self._rules = {rule.code: rule for rule in rules}

    async def apply_coupon(self, code: str, subtotal: Decimal) -> Decimal:
        rule = self._rules.get(code)
        if rule is None:
            raise InvalidCouponError(code)
        if rule.expires_at is not None and rule.expires_at <= datetime.now(UTC):
            raise InvalidCouponError(code, f"Coupon has expired: {code}")
        if subtotal < rule.min_subtotal:
            raise InvalidCouponError(
                code, f"Coupon {code} requires a subtotal of at least {rule.min_subtotal}"
            )

        if rule.percent is not None:
            discount = subtotal * rule.percent
        else:
            discount = rule.amount or Decimal("0")
        return min(discount, subtotal)


class SimulatedPaymentGateway:
    """
    Payment gateway stand-in for development and tests.

    Failures are switched on explicitly (``fail_payments`` / ``fail_refunds``)
    so behaviour is deterministic.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.fail_payments = False
        self.fail_refunds = False
        self.payments: dict[str, dict] = {}
        self.refunds: list[dict] = []

    async def process_payment(
        self, order_id: str, method: str, customer_id: str, amount: Decimal, currency: str
    ) -> PaymentResult:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail_payments:
            msg = "Payment gateway temporarily unavailable"
            raise RuntimeError(msg)

        payment_id = f"pay_{uuid.uuid4().hex[:16]}"
        self.payments[payment_id] = {
            "order_id": order_id,
            "method": method,
            "customer_id": customer_id,
            "amount": amount,
            "currency": currency,
        }
        logger.debug(f"Simulated payment {payment_id} for order {order_id}")
        return PaymentResult(id=payment_id, status="pending")

    async def refund_payment(
        self, payment_id: str, amount: Decimal | None = None, reason: str | None = None
    ) -> PaymentResult:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail_refunds:
            msg = "Refund rejected by gateway"
            raise RuntimeError(msg)

        refund = {"payment_id": payment_id, "amount": amount, "reason": reason}
        self.refunds.append(refund)
        return PaymentResult(id=f"ref_{payment_id}", status="refunded")
