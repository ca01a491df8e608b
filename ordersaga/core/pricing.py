"""
Order pricing: subtotal, tax, shipping, totals and order numbers.

All amounts are Decimals rounded half-up to the currency's minor unit, so that
``sum(line totals) + tax + shipping - discount == total`` holds exactly.
"""

import secrets
import string
import time
from decimal import ROUND_HALF_UP, Decimal

from ordersaga.core.config import CoordinatorConfig
from ordersaga.core.types import OrderItem, OrderTotals, ShippingInfo

_BASE36 = string.digits + string.ascii_uppercase


def quantize(amount: Decimal, config: CoordinatorConfig) -> Decimal:
    return amount.quantize(config.minor_unit, rounding=ROUND_HALF_UP)


def calculate_shipping(subtotal: Decimal, shipping_info: ShippingInfo, config: CoordinatorConfig) -> Decimal:
    """
    Tiered shipping fee.

    Free at or above the threshold, a regional flat fee for listed cities,
    otherwise the base fee.
    """
    if subtotal >= config.free_shipping_threshold:
        return quantize(Decimal("0"), config)
    fee = config.regional_shipping_fees.get(shipping_info.city, config.base_shipping_fee)
    return quantize(fee, config)


def calculate_tax(subtotal: Decimal, discount: Decimal, config: CoordinatorConfig) -> Decimal:
    """Flat tax on the discounted subtotal."""
    taxable = max(subtotal - discount, Decimal("0"))
    return quantize(taxable * config.tax_rate, config)


def calculate_totals(
    items: list[OrderItem],
    discount: Decimal,
    shipping_info: ShippingInfo,
    config: CoordinatorConfig,
) -> OrderTotals:
    """Compute the full money breakdown from reserved item snapshots."""
    subtotal = quantize(sum((item.total for item in items), Decimal("0")), config)
    discount = quantize(min(max(discount, Decimal("0")), subtotal), config)
    tax = calculate_tax(subtotal, discount, config)
    shipping = calculate_shipping(subtotal, shipping_info, config)
    total = subtotal + tax + shipping - discount
    return OrderTotals(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        shipping=shipping,
        total=total,
    )


def line_item_amounts(
    price: Decimal, original_price: Decimal | None, quantity: int, config: CoordinatorConfig
) -> tuple[Decimal, Decimal]:
    """Return (line total, line discount) for one item snapshot."""
    total = quantize(price * quantity, config)
    if original_price is None or original_price <= price:
        return total, quantize(Decimal("0"), config)
    return total, quantize((original_price - price) * quantity, config)


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_order_number(prefix: str = "ORD") -> str:
    """Human-readable order number: ``ORD-<base36 ms timestamp>-<4 random chars>``."""
    timestamp = _base36(time.time_ns() // 1_000_000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{prefix}-{timestamp}-{suffix}"
