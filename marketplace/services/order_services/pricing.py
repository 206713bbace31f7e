# marketplace/services/order_services/pricing.py
from decimal import Decimal

from marketplace.core.config import FREE_SHIPPING_THRESHOLD, FLAT_SHIPPING_COST
from marketplace.models.order_models import Order
from marketplace.utils.decimal_utils import ZERO, sum_amounts, to_decimal


def compute_shipping(subtotal, currency: str = "USD") -> Decimal:
    if to_decimal(subtotal, currency) >= FREE_SHIPPING_THRESHOLD:
        return to_decimal(ZERO, currency)
    return to_decimal(FLAT_SHIPPING_COST, currency)


def order_total(subtotal, shipping, commission, discount, currency: str = "USD") -> Decimal:
    """total = subtotal + shipping + commission - discount, in exact decimal."""
    return to_decimal(
        to_decimal(subtotal, currency)
        + to_decimal(shipping, currency)
        + to_decimal(commission, currency)
        - to_decimal(discount, currency),
        currency,
    )


def recalculate_totals(order: Order) -> Order:
    """
    Re-derive the order money fields from its items.

    Item commission amounts are taken as stored (frozen at sale time); the
    discount is clamped so it can never exceed the new subtotal.
    """
    currency = order.currency
    subtotal = sum_amounts((item.line_total for item in order.items), currency)
    commission = sum_amounts((item.commission_amount for item in order.items), currency)
    discount = min(to_decimal(order.discount_amount, currency), subtotal)
    shipping = compute_shipping(subtotal, currency)

    order.subtotal = subtotal
    order.platform_commission = commission
    order.discount_amount = discount
    order.shipping_cost = shipping
    order.total_amount = order_total(subtotal, shipping, commission, discount, currency)
    return order


def totals_hold(order: Order) -> bool:
    return to_decimal(order.total_amount, order.currency) == order_total(
        order.subtotal, order.shipping_cost, order.platform_commission, order.discount_amount, order.currency
    )
