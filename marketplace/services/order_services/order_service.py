# marketplace/services/order_services/order_service.py
import logging
import math
import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import DEFAULT_CURRENCY
from marketplace.core.exceptions import (
    InvalidTransition, NotFoundError, OverpaymentError, PermissionDenied, ValidationError
)
from marketplace.core.locks import coupon_key, order_key, serialized_unit_of_work
from marketplace.models.address_models import Address
from marketplace.models.listing_models import Listing
from marketplace.models.order_models import (
    Order, OrderItem, OrderStatus, OrderStatusHistory, PaymentMethod, PaymentStatus
)
from marketplace.services.order_services.commission_service import (
    CommissionRateCache, item_commission, void_pending_payout
)
from marketplace.services.order_services.coupon_service import OrderDraft, redeem_coupon, validate_coupon
from marketplace.services.order_services.dispatch_service import mark_delivered
from marketplace.services.order_services.driver_service import release_driver
from marketplace.services.order_services.order_lookup import get_visible_order, load_order_for_update
from marketplace.services.order_services.order_state_machine import (
    PRE_ACCEPTANCE_STATUSES, Actor, OrderAction, apply_transition,
    initial_status, normalize_status, plan_transition, resolve_action
)
from marketplace.services.order_services.payment_ledger import refresh_payment_status, total_paid
from marketplace.services.order_services.pricing import compute_shipping, order_total, recalculate_totals
from marketplace.utils.activity_helpers import log_user_activity
from marketplace.utils.datetime_utils import as_utc, utcnow
from marketplace.utils.decimal_utils import ZERO, normalize_currency, sum_amounts, to_decimal

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
ORDER_NUMBER_ATTEMPTS = 5


# -----------------------
# HELPERS
# -----------------------
def _random_suffix(length: int = 6) -> str:
    return "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(length))


async def _new_order_number(db: AsyncSession, now: datetime) -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        candidate = f"ORD-{now:%Y%m%d%H%M%S}-{_random_suffix()}"
        clash = await db.execute(select(Order.id).where(Order.order_number == candidate))
        if clash.scalar_one_or_none() is None:
            return candidate
    raise ValidationError("Could not allocate a unique order number, please retry")


async def _shipping_snapshot(db: AsyncSession, payload, actor: Actor) -> dict:
    has_id = payload.shipping_address_id is not None
    has_inline = payload.shipping_address is not None
    if has_id == has_inline:
        raise ValidationError(
            "Provide exactly one of shipping_address_id or shipping_address", field="shipping_address"
        )

    if has_inline:
        return payload.shipping_address.model_dump()

    result = await db.execute(
        select(Address).where(Address.id == payload.shipping_address_id, Address.buyer_id == actor.user_id)
    )
    address = result.scalar_one_or_none()
    if not address:
        raise NotFoundError("Address", payload.shipping_address_id)
    return address.snapshot()


async def _load_listings(db: AsyncSession, listing_ids: List[int]) -> dict:
    result = await db.execute(select(Listing).where(Listing.id.in_(listing_ids)))
    listings = {listing.id: listing for listing in result.scalars().all()}
    for listing_id in listing_ids:
        listing = listings.get(listing_id)
        if listing is None:
            raise NotFoundError("Listing", listing_id)
        if not listing.is_active:
            raise ValidationError(f"Listing {listing_id} is not available", field="items")
    return listings


def _single_seller(listings: dict) -> int:
    sellers = {listing.seller_id for listing in listings.values()}
    if len(sellers) != 1:
        raise ValidationError("All items of an order must come from the same seller", field="items")
    return sellers.pop()


async def quote_coupon(db: AsyncSession, code: str, lines, actor: Actor) -> dict:
    """Dry run of the checkout coupon step; never counts a use."""
    if not lines:
        raise ValidationError("An order needs at least one item", field="items")
    listings = await _load_listings(db, [line.listing_id for line in lines])
    seller_id = _single_seller(listings)
    currency = normalize_currency(next(iter(listings.values())).currency)

    subtotal = sum_amounts(
        (to_decimal(listings[line.listing_id].unit_price, currency) * line.quantity for line in lines),
        currency,
    )
    quote = await validate_coupon(db, code, OrderDraft(
        buyer_id=actor.user_id,
        seller_id=seller_id,
        subtotal=subtotal,
        product_ids=[listings[line.listing_id].product_id for line in lines],
        currency=currency,
    ))
    return {
        "valid": True,
        "code": quote.coupon.code,
        "subtotal": subtotal,
        "discount_amount": min(quote.discount_amount, subtotal),
        "currency": currency,
    }


# -----------------------
# CHECKOUT
# -----------------------
async def checkout(db: AsyncSession, payload, actor: Actor) -> Order:
    """
    Turn a cart into an order in one unit of work.

    Lines are priced from their listings, commission is resolved per item and
    frozen on it, and the coupon (if any) is validated and redeemed under the
    coupon's lock so a failed checkout never consumes a use.
    """
    if actor.role != "buyer":
        raise PermissionDenied("Only buyers can place orders")
    if not payload.items:
        raise ValidationError("An order needs at least one item", field="items")

    code = payload.coupon_code.strip().upper() if payload.coupon_code else None
    keys = [coupon_key(code)] if code else []

    async with serialized_unit_of_work(db, *keys):
        listings = await _load_listings(db, [line.listing_id for line in payload.items])

        seller_id = _single_seller(listings)

        currencies = {listing.currency for listing in listings.values()}
        currency = normalize_currency(payload.currency or (currencies.pop() if len(currencies) == 1 else DEFAULT_CURRENCY))
        if any(listing.currency != currency for listing in listings.values()):
            raise ValidationError(f"All listings must be priced in {currency}", field="currency")

        shipping_address = await _shipping_snapshot(db, payload, actor)

        rates = CommissionRateCache(db)
        items = []
        for line in payload.items:
            if line.quantity < 1:
                raise ValidationError("Quantity must be at least 1", field="quantity")
            listing = listings[line.listing_id]
            unit_price = to_decimal(listing.unit_price, currency)
            rate = await rates.rate(seller_id, listing.category)
            items.append(OrderItem(
                listing_id=listing.id,
                product_id=listing.product_id,
                seller_sku=listing.seller_sku,
                name=listing.name,
                category=listing.category,
                unit_price=unit_price,
                display_price=to_decimal(listing.effective_display_price, currency),
                quantity=line.quantity,
                line_total=to_decimal(unit_price * line.quantity, currency),
                commission_rate=rate,
                commission_amount=item_commission(unit_price, line.quantity, rate, currency),
            ))

        subtotal = sum_amounts((i.line_total for i in items), currency)
        commission = sum_amounts((i.commission_amount for i in items), currency)
        shipping = compute_shipping(subtotal, currency)

        quote = None
        discount = to_decimal(ZERO, currency)
        if code:
            quote = await validate_coupon(db, code, OrderDraft(
                buyer_id=actor.user_id,
                seller_id=seller_id,
                subtotal=subtotal,
                product_ids=[i.product_id for i in items],
                currency=currency,
            ), lock=True)
            discount = min(quote.discount_amount, subtotal)

        now = utcnow()
        method = PaymentMethod(payload.payment_method)
        status = initial_status(method)
        order = Order(
            order_number=await _new_order_number(db, now),
            buyer_id=actor.user_id,
            seller_id=seller_id,
            status=status,
            payment_status=PaymentStatus.PENDING,
            payment_method=method,
            currency=currency,
            subtotal=subtotal,
            shipping_cost=shipping,
            platform_commission=commission,
            discount_amount=discount,
            total_amount=order_total(subtotal, shipping, commission, discount, currency),
            shipping_address=shipping_address,
            coupon_code=code if quote else None,
            po_number=payload.po_number,
            cost_center=payload.cost_center,
            notes=payload.notes,
            created_at=now,
            updated_at=now,
            items=items,
            driver=None,
        )
        db.add(order)
        await db.flush()

        db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=None,
            to_status=status,
            action="CREATE",
            actor_id=actor.user_id,
            actor_role=actor.role,
            created_at=now,
        ))
        if quote:
            await redeem_coupon(db, quote.coupon, order.id, actor.user_id, discount)

        await log_user_activity(
            db,
            user_id=actor.user_id,
            username=actor.username,
            message=f"Placed order {order.order_number} ({order.total_amount} {currency})",
        )
        await db.flush()

    logger.info(
        "Order %s created for buyer %s / seller %s: total=%s status=%s",
        order.order_number, order.buyer_id, order.seller_id, order.total_amount, order.status.value,
    )
    return order


# -----------------------
# READ
# -----------------------
async def list_orders(
    db: AsyncSession,
    actor: Actor,
    page: int = 1,
    limit: int = 20,
    status: Optional[str] = None,
) -> Tuple[List[Order], dict]:
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    filters = []
    if actor.role == "buyer":
        filters.append(Order.buyer_id == actor.user_id)
    elif actor.role == "seller":
        filters.append(Order.seller_id == actor.user_id)
    elif not actor.is_admin:
        raise PermissionDenied("Not allowed to list orders")
    if status:
        filters.append(Order.status == normalize_status(status))

    total = (await db.execute(select(func.count(Order.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(Order)
        .where(*filters)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }
    return result.scalars().all(), pagination


async def get_order(db: AsyncSession, order_id: int, actor: Actor) -> Order:
    return await get_visible_order(db, order_id, actor)


async def get_order_history(db: AsyncSession, order_id: int, actor: Actor) -> List[OrderStatusHistory]:
    order = await get_visible_order(db, order_id, actor)
    result = await db.execute(
        select(OrderStatusHistory)
        .where(OrderStatusHistory.order_id == order.id)
        .order_by(OrderStatusHistory.created_at, OrderStatusHistory.id)
    )
    return result.scalars().all()


# -----------------------
# ITEM MUTATION
# -----------------------
async def update_item_quantity(db: AsyncSession, order_id: int, item_id: int, quantity: int, actor: Actor) -> Order:
    if actor.role != "buyer":
        raise PermissionDenied("Only the buyer can change order items")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", field="quantity")

    async with serialized_unit_of_work(db, order_key(order_id)):
        order = await load_order_for_update(db, order_id, actor)
        if order.status not in PRE_ACCEPTANCE_STATUSES:
            raise InvalidTransition(
                order.status, order.status,
                message=f"Items cannot be changed once the order is {order.status.value}",
            )

        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("Order item", item_id)
        if item.quantity == quantity:
            return order

        currency = order.currency
        item.quantity = quantity
        item.line_total = to_decimal(Decimal(str(item.unit_price)) * quantity, currency)
        # the rate frozen at checkout, never a fresh lookup
        item.commission_amount = item_commission(item.unit_price, quantity, item.commission_rate, currency)
        recalculate_totals(order)

        paid = await total_paid(db, order)
        if paid > order.total_amount:
            raise OverpaymentError(
                paid, order.total_amount,
                message=f"New total {order.total_amount} is below the {paid} already paid",
            )
        refresh_payment_status(order, paid)
        order.updated_at = utcnow()

        await log_user_activity(
            db,
            user_id=actor.user_id,
            username=actor.username,
            message=f"Changed quantity of {item.seller_sku} on order {order.order_number} to {quantity}",
        )
        await db.flush()

    logger.info("Order %s item %s quantity -> %s, new total %s", order.order_number, item_id, quantity, order.total_amount)
    return order


# -----------------------
# STATUS
# -----------------------
async def change_status(
    db: AsyncSession,
    order_id: int,
    requested: str,
    actor: Actor,
    reason: Optional[str] = None,
) -> Order:
    """Apply a client-requested status change (accept, reject, cancel, ...)."""
    action = resolve_action(requested)
    if action == OrderAction.DELIVER:
        return await mark_delivered(db, order_id, actor)
    if action == OrderAction.DISPATCH:
        raise ValidationError("Orders are shipped through the dispatch endpoint with a driver", field="status")

    async with serialized_unit_of_work(db, order_key(order_id)):
        order = await load_order_for_update(db, order_id, actor)
        if plan_transition(order, action, actor) is None:
            return order

        previous = order.status
        apply_transition(db, order, action, actor, reason=reason)
        if action == OrderAction.CANCEL and previous == OrderStatus.SHIPPED:
            await release_driver(db, order.driver_id)
        elif action == OrderAction.REFUND:
            await void_pending_payout(db, order)

        await log_user_activity(
            db,
            user_id=actor.user_id,
            username=actor.username,
            message=f"Order {order.order_number}: {previous.value} -> {order.status.value}",
        )
        await db.flush()

    return order


async def cancel_order(db: AsyncSession, order_id: int, actor: Actor, reason: Optional[str] = None) -> Order:
    return await change_status(db, order_id, OrderStatus.CANCELLED.value, actor, reason=reason)


async def update_fulfillment(
    db: AsyncSession,
    order_id: int,
    status: str,
    actor: Actor,
    estimated_delivery_date: Optional[datetime] = None,
) -> Order:
    target = (status or "").strip().upper()
    if target == OrderStatus.DELIVERED.value:
        return await mark_delivered(db, order_id, actor)
    if target != OrderStatus.SHIPPED.value:
        raise ValidationError("Fulfillment status must be SHIPPED or DELIVERED", field="status")

    async with serialized_unit_of_work(db, order_key(order_id)):
        order = await load_order_for_update(db, order_id, actor)
        if order.status != OrderStatus.SHIPPED:
            plan_transition(order, OrderAction.DISPATCH, actor)
            raise ValidationError("Assign a driver through the dispatch endpoint to ship this order", field="driver_id")

        eta = as_utc(estimated_delivery_date)
        if eta is not None and eta != as_utc(order.estimated_delivery_date):
            if eta < utcnow():
                raise ValidationError("Estimated delivery date cannot be in the past", field="estimated_delivery_date")
            order.estimated_delivery_date = eta
            order.updated_at = utcnow()
            await log_user_activity(
                db,
                user_id=actor.user_id,
                username=actor.username,
                message=f"Order {order.order_number} estimated delivery moved to {eta.isoformat()}",
            )
        await db.flush()

    return order
