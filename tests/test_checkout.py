# tests/test_checkout.py
import asyncio
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from marketplace.core.db import AsyncSessionLocal

from marketplace.core.exceptions import NotFoundError, OverpaymentError, InvalidTransition, ValidationError
from marketplace.models.order_models import Order, OrderStatus, OrderStatusHistory, PaymentMethod
from marketplace.services.order_services.order_service import (
    change_status, get_order, list_orders, update_item_quantity,
)
from marketplace.services.order_services.payment_ledger import record_payment
from marketplace.services.order_services.pricing import totals_hold
from tests.conftest import actor, fetch, make_listing, make_rate, make_user, place_order


async def test_free_shipping_order_with_default_commission(db, buyer, seller):
    listing = await make_listing(db, seller, unit_price="250.00")

    order = await place_order(db, buyer, [(listing, 2)])

    assert order.subtotal == Decimal("500.00")
    assert order.shipping_cost == Decimal("0.00")
    assert order.platform_commission == Decimal("41.25")
    assert order.discount_amount == Decimal("0.00")
    assert order.total_amount == Decimal("541.25")
    assert order.status == OrderStatus.PENDING_PAYMENT
    assert order.order_number.startswith("ORD-")
    assert totals_hold(order)


async def test_flat_shipping_below_threshold(db, buyer, seller):
    listing = await make_listing(db, seller, unit_price="100.00")

    order = await place_order(db, buyer, [(listing, 1)])

    assert order.shipping_cost == Decimal("49.99")
    assert order.total_amount == Decimal("100.00") + Decimal("49.99") + Decimal("8.25")


async def test_card_orders_skip_pending_payment(db, buyer, seller):
    listing = await make_listing(db, seller)
    order = await place_order(db, buyer, [(listing, 1)], payment_method=PaymentMethod.CARD)
    assert order.status == OrderStatus.AWAITING_SELLER_ACCEPTANCE


async def test_commission_rate_precedence(db, buyer, seller):
    await make_rate(db, "0.05", category="books")
    await make_rate(db, "0.03", seller=seller)
    await make_rate(db, "0.02", seller=seller, category="books")
    book = await make_listing(db, seller, sku="BOOK", unit_price="100.00", category="books")
    lamp = await make_listing(db, seller, sku="LAMP", unit_price="100.00", category="lighting")

    order = await place_order(db, buyer, [(book, 1), (lamp, 1)])

    rates = {item.seller_sku: item.commission_rate for item in order.items}
    assert rates == {"BOOK": Decimal("0.0200"), "LAMP": Decimal("0.0300")}
    assert order.platform_commission == Decimal("5.00")


async def test_mixed_sellers_rejected(db, buyer, seller, other_seller):
    a = await make_listing(db, seller, sku="A")
    b = await make_listing(db, other_seller, sku="B")
    with pytest.raises(ValidationError):
        await place_order(db, buyer, [(a, 1), (b, 1)])


async def test_inactive_or_missing_listing(db, buyer, seller):
    hidden = await make_listing(db, seller, is_active=False)
    with pytest.raises(ValidationError):
        await place_order(db, buyer, [(hidden, 1)])

    with pytest.raises(NotFoundError):
        await place_order(db, buyer, [(SimpleNamespace(id=999), 1)])


async def test_history_starts_with_creation(db, buyer, seller):
    listing = await make_listing(db, seller)
    order = await place_order(db, buyer, [(listing, 1)])

    rows = (await db.execute(
        select(OrderStatusHistory).where(OrderStatusHistory.order_id == order.id)
    )).scalars().all()
    assert [(r.from_status, r.to_status, r.action) for r in rows] == [(None, OrderStatus.PENDING_PAYMENT, "CREATE")]


async def test_orders_are_scoped_to_their_parties(db, buyer, seller, other_seller):
    listing = await make_listing(db, seller)
    order = await place_order(db, buyer, [(listing, 1)])
    stranger = await make_user(db, "stranger", role="buyer")

    orders, pagination = await list_orders(db, actor(seller))
    assert [o.id for o in orders] == [order.id]
    assert pagination["total"] == 1

    orders, _ = await list_orders(db, actor(other_seller))
    assert orders == []
    with pytest.raises(NotFoundError):
        await get_order(db, order.id, actor(stranger))


async def test_quantity_change_recomputes_totals(db, buyer, seller):
    listing = await make_listing(db, seller, unit_price="100.00")
    order = await place_order(db, buyer, [(listing, 1)])

    order = await update_item_quantity(db, order.id, order.items[0].id, 5, actor(buyer))

    assert order.subtotal == Decimal("500.00")
    assert order.shipping_cost == Decimal("0.00")
    assert order.platform_commission == Decimal("41.25")
    assert order.total_amount == Decimal("541.25")


async def test_quantity_cannot_drop_below_amount_paid(db, buyer, seller, admin):
    listing = await make_listing(db, seller, unit_price="100.00")
    order = await place_order(db, buyer, [(listing, 3)])
    await record_payment(db, order.id, "300.00", actor(admin))

    with pytest.raises(OverpaymentError):
        await update_item_quantity(db, order.id, order.items[0].id, 1, actor(buyer))


async def test_quantity_locked_after_acceptance(db, buyer, seller):
    listing = await make_listing(db, seller)
    order = await place_order(db, buyer, [(listing, 1)])
    await change_status(db, order.id, "ACCEPTED", actor(seller))

    with pytest.raises(InvalidTransition):
        await update_item_quantity(db, order.id, order.items[0].id, 2, actor(buyer))


async def test_reject_needs_reason(db, buyer, seller):
    listing = await make_listing(db, seller)
    order_id = (await place_order(db, buyer, [(listing, 1)])).id

    with pytest.raises(ValidationError):
        await change_status(db, order_id, "REJECTED", actor(seller))

    order = await change_status(db, order_id, "REJECTED", actor(seller), reason="Out of stock")
    assert order.status == OrderStatus.SELLER_REJECTED
    assert order.rejection_reason == "Out of stock"


async def test_concurrent_accept_and_reject_have_one_winner(db, buyer, seller):
    listing = await make_listing(db, seller)
    order_id = (await place_order(db, buyer, [(listing, 1)], payment_method=PaymentMethod.CARD)).id

    async def decide(status, reason=None):
        async with AsyncSessionLocal() as session:
            return await change_status(session, order_id, status, actor(seller), reason=reason)

    results = await asyncio.gather(
        decide("ACCEPTED"), decide("REJECTED", reason="Out of stock"), return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1 and len(losers) == 1
    assert isinstance(losers[0], InvalidTransition)

    stored = await fetch(Order, order_id)
    assert stored.status == winners[0].status
    assert stored.status in (OrderStatus.PROCESSING, OrderStatus.SELLER_REJECTED)
