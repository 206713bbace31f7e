# tests/test_dispatch.py
import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from marketplace.core.db import AsyncSessionLocal
from marketplace.core.exceptions import DriverUnavailable, InvalidTransition, ValidationError
from marketplace.models.commission_models import PayoutStatus, SellerPayout
from marketplace.models.driver_models import Driver, DriverStatus
from marketplace.models.order_models import OrderStatus
from marketplace.services.order_services.commission_service import list_payouts, process_payouts
from marketplace.services.order_services.dispatch_service import dispatch_order, mark_delivered
from marketplace.services.order_services.driver_service import set_driver_status
from marketplace.services.order_services.order_service import change_status, get_order_history
from marketplace.utils.datetime_utils import as_utc, utcnow
from tests.conftest import actor, make_driver, make_listing, place_order


async def accepted_order(db, buyer, seller, unit_price="250.00", qty=2, sku="SKU-1"):
    listing = await make_listing(db, seller, sku=sku, unit_price=unit_price)
    order = await place_order(db, buyer, [(listing, qty)])
    return await change_status(db, order.id, "ACCEPTED", actor(seller))


async def driver_status(driver_id):
    async with AsyncSessionLocal() as session:
        return (await session.get(Driver, driver_id)).status


async def test_dispatch_assigns_driver_and_ships(db, buyer, seller):
    order = await accepted_order(db, buyer, seller)
    driver = await make_driver(db)

    order = await dispatch_order(db, order.id, driver.id, actor(seller), notes=" fragile ")

    assert order.status == OrderStatus.SHIPPED
    assert order.driver_id == driver.id
    assert order.dispatch_notes == "fragile"
    assert order.dispatched_at is not None
    assert as_utc(order.estimated_delivery_date) > utcnow() + timedelta(days=6)
    assert await driver_status(driver.id) == DriverStatus.BUSY


async def test_dispatch_requires_processing(db, buyer, seller):
    listing = await make_listing(db, seller)
    order = await place_order(db, buyer, [(listing, 1)])
    driver = await make_driver(db)

    with pytest.raises(InvalidTransition):
        await dispatch_order(db, order.id, driver.id, actor(seller))
    assert await driver_status(driver.id) == DriverStatus.AVAILABLE


async def test_past_eta_rejected(db, buyer, seller):
    order = await accepted_order(db, buyer, seller)
    driver = await make_driver(db)
    with pytest.raises(ValidationError):
        await dispatch_order(db, order.id, driver.id, actor(seller), estimated_delivery_date=utcnow() - timedelta(hours=1))
    assert await driver_status(driver.id) == DriverStatus.AVAILABLE


async def test_offline_driver_cannot_be_dispatched(db, buyer, seller):
    order = await accepted_order(db, buyer, seller)
    driver = await make_driver(db, status=DriverStatus.OFFLINE)
    with pytest.raises(DriverUnavailable):
        await dispatch_order(db, order.id, driver.id, actor(seller))


async def test_one_driver_is_never_double_booked(db, buyer, seller):
    first = await accepted_order(db, buyer, seller, sku="A")
    second = await accepted_order(db, buyer, seller, sku="B")
    driver = await make_driver(db)

    async def send(order_id):
        async with AsyncSessionLocal() as session:
            return await dispatch_order(session, order_id, driver.id, actor(seller))

    results = await asyncio.gather(send(first.id), send(second.id), return_exceptions=True)

    errors = [r for r in results if isinstance(r, Exception)]
    shipped = [r for r in results if not isinstance(r, Exception)]
    assert len(shipped) == 1 and shipped[0].status == OrderStatus.SHIPPED
    assert len(errors) == 1 and isinstance(errors[0], DriverUnavailable)


async def test_dispatch_is_idempotent(db, buyer, seller):
    order = await accepted_order(db, buyer, seller)
    driver = await make_driver(db)
    await dispatch_order(db, order.id, driver.id, actor(seller))

    again = await dispatch_order(db, order.id, driver.id, actor(seller))

    assert again.status == OrderStatus.SHIPPED
    history = await get_order_history(db, order.id, actor(seller))
    assert [h.action for h in history] == ["CREATE", "ACCEPT", "DISPATCH"]


async def test_delivery_frees_driver_and_settles_once(db, buyer, seller):
    order = await accepted_order(db, buyer, seller)
    driver = await make_driver(db)
    await dispatch_order(db, order.id, driver.id, actor(seller))

    order = await mark_delivered(db, order.id, actor(seller))
    await mark_delivered(db, order.id, actor(seller))

    assert order.status == OrderStatus.DELIVERED
    assert order.actual_delivery_date is not None
    assert await driver_status(driver.id) == DriverStatus.AVAILABLE

    payouts = (await db.execute(select(SellerPayout))).scalars().all()
    assert len(payouts) == 1
    payout = payouts[0]
    assert payout.gross_amount == Decimal("500.00")
    assert payout.commission_amount == Decimal("41.25")
    assert payout.net_amount == Decimal("500.00")
    assert payout.status == PayoutStatus.PENDING

    history = await get_order_history(db, order.id, actor(seller))
    assert [h.action for h in history].count("DELIVER") == 1


async def test_cancelling_shipped_order_releases_driver(db, buyer, seller, admin):
    order = await accepted_order(db, buyer, seller)
    driver = await make_driver(db)
    await dispatch_order(db, order.id, driver.id, actor(seller))

    order = await change_status(db, order.id, "CANCEL", actor(admin), reason="Address unreachable")

    assert order.status == OrderStatus.CANCELLED
    assert order.cancellation_reason == "Address unreachable"
    assert await driver_status(driver.id) == DriverStatus.AVAILABLE


async def test_busy_driver_status_is_locked(db, buyer, seller, admin):
    order = await accepted_order(db, buyer, seller)
    driver = await make_driver(db)
    await dispatch_order(db, order.id, driver.id, actor(seller))

    with pytest.raises(ValidationError):
        await set_driver_status(db, driver.id, DriverStatus.OFFLINE, admin)
    with pytest.raises(ValidationError):
        await set_driver_status(db, driver.id, DriverStatus.BUSY, admin)


async def test_payouts_processed_and_voided_on_refund(db, buyer, seller, admin):
    first = await accepted_order(db, buyer, seller, sku="A")
    second = await accepted_order(db, buyer, seller, sku="B")
    for order in (first, second):
        driver = await make_driver(db, first_name=f"D{order.id}")
        await dispatch_order(db, order.id, driver.id, actor(seller))
        await mark_delivered(db, order.id, actor(seller))

    first_id, second_id = first.id, second.id
    payouts = await list_payouts(db, actor(seller))
    payout_ids = {p.order_id: p.id for p in payouts}

    paid = await process_payouts(db, [payout_ids[first_id]], admin)
    assert [p.status for p in paid] == [PayoutStatus.PAID]
    with pytest.raises(ValidationError):
        await process_payouts(db, [payout_ids[first_id]], admin)

    await change_status(db, second_id, "RETURN", actor(admin))
    await change_status(db, second_id, "REFUND", actor(admin))
    voided = await list_payouts(db, actor(admin), status=PayoutStatus.VOID)
    assert [p.order_id for p in voided] == [second_id]
