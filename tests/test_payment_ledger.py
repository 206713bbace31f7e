# tests/test_payment_ledger.py
import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select

from marketplace.core.db import AsyncSessionLocal
from marketplace.core.exceptions import NotFoundError, OverpaymentError, ValidationError
from marketplace.models.order_models import OrderStatus, PaymentMethod, PaymentStatus
from marketplace.models.payment_models import PaymentRecord
from marketplace.services.order_services.order_service import change_status
from marketplace.services.order_services.payment_ledger import (
    get_payment_summary, payment_status_for, record_payment, summarize,
)
from tests.conftest import actor, make_listing, make_user, place_order


def test_summary_flags_are_exclusive():
    cases = [("400.00", "0"), ("400.00", "150.00"), ("400.00", "400.00"), ("0.00", "0")]
    for total, paid in cases:
        s = summarize(total, paid)
        assert [s.is_fully_paid, s.is_partially_paid, s.has_no_payment].count(True) == 1


def test_summary_values():
    s = summarize("400.00", "150.00")
    assert s.remaining == Decimal("250.00")
    assert s.is_partially_paid
    assert payment_status_for(s) == PaymentStatus.PARTIALLY_PAID
    assert payment_status_for(summarize("0.00", "0")) == PaymentStatus.PAID


async def _order_for(db, buyer, seller, unit_price):
    # above the free shipping threshold and commission-free for round numbers
    listing = await make_listing(db, seller, unit_price=unit_price)
    order = await place_order(db, buyer, [(listing, 1)])
    return order


async def test_partial_then_full_payment(db, buyer, seller, admin):
    order = await _order_for(db, buyer, seller, "500.00")
    total = order.total_amount

    payment, summary = await record_payment(db, order.id, "200.00", actor(admin), notes="deposit")
    assert payment.amount == Decimal("200.00")
    assert summary.remaining == total - Decimal("200.00")
    assert summary.is_partially_paid

    _, summary = await record_payment(db, order.id, summary.remaining, actor(admin))
    assert summary.is_fully_paid
    order, summary, history = await get_payment_summary(db, order.id, actor(buyer))
    assert order.payment_status == PaymentStatus.PAID
    assert [p.amount for p in history] == [Decimal("200.00"), total - Decimal("200.00")]


async def test_overpayment_rejected(db, buyer, seller, admin):
    order = await _order_for(db, buyer, seller, "500.00")
    total = order.total_amount
    with pytest.raises(OverpaymentError) as exc:
        await record_payment(db, order.id, total + Decimal("0.01"), actor(admin))
    assert exc.value.remaining == total

    rows = (await db.execute(select(PaymentRecord))).scalars().all()
    assert rows == []


async def test_non_positive_payment_rejected(db, buyer, seller, admin):
    order = await _order_for(db, buyer, seller, "500.00")
    with pytest.raises(ValidationError):
        await record_payment(db, order.id, "0.00", actor(admin))


async def test_cash_only_while_pending_or_delivered(db, buyer, seller, admin):
    order = await _order_for(db, buyer, seller, "500.00")
    await change_status(db, order.id, "ACCEPTED", actor(seller))
    with pytest.raises(ValidationError):
        await record_payment(db, order.id, "10.00", actor(admin))


async def test_other_seller_cannot_record(db, buyer, seller, other_seller):
    order = await _order_for(db, buyer, seller, "500.00")
    with pytest.raises(NotFoundError):
        await record_payment(db, order.id, "10.00", actor(other_seller))


async def test_concurrent_payments_never_exceed_total(db, buyer, seller):
    clerk = await make_user(db, "clerk", role="admin")
    listing = await make_listing(db, seller, unit_price="400.00")
    order = await place_order(db, buyer, [(listing, 1)])
    # strip shipping and commission so the total is a round 400
    order.shipping_cost = Decimal("0.00")
    order.platform_commission = Decimal("0.00")
    order.total_amount = Decimal("400.00")
    await db.commit()

    async def pay():
        async with AsyncSessionLocal() as session:
            return await record_payment(session, order.id, "300.00", actor(clerk))

    results = await asyncio.gather(pay(), pay(), return_exceptions=True)

    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(succeeded) == 1
    assert len(failed) == 1 and isinstance(failed[0], OverpaymentError)
    assert failed[0].remaining == Decimal("100.00")

    async with AsyncSessionLocal() as session:
        _, summary, history = await get_payment_summary(session, order.id, actor(clerk))
    assert summary.paid == Decimal("300.00")
    assert summary.remaining == Decimal("100.00")
    assert len(history) == 1


async def test_card_order_payment_status_untouched_by_cash_rules(db, buyer, seller, admin):
    listing = await make_listing(db, seller, unit_price="500.00")
    order = await place_order(db, buyer, [(listing, 1)], payment_method=PaymentMethod.CARD)
    assert order.status == OrderStatus.AWAITING_SELLER_ACCEPTANCE
    with pytest.raises(ValidationError):
        await record_payment(db, order.id, "10.00", actor(admin))


async def test_payment_records_are_append_only(db, buyer, seller, admin):
    order = await _order_for(db, buyer, seller, "500.00")
    payment, _ = await record_payment(db, order.id, "10.00", actor(admin))
    payment_id = payment.id

    payment.amount = Decimal("5.00")
    with pytest.raises(ValidationError):
        await db.commit()
    await db.rollback()

    async with AsyncSessionLocal() as session:
        await session.delete(await session.get(PaymentRecord, payment_id))
        with pytest.raises(ValidationError):
            await session.commit()
        await session.rollback()


async def test_shipping_address_is_frozen(db, buyer, seller):
    order = await _order_for(db, buyer, seller, "500.00")
    order.shipping_address = {**order.shipping_address, "city": "Elsewhere"}
    with pytest.raises(ValidationError):
        await db.commit()
    await db.rollback()


async def test_sub_cent_amount_rejected_not_rounded(db, buyer, seller, admin):
    order = await _order_for(db, buyer, seller, "500.00")
    order_id = order.id
    with pytest.raises(ValidationError) as exc:
        await record_payment(db, order_id, Decimal("0.005"), actor(admin))
    assert exc.value.field == "amount"

    assert (await db.execute(select(PaymentRecord))).scalars().all() == []

    payment, _ = await record_payment(db, order_id, "10.50", actor(admin))
    assert payment.amount == Decimal("10.50")
