# marketplace/services/order_services/commission_service.py
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import DEFAULT_COMMISSION_RATE
from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.models.commission_models import CommissionRate, SellerPayout, PayoutStatus
from marketplace.models.order_models import Order, OrderStatus
from marketplace.services.order_services.order_state_machine import Actor
from marketplace.utils.activity_helpers import log_user_activity
from marketplace.utils.datetime_utils import utcnow
from marketplace.utils.decimal_utils import to_decimal

logger = logging.getLogger(__name__)

RATE_QUANTUM = Decimal("0.0001")


# -----------------------
# RATES
# -----------------------
def _rate_priority(row: CommissionRate, seller_id: int, category: Optional[str]) -> int:
    if row.seller_id == seller_id and row.category is not None and row.category == category:
        return 0
    if row.seller_id == seller_id and row.category is None:
        return 1
    if row.seller_id is None and row.category is not None and row.category == category:
        return 2
    return 3


async def commission_rate_for(db: AsyncSession, seller_id: int, category: Optional[str]) -> Decimal:
    """seller+category, then seller, then category, then the configured default."""
    category = category.lower() if category else None
    result = await db.execute(
        select(CommissionRate).where(
            or_(CommissionRate.seller_id == seller_id, CommissionRate.seller_id.is_(None)),
            or_(CommissionRate.category == category, CommissionRate.category.is_(None)),
        )
    )
    candidates = [
        row for row in result.scalars().all()
        if not (row.seller_id is None and row.category is None)
    ]
    if not candidates:
        return DEFAULT_COMMISSION_RATE
    best = min(candidates, key=lambda row: _rate_priority(row, seller_id, category))
    return Decimal(str(best.rate)).quantize(RATE_QUANTUM)


def item_commission(unit_price, quantity: int, rate, currency: str = "USD") -> Decimal:
    return to_decimal(Decimal(str(unit_price)) * quantity * Decimal(str(rate)), currency)


class CommissionRateCache:
    """Resolves each (seller, category) once while pricing a checkout."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._rates: Dict[Tuple[int, Optional[str]], Decimal] = {}

    async def rate(self, seller_id: int, category: Optional[str]) -> Decimal:
        key = (seller_id, category.lower() if category else None)
        if key not in self._rates:
            self._rates[key] = await commission_rate_for(self.db, seller_id, category)
        return self._rates[key]


async def list_commission_rates(db: AsyncSession, seller_id: Optional[int] = None) -> List[CommissionRate]:
    stmt = select(CommissionRate).order_by(CommissionRate.seller_id, CommissionRate.category)
    if seller_id is not None:
        stmt = stmt.where(CommissionRate.seller_id == seller_id)
    result = await db.execute(stmt)
    return result.scalars().all()


async def upsert_commission_rate(db: AsyncSession, seller_id: Optional[int], category: Optional[str], rate, _user) -> CommissionRate:
    rate = Decimal(str(rate)).quantize(RATE_QUANTUM)
    if not (Decimal("0") <= rate < Decimal("1")):
        raise ValidationError("Commission rate must be between 0 and 1", field="rate")
    category = category.strip().lower() if category else None

    result = await db.execute(
        select(CommissionRate).where(
            CommissionRate.seller_id.is_(None) if seller_id is None else CommissionRate.seller_id == seller_id,
            CommissionRate.category.is_(None) if category is None else CommissionRate.category == category,
        )
    )
    row = result.scalar_one_or_none()
    if row:
        row.rate = rate
    else:
        row = CommissionRate(seller_id=seller_id, category=category, rate=rate)
        db.add(row)
    await db.flush()

    await log_user_activity(
        db,
        user_id=_user.id,
        username=_user.username,
        message=f"Set commission rate {rate} for seller={seller_id or '*'} category={category or '*'}",
    )
    await db.commit()
    # existing orders keep the rate frozen on their items
    return row


# -----------------------
# SETTLEMENT & PAYOUTS
# -----------------------
async def settle_order(db: AsyncSession, order: Order) -> SellerPayout:
    """
    Final settlement on delivery: one payout per order, from the frozen
    order figures. Runs inside the caller's unit of work; safe to call twice.
    """
    existing = await db.execute(select(SellerPayout).where(SellerPayout.order_id == order.id))
    payout = existing.scalar_one_or_none()
    if payout:
        return payout

    gross = to_decimal(order.subtotal, order.currency)
    discount = to_decimal(order.discount_amount, order.currency)
    payout = SellerPayout(
        order_id=order.id,
        seller_id=order.seller_id,
        currency=order.currency,
        gross_amount=gross,
        commission_amount=to_decimal(order.platform_commission, order.currency),
        discount_amount=discount,
        net_amount=to_decimal(gross - discount, order.currency),
        status=PayoutStatus.PENDING,
        created_at=utcnow(),
    )
    db.add(payout)
    logger.info("Order %s settled: seller %s payout %s", order.order_number, order.seller_id, payout.net_amount)
    return payout


async def void_pending_payout(db: AsyncSession, order: Order) -> Optional[SellerPayout]:
    result = await db.execute(
        select(SellerPayout).where(SellerPayout.order_id == order.id, SellerPayout.status == PayoutStatus.PENDING)
    )
    payout = result.scalar_one_or_none()
    if payout:
        payout.status = PayoutStatus.VOID
        logger.info("Payout %s voided after refund of order %s", payout.id, order.order_number)
    return payout


async def list_payouts(
    db: AsyncSession,
    actor: Actor,
    status: Optional[PayoutStatus] = None,
    seller_id: Optional[int] = None,
) -> List[SellerPayout]:
    filters = []
    if actor.role == "seller":
        filters.append(SellerPayout.seller_id == actor.user_id)
    elif seller_id is not None:
        filters.append(SellerPayout.seller_id == seller_id)
    if status is not None:
        filters.append(SellerPayout.status == status)

    result = await db.execute(select(SellerPayout).where(and_(*filters)).order_by(SellerPayout.created_at.desc()))
    return result.scalars().all()


async def process_payouts(db: AsyncSession, payout_ids: List[int], _user) -> List[SellerPayout]:
    if not payout_ids:
        raise ValidationError("At least one payout id is required", field="payout_ids")

    try:
        result = await db.execute(
            select(SellerPayout).where(SellerPayout.id.in_(payout_ids)).with_for_update()
        )
        payouts = {p.id: p for p in result.scalars().all()}
        missing = [pid for pid in payout_ids if pid not in payouts]
        if missing:
            raise NotFoundError("Payout", missing[0])

        not_pending = [p.id for p in payouts.values() if p.status != PayoutStatus.PENDING]
        if not_pending:
            raise ValidationError(f"Payouts already settled or void: {not_pending}", field="payout_ids")

        # only delivered orders may be paid out
        order_rows = await db.execute(
            select(Order.id, Order.status).where(Order.id.in_([p.order_id for p in payouts.values()]))
        )
        undelivered = [oid for oid, status in order_rows.all() if status != OrderStatus.DELIVERED]
        if undelivered:
            raise ValidationError(f"Orders not in DELIVERED state: {undelivered}", field="payout_ids")

        now = utcnow()
        for payout in payouts.values():
            payout.status = PayoutStatus.PAID
            payout.paid_at = now
            payout.processed_by = _user.id

        total = sum((p.net_amount for p in payouts.values()), Decimal("0"))
        await log_user_activity(
            db,
            user_id=_user.id,
            username=_user.username,
            message=f"Processed {len(payouts)} seller payout(s) totalling {total}",
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Processed payouts %s", sorted(payouts))
    return [payouts[pid] for pid in payout_ids]
