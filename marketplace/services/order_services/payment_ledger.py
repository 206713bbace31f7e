# marketplace/services/order_services/payment_ledger.py
import logging
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import OverpaymentError, ValidationError
from marketplace.core.locks import order_key, serialized_unit_of_work
from marketplace.models.order_models import Order, OrderStatus, PaymentStatus
from marketplace.models.payment_models import PaymentRecord
from marketplace.services.order_services.order_lookup import get_visible_order, load_order_for_update
from marketplace.services.order_services.order_state_machine import Actor
from marketplace.utils.activity_helpers import log_user_activity
from marketplace.utils.datetime_utils import utcnow
from marketplace.utils.decimal_utils import ZERO, compute_balance, exact_amount, to_decimal

logger = logging.getLogger(__name__)

# Cash is collected either up front (PENDING_PAYMENT) or by the driver on delivery.
CASH_RECORDABLE_STATUSES = {OrderStatus.PENDING_PAYMENT, OrderStatus.DELIVERED}

RECORDER_KINDS = {"staff", "driver", "system", "admin"}


@dataclass(frozen=True)
class PaymentSummary:
    total_to_be_paid: Decimal
    paid: Decimal
    remaining: Decimal
    is_fully_paid: bool
    is_partially_paid: bool
    has_no_payment: bool

    def as_dict(self) -> dict:
        return asdict(self)


def summarize(total, paid, currency: str = "USD") -> PaymentSummary:
    """
    Project the ledger onto the three mutually exclusive payment states.

    ``has_no_payment`` additionally requires an outstanding balance so that a
    zero-total order counts as fully paid rather than both.
    """
    total = to_decimal(total, currency)
    paid = to_decimal(paid, currency)
    remaining = compute_balance(total, paid, currency)
    is_fully_paid = remaining == ZERO
    return PaymentSummary(
        total_to_be_paid=total,
        paid=paid,
        remaining=remaining,
        is_fully_paid=is_fully_paid,
        is_partially_paid=(not is_fully_paid) and ZERO < paid < total,
        has_no_payment=(not is_fully_paid) and paid == ZERO,
    )


def payment_status_for(summary: PaymentSummary) -> PaymentStatus:
    if summary.is_fully_paid:
        return PaymentStatus.PAID
    if summary.is_partially_paid:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.PENDING


async def total_paid(db: AsyncSession, order: Order) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(PaymentRecord.amount), 0)).where(PaymentRecord.order_id == order.id)
    )
    return to_decimal(result.scalar() or 0, order.currency)


async def list_payments(db: AsyncSession, order_id: int) -> List[PaymentRecord]:
    result = await db.execute(
        select(PaymentRecord).where(PaymentRecord.order_id == order_id).order_by(PaymentRecord.created_at, PaymentRecord.id)
    )
    return result.scalars().all()


async def summary_for(db: AsyncSession, order: Order) -> PaymentSummary:
    return summarize(order.total_amount, await total_paid(db, order), order.currency)


async def get_payment_summary(db: AsyncSession, order_id: int, actor: Actor):
    """Read-only projection for GET /orders/{id}/payment."""
    order = await get_visible_order(db, order_id, actor)
    summary = await summary_for(db, order)
    history = await list_payments(db, order.id)
    return order, summary, history


def refresh_payment_status(order: Order, paid) -> PaymentSummary:
    """Re-derive payment_status after the total moved; FAILED and REFUNDED stick."""
    summary = summarize(order.total_amount, paid, order.currency)
    if order.payment_status not in {PaymentStatus.FAILED, PaymentStatus.REFUNDED}:
        order.payment_status = payment_status_for(summary)
    return summary


async def record_payment(
    db: AsyncSession,
    order_id: int,
    amount,
    actor: Actor,
    *,
    method: str = "CASH",
    recorded_by: str = "staff",
    notes: Optional[str] = None,
) -> Tuple[PaymentRecord, PaymentSummary]:
    """
    Append a payment to the order's ledger.

    The balance check, the insert and the payment status update happen in one
    serialized unit of work, so two concurrent payments against the same
    order can never jointly exceed ``total_amount``.
    """
    async with serialized_unit_of_work(db, order_key(order_id)):
        order = await load_order_for_update(db, order_id, actor)
        amount = exact_amount(amount, order.currency)
        if amount <= ZERO:
            raise ValidationError("Payment must be greater than zero", field="amount")

        if order.status not in CASH_RECORDABLE_STATUSES:
            raise ValidationError(
                f"Cash payments can only be recorded while the order is PENDING_PAYMENT or DELIVERED "
                f"(current status: {order.status.value})",
                field="order_id",
            )

        recorded_by = (recorded_by or "staff").lower()
        if recorded_by not in RECORDER_KINDS:
            raise ValidationError(f"recorded_by must be one of {sorted(RECORDER_KINDS)}", field="recorded_by")

        paid = await total_paid(db, order)
        remaining = compute_balance(order.total_amount, paid, order.currency)
        if amount > remaining:
            logger.warning("Overpayment rejected on order %s: amount=%s remaining=%s", order.order_number, amount, remaining)
            raise OverpaymentError(amount, remaining)

        now = utcnow()
        payment = PaymentRecord(
            order_id=order.id,
            amount=amount,
            method=(method or "CASH").upper(),
            recorded_by=recorded_by,
            recorded_by_user_id=actor.user_id,
            notes=notes,
            created_at=now,
        )
        db.add(payment)

        summary = summarize(order.total_amount, paid + amount, order.currency)
        order.payment_status = payment_status_for(summary)
        order.updated_at = now  # bumps the row version alongside the insert

        await log_user_activity(
            db,
            user_id=actor.user_id,
            username=actor.username,
            message=f"Recorded {amount} {order.currency} payment on order {order.order_number} (remaining {summary.remaining})",
        )
        await db.flush()

    logger.info("Payment %s of %s recorded on order %s", payment.id, amount, order.order_number)
    return payment, summary
