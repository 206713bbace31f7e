# marketplace/services/order_services/coupon_service.py
import logging
import re
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import CouponError, CouponErrorReason, NotFoundError, ValidationError
from marketplace.models.coupon_models import Coupon, CouponUsage
from marketplace.services.order_services.order_state_machine import Actor
from marketplace.utils.activity_helpers import log_user_activity
from marketplace.utils.datetime_utils import as_utc, utcnow
from marketplace.utils.decimal_utils import ZERO, floor_to_minor_unit, percent_of, to_decimal

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_SUFFIX_LENGTH = 8
DEFAULT_CODE_PREFIX = "CPN"


@dataclass
class OrderDraft:
    """What the coupon engine needs to know about an order before it exists."""
    buyer_id: int
    seller_id: int
    subtotal: Decimal
    product_ids: Sequence[int] = field(default_factory=list)
    currency: str = "USD"


@dataclass(frozen=True)
class CouponQuote:
    coupon: Coupon
    discount_amount: Decimal


# -----------------------
# VALIDATION
# -----------------------
async def _buyer_usage_count(db: AsyncSession, coupon_id: int, buyer_id: int) -> int:
    result = await db.execute(
        select(func.count(CouponUsage.id)).where(
            CouponUsage.coupon_id == coupon_id, CouponUsage.buyer_id == buyer_id
        )
    )
    return result.scalar() or 0


async def validate_coupon(
    db: AsyncSession,
    code: str,
    draft: OrderDraft,
    now: Optional[datetime] = None,
    lock: bool = False,
) -> CouponQuote:
    """
    Check ``code`` against ``draft`` and price the discount.

    The checks run in a fixed order and the first failing one decides the
    ``CouponError`` reason. Nothing is written; see ``redeem_coupon``.
    With ``lock`` the coupon row is read FOR UPDATE, so concurrent checkouts
    in other processes queue behind this one.
    """
    code = (code or "").strip().upper()
    now = as_utc(now) or utcnow()

    stmt = (
        select(Coupon)
        .where(Coupon.code == code, Coupon.is_deleted == False)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    coupon = result.scalar_one_or_none()
    # another seller's coupon is indistinguishable from an unknown one
    if not coupon or not coupon.is_active or coupon.seller_id != draft.seller_id:
        raise CouponError(CouponErrorReason.NOT_FOUND, code=code)

    if not (as_utc(coupon.valid_from) <= now <= as_utc(coupon.valid_until)):
        raise CouponError(CouponErrorReason.EXPIRED, code=code)

    subtotal = to_decimal(draft.subtotal, draft.currency)
    if subtotal < to_decimal(coupon.minimum_order_amount, draft.currency):
        raise CouponError(CouponErrorReason.BELOW_MINIMUM, code=code)

    applicable = {int(p) for p in (coupon.applicable_products or [])}
    if applicable and not applicable.intersection(int(p) for p in draft.product_ids):
        raise CouponError(CouponErrorReason.PRODUCT_MISMATCH, code=code)

    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        raise CouponError(CouponErrorReason.USAGE_LIMIT_EXCEEDED, code=code)
    if coupon.user_usage_limit is not None:
        used = await _buyer_usage_count(db, coupon.id, draft.buyer_id)
        if used >= coupon.user_usage_limit:
            raise CouponError(
                CouponErrorReason.USAGE_LIMIT_EXCEEDED,
                code=code,
                message="You have already used this coupon the maximum number of times",
            )

    discount = percent_of(subtotal, coupon.discount_value, draft.currency)
    if coupon.maximum_discount is not None:
        discount = min(discount, floor_to_minor_unit(coupon.maximum_discount, draft.currency))
    return CouponQuote(coupon=coupon, discount_amount=discount)


async def redeem_coupon(
    db: AsyncSession,
    coupon: Coupon,
    order_id: int,
    buyer_id: int,
    discount_amount: Decimal,
) -> CouponUsage:
    """
    Count one use of ``coupon`` for ``order_id``.

    Must run inside the checkout unit of work, under the coupon's lock; the
    conditional UPDATE re-checks the global and per-buyer limits at write time.
    """
    stmt = update(Coupon).where(Coupon.id == coupon.id)
    if coupon.usage_limit is not None:
        stmt = stmt.where(Coupon.usage_count < coupon.usage_limit)
    if coupon.user_usage_limit is not None:
        used = (
            select(func.count(CouponUsage.id))
            .where(CouponUsage.coupon_id == coupon.id, CouponUsage.buyer_id == buyer_id)
            .scalar_subquery()
        )
        stmt = stmt.where(used < coupon.user_usage_limit)
    result = await db.execute(
        stmt.values(usage_count=Coupon.usage_count + 1).execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise CouponError(CouponErrorReason.USAGE_LIMIT_EXCEEDED, code=coupon.code)

    usage = CouponUsage(
        coupon_id=coupon.id,
        order_id=order_id,
        buyer_id=buyer_id,
        discount_amount=discount_amount,
        used_at=utcnow(),
    )
    db.add(usage)
    logger.info("Coupon %s redeemed on order %s by buyer %s (-%s)", coupon.code, order_id, buyer_id, discount_amount)
    return usage


# -----------------------
# CREATE
# -----------------------
def _code_prefix(name: str) -> str:
    words = re.findall(r"[A-Za-z]+", name or "")
    prefix = "".join(w[0] for w in words[:4]).upper()
    return prefix if len(prefix) >= 2 else DEFAULT_CODE_PREFIX


def generate_coupon_code(name: str) -> str:
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))
    return f"{_code_prefix(name)}-{suffix}"


def _check_coupon_rules(discount_value, minimum_order_amount, valid_from, valid_until):
    if discount_value is not None and not (ZERO < Decimal(str(discount_value)) <= Decimal(100)):
        raise ValidationError("Percentage discount must be between 0 and 100", field="discount_value")
    if minimum_order_amount is not None and Decimal(str(minimum_order_amount)) < ZERO:
        raise ValidationError("Minimum order amount cannot be negative", field="minimum_order_amount")
    if valid_from is not None and valid_until is not None and as_utc(valid_from) > as_utc(valid_until):
        raise ValidationError("valid_from must not be after valid_until", field="valid_until")


async def create_coupon(db: AsyncSession, payload, _user) -> Coupon:
    _check_coupon_rules(payload.discount_value, payload.minimum_order_amount, payload.valid_from, payload.valid_until)

    for _ in range(5):
        code = generate_coupon_code(payload.name)
        clash = await db.execute(select(Coupon.id).where(Coupon.code == code))
        if clash.scalar_one_or_none() is None:
            break
    else:
        raise ValidationError("Could not allocate a unique coupon code, please retry", field="code")

    data = payload.model_dump(exclude={"product_id", "valid_from", "valid_until"})
    products = list(data.pop("applicable_products", None) or [])
    if getattr(payload, "product_id", None) is not None:
        products = [payload.product_id]

    coupon = Coupon(
        **data,
        code=code,
        seller_id=_user.id,
        applicable_products=products,
        valid_from=as_utc(payload.valid_from),
        valid_until=as_utc(payload.valid_until),
        usage_count=0,
    )
    db.add(coupon)
    await db.flush()

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Created coupon '{coupon.name}' ({coupon.code})",
    )

    await db.commit()
    await db.refresh(coupon)
    logger.info("Coupon %s created by seller %s", coupon.code, _user.id)
    return coupon


# -----------------------
# READ
# -----------------------
def _scope(actor: Actor) -> list:
    if actor.role == "seller":
        return [Coupon.seller_id == actor.user_id]
    return []


async def get_all_coupons(
    db: AsyncSession,
    actor: Actor,
    active: Optional[bool] = None,
    include_deleted: bool = False,
    code: Optional[str] = None,
) -> List[Coupon]:
    filters = _scope(actor)

    # Soft delete filter
    if not include_deleted:
        filters.append(Coupon.is_deleted == False)

    if active is not None:
        filters.append(Coupon.is_active == active)
    if code:
        filters.append(Coupon.code.ilike(f"%{code}%"))

    query = select(Coupon).where(and_(*filters)).order_by(Coupon.created_at.desc(), Coupon.id.desc())
    result = await db.execute(query)
    return result.scalars().all()


async def get_coupon_by_id(db: AsyncSession, coupon_id: int, actor: Actor) -> Coupon:
    result = await db.execute(
        select(Coupon).where(Coupon.id == coupon_id, Coupon.is_deleted == False, *_scope(actor))
    )
    coupon = result.scalar_one_or_none()
    if not coupon:
        raise NotFoundError("Coupon", coupon_id)
    return coupon


# -----------------------
# UPDATE
# -----------------------
async def update_coupon(db: AsyncSession, coupon_id: int, payload, _user) -> Coupon:
    coupon = await get_coupon_by_id(db, coupon_id, Actor.from_user(_user))
    update_data = payload.model_dump(exclude_unset=True)

    _check_coupon_rules(
        update_data.get("discount_value"),
        update_data.get("minimum_order_amount"),
        update_data.get("valid_from", coupon.valid_from),
        update_data.get("valid_until", coupon.valid_until),
    )

    if "usage_limit" in update_data and update_data["usage_limit"] is not None:
        if update_data["usage_limit"] < coupon.usage_count:
            raise ValidationError("usage_limit cannot be lower than the current usage count", field="usage_limit")

    for key in ("valid_from", "valid_until"):
        if key in update_data:
            update_data[key] = as_utc(update_data[key])
    if "product_id" in update_data:
        pid = update_data.pop("product_id")
        update_data["applicable_products"] = [pid] if pid is not None else []

    for key, value in update_data.items():
        setattr(coupon, key, value)

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Updated coupon '{coupon.name}' ({coupon.code})",
    )

    await db.commit()
    await db.refresh(coupon)
    return coupon


# -----------------------
# SOFT DELETE
# -----------------------
async def delete_coupon(db: AsyncSession, coupon_id: int, _user) -> Coupon:
    coupon = await get_coupon_by_id(db, coupon_id, Actor.from_user(_user))

    coupon.is_deleted = True
    coupon.is_active = False

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Soft-deleted coupon '{coupon.name}' ({coupon.code})",
    )

    await db.commit()
    await db.refresh(coupon)
    return coupon


# -----------------------
# STATS
# -----------------------
async def get_coupon_stats(db: AsyncSession, actor: Actor, now: Optional[datetime] = None) -> dict:
    now = as_utc(now) or utcnow()
    coupons = await get_all_coupons(db, actor)

    usage_rows = await db.execute(
        select(
            CouponUsage.coupon_id,
            func.count(CouponUsage.id),
            func.coalesce(func.sum(CouponUsage.discount_amount), 0),
        )
        .where(CouponUsage.coupon_id.in_([c.id for c in coupons]))
        .group_by(CouponUsage.coupon_id)
    )
    usage = {cid: (count, Decimal(str(amount))) for cid, count, amount in usage_rows.all()}

    active = [c for c in coupons if c.is_active and as_utc(c.valid_from) <= now <= as_utc(c.valid_until)]
    expired = [c for c in coupons if as_utc(c.valid_until) < now]

    return {
        "total_coupons": len(coupons),
        "active_coupons": len(active),
        "expired_coupons": len(expired),
        "total_usages": sum(count for count, _ in usage.values()),
        "total_discount_given": to_decimal(sum((amount for _, amount in usage.values()), ZERO)),
        "coupons": [
            {
                "id": c.id,
                "code": c.code,
                "name": c.name,
                "usage_count": usage.get(c.id, (0, ZERO))[0],
                "discount_given": to_decimal(usage.get(c.id, (0, ZERO))[1]),
            }
            for c in coupons
        ],
    }
