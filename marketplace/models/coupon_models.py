# marketplace/models/coupon_models.py
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, JSON, Text, CheckConstraint
)
from sqlalchemy.ext.mutable import MutableList

from marketplace.core.db import Base
from marketplace.models.append_only import protect_append_only
from marketplace.utils.datetime_utils import utcnow


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("discount_value > 0 AND discount_value <= 100", name="ck_coupon_percentage_range"),
        CheckConstraint("minimum_order_amount >= 0", name="ck_coupon_minimum_non_negative"),
        CheckConstraint("valid_from <= valid_until", name="ck_coupon_validity_window"),
    )

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    discount_value = Column(Numeric(5, 2), nullable=False)  # percentage
    applicable_products = Column(MutableList.as_mutable(JSON), default=list)  # product ids, empty = all
    minimum_order_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    maximum_discount = Column(Numeric(14, 2), nullable=True)

    usage_limit = Column(Integer, nullable=True)
    user_usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)

    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True)

    # Soft delete flag
    is_deleted = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class CouponUsage(Base):
    __tablename__ = "coupon_usages"

    id = Column(Integer, primary_key=True, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    discount_amount = Column(Numeric(14, 2), nullable=False)
    used_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


protect_append_only(CouponUsage)
