# marketplace/models/commission_models.py
import enum
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, Enum, CheckConstraint, UniqueConstraint
)

from marketplace.core.db import Base
from marketplace.utils.datetime_utils import utcnow


class CommissionRate(Base):
    """Platform commission rate for a seller and/or category; NULL acts as wildcard."""
    __tablename__ = "commission_rates"
    __table_args__ = (
        CheckConstraint("rate >= 0 AND rate < 1", name="ck_commission_rate_range"),
        UniqueConstraint("seller_id", "category", name="uq_commission_rate_scope"),
    )

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    category = Column(String(80), nullable=True, index=True)
    rate = Column(Numeric(6, 4), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)


class PayoutStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    VOID = "VOID"


class SellerPayout(Base):
    __tablename__ = "seller_payouts"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    currency = Column(String(3), nullable=False)

    gross_amount = Column(Numeric(14, 2), nullable=False)
    commission_amount = Column(Numeric(14, 2), nullable=False)
    discount_amount = Column(Numeric(14, 2), nullable=False)
    net_amount = Column(Numeric(14, 2), nullable=False)

    status = Column(Enum(PayoutStatus, name="payout_status"), nullable=False, default=PayoutStatus.PENDING)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
