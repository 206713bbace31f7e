# marketplace/models/payment_models.py
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime, Text, CheckConstraint

from marketplace.core.db import Base
from marketplace.models.append_only import protect_append_only
from marketplace.utils.datetime_utils import utcnow


class PaymentRecord(Base):
    """One collected payment against an order. Never updated or deleted."""
    __tablename__ = "payment_records"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False, index=True)

    amount = Column(Numeric(14, 2), nullable=False)
    method = Column(String(20), nullable=False, default="CASH")
    recorded_by = Column(String(20), nullable=False, default="staff")  # staff | driver | system | admin
    recorded_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


protect_append_only(PaymentRecord)
