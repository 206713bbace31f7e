# marketplace/models/listing_models.py
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Boolean, Numeric, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
)
from marketplace.utils.datetime_utils import utcnow

from marketplace.core.db import Base


class Listing(Base):
    """A seller's offer of a catalogue product."""
    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("unit_price > 0", name="ck_listing_unit_price_positive"),
        UniqueConstraint("seller_id", "seller_sku", name="uq_listing_seller_sku"),
    )

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, index=True)
    seller_sku = Column(String(64), nullable=False)
    name = Column(String(200), nullable=False)
    category = Column(String(80), nullable=True, index=True)

    unit_price = Column(Numeric(14, 2), nullable=False)
    display_price = Column(Numeric(14, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def effective_display_price(self) -> Decimal:
        return self.display_price if self.display_price is not None else self.unit_price
