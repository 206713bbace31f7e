# marketplace/models/address_models.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from marketplace.utils.datetime_utils import utcnow

from marketplace.core.db import Base


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    full_name = Column(String(120), nullable=True)
    phone_number = Column(String(40), nullable=True)
    address_line1 = Column(String(255), nullable=False)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(120), nullable=False)
    province = Column(String(120), nullable=False)
    postal_code = Column(String(20), nullable=True)
    country = Column(String(80), nullable=True)
    is_default = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    SNAPSHOT_FIELDS = (
        "full_name", "phone_number", "address_line1", "address_line2",
        "city", "province", "postal_code", "country",
    )

    def snapshot(self) -> dict:
        return {field: getattr(self, field) for field in self.SNAPSHOT_FIELDS}
