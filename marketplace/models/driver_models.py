# marketplace/models/driver_models.py
import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum

from marketplace.core.db import Base
from marketplace.utils.datetime_utils import utcnow


class DriverStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"


class Driver(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(80), nullable=False)
    last_name = Column(String(80), nullable=False)
    phone_number = Column(String(40), nullable=True)
    vehicle_type = Column(String(40), nullable=True)
    vehicle_plate = Column(String(20), nullable=True)
    status = Column(Enum(DriverStatus, name="driver_status"), nullable=False, default=DriverStatus.AVAILABLE)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
