# marketplace/schemas/driver_schemas.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from marketplace.models.driver_models import DriverStatus


class DriverCreate(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    vehicle_plate: Optional[str] = None


class DriverStatusUpdate(BaseModel):
    status: DriverStatus


class DriverOut(DriverCreate):
    id: int
    status: DriverStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
