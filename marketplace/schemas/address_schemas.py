# marketplace/schemas/address_schemas.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ShippingAddress(BaseModel):
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    address_line1: str = Field(..., min_length=1)
    address_line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    province: str = Field(..., min_length=1)
    postal_code: Optional[str] = None
    country: Optional[str] = None


class AddressCreate(ShippingAddress):
    is_default: bool = False


class AddressOut(ShippingAddress):
    id: int
    buyer_id: int
    is_default: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
