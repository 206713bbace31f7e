# marketplace/schemas/listing_schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class ListingCreate(BaseModel):
    product_id: int
    seller_sku: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1)
    category: Optional[str] = None
    unit_price: Decimal = Field(..., gt=0)
    display_price: Optional[Decimal] = Field(None, gt=0)
    currency: str = "USD"
    is_active: bool = True


class ListingUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    unit_price: Optional[Decimal] = Field(None, gt=0)
    display_price: Optional[Decimal] = Field(None, gt=0)
    is_active: Optional[bool] = None


class ListingOut(BaseModel):
    id: int
    seller_id: int
    product_id: int
    seller_sku: str
    name: str
    category: Optional[str]
    unit_price: Decimal
    display_price: Optional[Decimal]
    currency: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
