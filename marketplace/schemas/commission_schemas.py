# marketplace/schemas/commission_schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from marketplace.models.commission_models import PayoutStatus


class CommissionRateIn(BaseModel):
    seller_id: Optional[int] = None
    category: Optional[str] = None
    rate: Decimal = Field(..., ge=0, lt=1)


class CommissionRateOut(BaseModel):
    id: int
    seller_id: Optional[int]
    category: Optional[str]
    rate: Decimal

    class Config:
        from_attributes = True


class PayoutOut(BaseModel):
    id: int
    order_id: int
    seller_id: int
    currency: str
    gross_amount: Decimal
    commission_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal
    status: PayoutStatus
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    processed_by: Optional[int] = None

    class Config:
        from_attributes = True


class ProcessPayoutsRequest(BaseModel):
    payout_ids: List[int] = Field(..., min_length=1)
