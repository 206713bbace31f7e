# marketplace/schemas/payment_schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class RecordCashPayment(BaseModel):
    order_id: int
    amount: Decimal = Field(..., gt=0)
    notes: Optional[str] = None
    recorded_by: str = "staff"


class PaymentRecordOut(BaseModel):
    id: int
    order_id: int
    amount: Decimal
    method: str
    recorded_by: str
    recorded_by_user_id: Optional[int]
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentSummaryOut(BaseModel):
    total_to_be_paid: Decimal
    paid: Decimal
    remaining: Decimal
    is_fully_paid: bool
    is_partially_paid: bool
    has_no_payment: bool


class OrderPaymentResponse(BaseModel):
    order_id: int
    order_number: str
    currency: str
    payment_status: str
    payment: PaymentSummaryOut
    payment_history: List[PaymentRecordOut]


class RecordPaymentResponse(BaseModel):
    msg: str
    data: PaymentRecordOut
    payment: PaymentSummaryOut
