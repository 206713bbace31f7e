# marketplace/schemas/coupon_schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from marketplace.schemas.order_schemas import CheckoutItem


class CouponCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    discount_value: Decimal = Field(..., gt=0, le=100)
    minimum_order_amount: Decimal = Field(Decimal("0"), ge=0)
    maximum_discount: Optional[Decimal] = Field(None, gt=0)
    product_id: Optional[int] = None
    applicable_products: List[int] = []
    is_active: bool = True
    usage_limit: Optional[int] = Field(None, ge=1)
    user_usage_limit: Optional[int] = Field(None, ge=1)
    valid_from: datetime
    valid_until: datetime


class CouponUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    discount_value: Optional[Decimal] = Field(None, gt=0, le=100)
    minimum_order_amount: Optional[Decimal] = Field(None, ge=0)
    maximum_discount: Optional[Decimal] = Field(None, gt=0)
    product_id: Optional[int] = None
    is_active: Optional[bool] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    user_usage_limit: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class CouponOut(BaseModel):
    id: int
    seller_id: int
    code: str
    name: str
    description: Optional[str]
    discount_value: Decimal
    applicable_products: List[int] = []
    minimum_order_amount: Decimal
    maximum_discount: Optional[Decimal]
    usage_limit: Optional[int]
    user_usage_limit: Optional[int]
    usage_count: int
    valid_from: datetime
    valid_until: datetime
    is_active: bool
    is_deleted: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CouponValidateRequest(BaseModel):
    code: str
    items: List[CheckoutItem] = Field(..., min_length=1)


class CouponValidateResponse(BaseModel):
    valid: bool
    code: str
    subtotal: Decimal
    discount_amount: Decimal
    currency: str


class CouponUsageStat(BaseModel):
    id: int
    code: str
    name: str
    usage_count: int
    discount_given: Decimal


class CouponStats(BaseModel):
    total_coupons: int
    active_coupons: int
    expired_coupons: int
    total_usages: int
    total_discount_given: Decimal
    coupons: List[CouponUsageStat]
