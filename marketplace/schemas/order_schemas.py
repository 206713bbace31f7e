# marketplace/schemas/order_schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from marketplace.models.order_models import OrderStatus, PaymentMethod, PaymentStatus
from marketplace.schemas.address_schemas import ShippingAddress


# =====================================================
# Requests
# =====================================================
class CheckoutItem(BaseModel):
    listing_id: int
    quantity: int = Field(..., ge=1)


class CheckoutRequest(BaseModel):
    items: List[CheckoutItem] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CASH
    shipping_address_id: Optional[int] = None
    shipping_address: Optional[ShippingAddress] = None
    po_number: Optional[str] = None
    cost_center: Optional[str] = None
    notes: Optional[str] = None
    coupon_code: Optional[str] = None
    currency: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str
    rejection_reason: Optional[str] = None
    reason: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class FulfillmentUpdate(BaseModel):
    status: str
    estimated_delivery_date: Optional[datetime] = None


class DispatchRequest(BaseModel):
    driver_id: int
    estimated_delivery_date: Optional[datetime] = None
    dispatch_notes: Optional[str] = None


class ItemQuantityUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


# =====================================================
# Responses
# =====================================================
class OrderItemOut(BaseModel):
    id: int
    listing_id: Optional[int]
    product_id: int
    seller_sku: str
    name: str
    category: Optional[str]
    unit_price: Decimal
    display_price: Decimal
    quantity: int
    line_total: Decimal
    commission_rate: Decimal
    commission_amount: Decimal

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    order_number: str
    buyer_id: int
    seller_id: int
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    currency: str

    subtotal: Decimal
    shipping_cost: Decimal
    platform_commission: Decimal
    discount_amount: Decimal
    total_amount: Decimal

    shipping_address: dict
    coupon_code: Optional[str] = None
    po_number: Optional[str] = None
    cost_center: Optional[str] = None
    notes: Optional[str] = None

    driver_id: Optional[int] = None
    dispatch_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None

    created_at: datetime
    updated_at: Optional[datetime] = None
    seller_accepted_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    estimated_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    version: int
    items: List[OrderItemOut] = []
    allowed_actions: List[str] = []

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(BaseModel):
    orders: List[OrderOut]
    pagination: Pagination


class StatusHistoryOut(BaseModel):
    id: int
    from_status: Optional[OrderStatus]
    to_status: OrderStatus
    action: str
    actor_id: Optional[int]
    actor_role: Optional[str]
    reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
