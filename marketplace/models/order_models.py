# marketplace/models/order_models.py
import enum
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, ForeignKey, Numeric, DateTime, Enum, JSON, Text, CheckConstraint, event, inspect
)
from sqlalchemy.orm import relationship

from marketplace.core.db import Base
from marketplace.core.exceptions import ValidationError
from marketplace.models.append_only import protect_append_only
from marketplace.utils.datetime_utils import utcnow


class OrderStatus(str, enum.Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    AWAITING_SELLER_ACCEPTANCE = "AWAITING_SELLER_ACCEPTANCE"
    SELLER_REJECTED = "SELLER_REJECTED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"
    DISPUTED = "DISPUTED"
    REFUNDED = "REFUNDED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    WALLET = "WALLET"


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_order_subtotal_non_negative"),
        CheckConstraint("shipping_cost >= 0", name="ck_order_shipping_non_negative"),
        CheckConstraint("platform_commission >= 0", name="ck_order_commission_non_negative"),
        CheckConstraint("discount_amount >= 0", name="ck_order_discount_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_order_total_non_negative"),
        CheckConstraint(
            "ROUND(total_amount, 2) = ROUND(subtotal + shipping_cost + platform_commission - discount_amount, 2)",
            name="ck_order_total_identity",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(40), unique=True, nullable=False, index=True)

    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    status = Column(Enum(OrderStatus, name="order_status"), nullable=False, index=True)
    payment_status = Column(Enum(PaymentStatus, name="payment_status"), nullable=False, default=PaymentStatus.PENDING)
    payment_method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False, default=PaymentMethod.CASH)
    currency = Column(String(3), nullable=False, default="USD")

    subtotal = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    shipping_cost = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    platform_commission = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    total_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    shipping_address = Column(JSON, nullable=False)
    coupon_code = Column(String(50), nullable=True)
    po_number = Column(String(80), nullable=True)
    cost_center = Column(String(80), nullable=True)
    notes = Column(Text, nullable=True)

    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True, index=True)
    dispatch_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    seller_accepted_at = Column(DateTime(timezone=True), nullable=True)
    dispatched_at = Column(DateTime(timezone=True), nullable=True)
    estimated_delivery_date = Column(DateTime(timezone=True), nullable=True)
    actual_delivery_date = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )
    driver = relationship("Driver", lazy="selectin")

    __mapper_args__ = {"version_id_col": version}


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_item_unit_price_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=True)
    product_id = Column(Integer, nullable=False)
    seller_sku = Column(String(64), nullable=False)
    name = Column(String(200), nullable=False)
    category = Column(String(80), nullable=True)

    unit_price = Column(Numeric(14, 2), nullable=False)
    display_price = Column(Numeric(14, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    line_total = Column(Numeric(14, 2), nullable=False)

    # rate captured at time of sale; never re-derived
    commission_rate = Column(Numeric(6, 4), nullable=False)
    commission_amount = Column(Numeric(14, 2), nullable=False)

    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(Enum(OrderStatus, name="order_status"), nullable=True)
    to_status = Column(Enum(OrderStatus, name="order_status"), nullable=False)
    action = Column(String(40), nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    actor_role = Column(String(20), nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


protect_append_only(OrderStatusHistory)


@event.listens_for(Order, "before_update")
def _shipping_address_is_immutable(mapper, connection, target):
    if inspect(target).attrs.shipping_address.history.has_changes():
        raise ValidationError("Shipping address cannot be changed after the order is created", field="shipping_address")
