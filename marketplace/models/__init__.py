# marketplace/models/__init__.py
from marketplace.models.user_models import User, RefreshToken
from marketplace.models.activity_models import UserActivity
from marketplace.models.address_models import Address
from marketplace.models.listing_models import Listing
from marketplace.models.driver_models import Driver, DriverStatus
from marketplace.models.order_models import (
    Order, OrderItem, OrderStatusHistory, OrderStatus, PaymentStatus, PaymentMethod
)
from marketplace.models.payment_models import PaymentRecord
from marketplace.models.coupon_models import Coupon, CouponUsage
from marketplace.models.commission_models import CommissionRate, SellerPayout, PayoutStatus
from marketplace.models.staff_models import (
    Staff, TimeLog, PayrollRun, Payslip,
    Department, StaffRole, StaffStatus, PayrollPeriod, PayrollStatus,
)
