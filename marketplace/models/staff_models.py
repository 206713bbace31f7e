# marketplace/models/staff_models.py
import enum
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, ForeignKey, Enum, CheckConstraint, UniqueConstraint,
    event, inspect
)
from sqlalchemy.orm import relationship

from marketplace.core.db import Base
from marketplace.core.exceptions import ValidationError
from marketplace.models.append_only import protect_append_only
from marketplace.utils.datetime_utils import utcnow


class Department(str, enum.Enum):
    WAREHOUSE = "WAREHOUSE"
    SALES = "SALES"
    SUPPORT = "SUPPORT"
    FINANCE = "FINANCE"
    ADMIN = "ADMIN"


class StaffRole(str, enum.Enum):
    STOCK_MANAGER = "STOCK_MANAGER"
    FINANCE_VIEW = "FINANCE_VIEW"
    SALES_MANAGER = "SALES_MANAGER"
    SUPPORT_STAFF = "SUPPORT_STAFF"
    ADMIN = "ADMIN"
    FULL_ACCESS = "FULL_ACCESS"


class StaffStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class PayrollPeriod(str, enum.Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


class PayrollStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"


class Staff(Base):
    __tablename__ = "staff"
    __table_args__ = (
        CheckConstraint(
            "COALESCE(salary, 0) > 0 OR COALESCE(hourly_rate, 0) > 0",
            name="ck_staff_has_pay_basis",
        ),
        UniqueConstraint("seller_id", "email", name="uq_staff_seller_email"),
    )

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    first_name = Column(String(80), nullable=False)
    last_name = Column(String(80), nullable=False)
    email = Column(String(200), nullable=False)
    phone = Column(String(40), nullable=True)
    department = Column(Enum(Department, name="staff_department"), nullable=False)
    role = Column(Enum(StaffRole, name="staff_role"), nullable=False)
    position = Column(String(120), nullable=True)
    status = Column(Enum(StaffStatus, name="staff_status"), nullable=False, default=StaffStatus.ACTIVE)

    salary = Column(Numeric(14, 2), nullable=True)       # annual
    hourly_rate = Column(Numeric(10, 2), nullable=True)

    start_date = Column(Date, nullable=False)
    deactivated_at = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class TimeLog(Base):
    __tablename__ = "staff_time_logs"
    __table_args__ = (
        CheckConstraint("hours > 0 AND hours <= 24", name="ck_time_log_hours_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id", ondelete="CASCADE"), nullable=False, index=True)
    work_date = Column(Date, nullable=False, index=True)
    hours = Column(Numeric(5, 2), nullable=False)
    note = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class PayrollRun(Base):
    __tablename__ = "payroll_runs"
    __table_args__ = (
        UniqueConstraint("seller_id", "period", "period_start", name="uq_payroll_run_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    period = Column(Enum(PayrollPeriod, name="payroll_period"), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    status = Column(Enum(PayrollStatus, name="payroll_status"), nullable=False, default=PayrollStatus.PENDING)
    total_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    payslips = relationship(
        "Payslip",
        back_populates="payroll_run",
        lazy="selectin",
        order_by="Payslip.id",
    )


class Payslip(Base):
    __tablename__ = "payslips"

    id = Column(Integer, primary_key=True, index=True)
    payroll_run_id = Column(Integer, ForeignKey("payroll_runs.id", ondelete="RESTRICT"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False, index=True)

    salary_for_period = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    total_hours = Column(Numeric(8, 2), nullable=False, default=Decimal("0.00"))
    hourly_pay = Column(Numeric(10, 2), nullable=True)
    hourly_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    gross_pay = Column(Numeric(14, 2), nullable=False)
    deductions = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    net_pay = Column(Numeric(14, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    payroll_run = relationship("PayrollRun", back_populates="payslips")
    staff = relationship("Staff", lazy="selectin")


protect_append_only(Payslip)


@event.listens_for(PayrollRun, "before_update")
def _processed_runs_are_immutable(mapper, connection, target):
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else (None if history.added else target.status)
    if previous == PayrollStatus.PROCESSED:
        raise ValidationError("Processed payroll runs cannot be modified")


@event.listens_for(PayrollRun, "before_delete")
def _processed_runs_are_kept(mapper, connection, target):
    if target.status == PayrollStatus.PROCESSED:
        raise ValidationError("Processed payroll runs cannot be deleted")
