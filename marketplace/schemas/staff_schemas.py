# marketplace/schemas/staff_schemas.py
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from marketplace.models.staff_models import (
    Department, StaffRole, StaffStatus, PayrollPeriod, PayrollStatus
)
from marketplace.schemas.order_schemas import Pagination


# =====================================================
# Staff
# =====================================================
class StaffCreate(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: Optional[str] = None
    department: Department
    role: StaffRole
    position: Optional[str] = None
    salary: Optional[Decimal] = Field(None, ge=0)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    start_date: date


class StaffUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[Department] = None
    role: Optional[StaffRole] = None
    position: Optional[str] = None
    status: Optional[StaffStatus] = None
    salary: Optional[Decimal] = Field(None, ge=0)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)


class StaffOut(BaseModel):
    id: int
    seller_id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str]
    department: Department
    role: StaffRole
    position: Optional[str]
    status: StaffStatus
    salary: Optional[Decimal]
    hourly_rate: Optional[Decimal]
    start_date: date
    deactivated_at: Optional[date]

    class Config:
        from_attributes = True


class StaffSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    position: Optional[str]
    department: Department

    class Config:
        from_attributes = True


class TimeLogCreate(BaseModel):
    work_date: date
    hours: Decimal = Field(..., gt=0, le=24)
    note: Optional[str] = None


class TimeLogOut(TimeLogCreate):
    id: int
    staff_id: int

    class Config:
        from_attributes = True


# =====================================================
# Payroll
# =====================================================
class PayrollRequest(BaseModel):
    period: PayrollPeriod
    week_start_date: Optional[date] = None
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=2000, le=2100)


class PayslipOut(BaseModel):
    staff: StaffSummary
    salary_for_period: Decimal
    total_hours: Decimal
    hourly_pay: Optional[Decimal]
    hourly_amount: Decimal
    gross_pay: Decimal
    deductions: Decimal
    net_pay: Decimal

    class Config:
        from_attributes = True


class PayrollPreviewOut(BaseModel):
    period: PayrollPeriod
    period_start: date
    period_end: date
    staff_count: int
    total_amount: Decimal
    payslips: List[PayslipOut]


class PayrollRunOut(BaseModel):
    id: int
    seller_id: int
    period: PayrollPeriod
    period_start: date
    period_end: date
    status: PayrollStatus
    total_amount: Decimal
    processed_by: Optional[int]
    processed_at: Optional[datetime]
    payslips: List[PayslipOut] = []

    class Config:
        from_attributes = True


class PayrollRunList(BaseModel):
    payroll_runs: List[PayrollRunOut]
    pagination: Pagination
