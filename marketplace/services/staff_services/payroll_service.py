# marketplace/services/staff_services/payroll_service.py
import calendar
import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import PAYROLL_DEDUCTION_RATE
from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.core.locks import payroll_key, serialized_unit_of_work
from marketplace.models.staff_models import (
    PayrollPeriod, PayrollRun, PayrollStatus, Payslip, Staff, StaffStatus, TimeLog
)
from marketplace.utils.activity_helpers import log_user_activity
from marketplace.utils.datetime_utils import utcnow
from marketplace.utils.decimal_utils import ZERO, sum_amounts, to_decimal

logger = logging.getLogger(__name__)

# annual salary is spread over this many pay periods
PERIODS_PER_YEAR = {
    PayrollPeriod.WEEKLY: 52,
    PayrollPeriod.BIWEEKLY: 26,
    PayrollPeriod.MONTHLY: 12,
}


@dataclass(frozen=True)
class PayslipDraft:
    staff: Staff
    salary_for_period: Decimal
    total_hours: Decimal
    hourly_pay: Optional[Decimal]
    hourly_amount: Decimal
    gross_pay: Decimal
    deductions: Decimal
    net_pay: Decimal


def resolve_period(
    period: PayrollPeriod,
    week_start_date: Optional[date] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
) -> Tuple[date, date]:
    if period in (PayrollPeriod.WEEKLY, PayrollPeriod.BIWEEKLY):
        if week_start_date is None:
            raise ValidationError("week_start_date is required for weekly and biweekly payroll", field="week_start_date")
        days = 7 if period == PayrollPeriod.WEEKLY else 14
        return week_start_date, week_start_date + timedelta(days=days - 1)

    if not month or not year:
        raise ValidationError("month and year are required for monthly payroll", field="month")
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12", field="month")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def is_active_in_period(staff: Staff, period_start: date, period_end: date) -> bool:
    if staff.start_date > period_end:
        return False
    if staff.status == StaffStatus.ACTIVE:
        return True
    return staff.deactivated_at is not None and staff.deactivated_at >= period_start


def compute_payslip(staff: Staff, period: PayrollPeriod, hours) -> PayslipDraft:
    hours = to_decimal(hours or ZERO)
    salary_for_period = ZERO
    if staff.salary:
        salary_for_period = to_decimal(Decimal(str(staff.salary)) / PERIODS_PER_YEAR[period])

    hourly_pay = to_decimal(staff.hourly_rate) if staff.hourly_rate else None
    hourly_amount = to_decimal(hours * hourly_pay) if hourly_pay else to_decimal(ZERO)

    gross = to_decimal(salary_for_period + hourly_amount)
    deductions = to_decimal(gross * PAYROLL_DEDUCTION_RATE)
    return PayslipDraft(
        staff=staff,
        salary_for_period=to_decimal(salary_for_period),
        total_hours=hours,
        hourly_pay=hourly_pay,
        hourly_amount=hourly_amount,
        gross_pay=gross,
        deductions=deductions,
        net_pay=to_decimal(gross - deductions),
    )


async def _hours_by_staff(db: AsyncSession, staff_ids: List[int], start: date, end: date) -> Dict[int, Decimal]:
    if not staff_ids:
        return {}
    result = await db.execute(
        select(TimeLog.staff_id, func.sum(TimeLog.hours))
        .where(TimeLog.staff_id.in_(staff_ids), TimeLog.work_date >= start, TimeLog.work_date <= end)
        .group_by(TimeLog.staff_id)
    )
    return {staff_id: Decimal(str(hours)) for staff_id, hours in result.all()}


async def draft_payroll(db: AsyncSession, seller_id: int, period: PayrollPeriod, start: date, end: date) -> List[PayslipDraft]:
    result = await db.execute(select(Staff).where(Staff.seller_id == seller_id).order_by(Staff.id))
    staff = [s for s in result.scalars().all() if is_active_in_period(s, start, end)]
    hours = await _hours_by_staff(db, [s.id for s in staff], start, end)
    return [compute_payslip(s, period, hours.get(s.id)) for s in staff]


# -----------------------
# PREVIEW / PROCESS
# -----------------------
async def preview_payroll(db: AsyncSession, payload, _user) -> dict:
    """Same numbers ``process_payroll`` would persist, without writing anything."""
    period = PayrollPeriod(payload.period)
    start, end = resolve_period(period, payload.week_start_date, payload.month, payload.year)
    drafts = await draft_payroll(db, _user.id, period, start, end)
    return {
        "period": period,
        "period_start": start,
        "period_end": end,
        "staff_count": len(drafts),
        "total_amount": sum_amounts(d.net_pay for d in drafts),
        "payslips": drafts,
    }


async def process_payroll(db: AsyncSession, payload, _user) -> PayrollRun:
    period = PayrollPeriod(payload.period)
    start, end = resolve_period(period, payload.week_start_date, payload.month, payload.year)

    async with serialized_unit_of_work(db, payroll_key(_user.id)):
        existing = await db.execute(
            select(PayrollRun.id).where(
                PayrollRun.seller_id == _user.id,
                PayrollRun.period == period,
                PayrollRun.period_start == start,
            )
        )
        if existing.scalar_one_or_none():
            raise ValidationError(
                f"Payroll for {period.value.lower()} period starting {start.isoformat()} was already processed",
                field="period",
            )

        drafts = await draft_payroll(db, _user.id, period, start, end)
        if not drafts:
            raise ValidationError("No active staff in this period", field="period")

        now = utcnow()
        # built in one go: a PROCESSED run is never updated afterwards
        run = PayrollRun(
            seller_id=_user.id,
            period=period,
            period_start=start,
            period_end=end,
            status=PayrollStatus.PROCESSED,
            total_amount=sum_amounts(d.net_pay for d in drafts),
            processed_by=_user.id,
            processed_at=now,
            created_at=now,
            payslips=[
                Payslip(
                    staff_id=d.staff.id,
                    staff=d.staff,
                    salary_for_period=d.salary_for_period,
                    total_hours=d.total_hours,
                    hourly_pay=d.hourly_pay,
                    hourly_amount=d.hourly_amount,
                    gross_pay=d.gross_pay,
                    deductions=d.deductions,
                    net_pay=d.net_pay,
                    created_at=now,
                )
                for d in drafts
            ],
        )
        db.add(run)
        await db.flush()

        await log_user_activity(
            db=db,
            user_id=_user.id,
            username=_user.username,
            message=f"Processed {period.value.lower()} payroll {start.isoformat()}..{end.isoformat()} "
                    f"for {len(drafts)} staff ({run.total_amount})",
        )

    logger.info("Payroll run %s processed for seller %s: %s payslips, total %s", run.id, _user.id, len(drafts), run.total_amount)
    return run


# -----------------------
# READ
# -----------------------
async def list_payroll_runs(db: AsyncSession, _user, page: int = 1, limit: int = 20) -> Tuple[List[PayrollRun], dict]:
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    total = (await db.execute(
        select(func.count(PayrollRun.id)).where(PayrollRun.seller_id == _user.id)
    )).scalar() or 0
    result = await db.execute(
        select(PayrollRun)
        .where(PayrollRun.seller_id == _user.id)
        .order_by(PayrollRun.period_start.desc(), PayrollRun.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    pagination = {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if total else 0}
    return result.scalars().all(), pagination


async def get_payroll_run(db: AsyncSession, run_id: int, _user) -> PayrollRun:
    result = await db.execute(
        select(PayrollRun).where(PayrollRun.id == run_id, PayrollRun.seller_id == _user.id)
    )
    run = result.scalar_one_or_none()
    if not run:
        raise NotFoundError("Payroll run", run_id)
    return run
