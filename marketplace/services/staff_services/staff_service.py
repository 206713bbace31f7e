# marketplace/services/staff_services/staff_service.py
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.models.staff_models import Staff, StaffStatus, TimeLog
from marketplace.utils.activity_helpers import log_user_activity

logger = logging.getLogger(__name__)


def _check_pay_basis(salary, hourly_rate):
    if not ((salary or 0) > 0 or (hourly_rate or 0) > 0):
        raise ValidationError("Either salary or hourly_rate must be greater than zero", field="salary")


# -----------------------
# CREATE
# -----------------------
async def create_staff(db: AsyncSession, payload, _user) -> Staff:
    _check_pay_basis(payload.salary, payload.hourly_rate)

    email = payload.email.strip().lower()
    existing = await db.execute(
        select(Staff.id).where(Staff.seller_id == _user.id, Staff.email == email)
    )
    if existing.scalar_one_or_none():
        raise ValidationError("A staff member with this email already exists", field="email")

    staff = Staff(**payload.model_dump(exclude={"email"}), email=email, seller_id=_user.id, status=StaffStatus.ACTIVE)
    db.add(staff)
    await db.flush()

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Added staff member {staff.full_name} ({staff.role.value})",
    )

    await db.commit()
    await db.refresh(staff)
    return staff


# -----------------------
# READ
# -----------------------
async def list_staff(
    db: AsyncSession,
    _user,
    status: Optional[StaffStatus] = None,
    department: Optional[str] = None,
) -> List[Staff]:
    filters = [Staff.seller_id == _user.id]
    if status:
        filters.append(Staff.status == status)
    if department:
        filters.append(Staff.department == department.upper())

    result = await db.execute(select(Staff).where(and_(*filters)).order_by(Staff.last_name, Staff.first_name))
    return result.scalars().all()


async def get_staff(db: AsyncSession, staff_id: int, _user) -> Staff:
    result = await db.execute(select(Staff).where(Staff.id == staff_id, Staff.seller_id == _user.id))
    staff = result.scalar_one_or_none()
    if not staff:
        raise NotFoundError("Staff", staff_id)
    return staff


# -----------------------
# UPDATE
# -----------------------
async def update_staff(db: AsyncSession, staff_id: int, payload, _user) -> Staff:
    staff = await get_staff(db, staff_id, _user)
    update_data = payload.model_dump(exclude_unset=True)

    _check_pay_basis(
        update_data.get("salary", staff.salary),
        update_data.get("hourly_rate", staff.hourly_rate),
    )
    if "email" in update_data and update_data["email"]:
        update_data["email"] = update_data["email"].strip().lower()

    if update_data.get("status") == StaffStatus.INACTIVE and staff.status != StaffStatus.INACTIVE:
        staff.deactivated_at = date.today()
    elif update_data.get("status") == StaffStatus.ACTIVE:
        staff.deactivated_at = None

    for key, value in update_data.items():
        setattr(staff, key, value)

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Updated staff member {staff.full_name} (ID: {staff.id})",
    )

    await db.commit()
    await db.refresh(staff)
    return staff


# -----------------------
# DEACTIVATE
# -----------------------
async def deactivate_staff(db: AsyncSession, staff_id: int, _user) -> Staff:
    """Staff are never hard-deleted; payslips keep pointing at them."""
    staff = await get_staff(db, staff_id, _user)
    if staff.status == StaffStatus.INACTIVE:
        return staff

    staff.status = StaffStatus.INACTIVE
    staff.deactivated_at = date.today()

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Deactivated staff member {staff.full_name} (ID: {staff.id})",
    )

    await db.commit()
    await db.refresh(staff)
    return staff


# -----------------------
# TIME LOGS
# -----------------------
async def add_time_log(db: AsyncSession, staff_id: int, payload, _user) -> TimeLog:
    staff = await get_staff(db, staff_id, _user)
    if not (0 < payload.hours <= 24):
        raise ValidationError("Hours must be between 0 and 24", field="hours")
    if payload.work_date < staff.start_date:
        raise ValidationError("Cannot log time before the staff start date", field="work_date")

    log = TimeLog(staff_id=staff.id, work_date=payload.work_date, hours=payload.hours, note=payload.note)
    db.add(log)
    await db.flush()

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Logged {payload.hours}h for {staff.full_name} on {payload.work_date.isoformat()}",
    )

    await db.commit()
    await db.refresh(log)
    return log


async def list_time_logs(db: AsyncSession, staff_id: int, _user) -> List[TimeLog]:
    staff = await get_staff(db, staff_id, _user)
    result = await db.execute(
        select(TimeLog).where(TimeLog.staff_id == staff.id).order_by(TimeLog.work_date, TimeLog.id)
    )
    return result.scalars().all()
