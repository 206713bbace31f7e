# tests/test_payroll.py
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from marketplace.core.db import AsyncSessionLocal
from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.models.staff_models import Department, PayrollPeriod, PayrollStatus, StaffRole, StaffStatus
from marketplace.schemas.staff_schemas import PayrollPreviewOut, PayrollRequest, StaffCreate, TimeLogCreate
from marketplace.services.staff_services.payroll_service import (
    get_payroll_run, list_payroll_runs, preview_payroll, process_payroll, resolve_period,
)
from marketplace.services.staff_services.staff_service import add_time_log, create_staff, list_staff

WEEK = PayrollRequest(period=PayrollPeriod.WEEKLY, week_start_date=date(2026, 3, 2))


async def hire(db, seller, first_name, start_date=date(2026, 1, 1), **pay):
    return await create_staff(db, StaffCreate(
        first_name=first_name,
        last_name="Staff",
        email=f"{first_name.lower()}@example.com",
        department=Department.WAREHOUSE,
        role=StaffRole.STOCK_MANAGER,
        start_date=start_date,
        **pay,
    ), seller)


async def crew(db, seller):
    salaried = await hire(db, seller, "Sal", salary=Decimal("52000"))
    hourly = await hire(db, seller, "Hou", hourly_rate=Decimal("20"))
    await hire(db, seller, "Late", start_date=date(2026, 4, 1), salary=Decimal("52000"))
    gone = await hire(db, seller, "Gone", salary=Decimal("52000"))
    gone.status = StaffStatus.INACTIVE
    gone.deactivated_at = date(2026, 2, 1)
    await db.commit()

    for day, hours in ((date(2026, 3, 2), "8"), (date(2026, 3, 4), "4"), (date(2026, 3, 10), "10")):
        await add_time_log(db, hourly.id, TimeLogCreate(work_date=day, hours=Decimal(hours)), seller)
    return salaried, hourly


def test_periods():
    assert resolve_period(PayrollPeriod.WEEKLY, date(2026, 3, 2)) == (date(2026, 3, 2), date(2026, 3, 8))
    assert resolve_period(PayrollPeriod.BIWEEKLY, date(2026, 3, 2)) == (date(2026, 3, 2), date(2026, 3, 15))
    assert resolve_period(PayrollPeriod.MONTHLY, month=2, year=2028) == (date(2028, 2, 1), date(2028, 2, 29))
    with pytest.raises(ValidationError):
        resolve_period(PayrollPeriod.WEEKLY)
    with pytest.raises(ValidationError):
        resolve_period(PayrollPeriod.MONTHLY, month=2)


async def test_staff_needs_a_pay_basis(db, seller):
    with pytest.raises(ValidationError):
        await hire(db, seller, "Nobody")


async def test_duplicate_email_rejected(db, seller):
    await hire(db, seller, "Sal", salary=Decimal("1000"))
    with pytest.raises(ValidationError):
        await hire(db, seller, "SAL", salary=Decimal("1000"))


async def test_time_log_before_start_date_rejected(db, seller):
    late = await hire(db, seller, "Late", start_date=date(2026, 4, 1), hourly_rate=Decimal("10"))
    with pytest.raises(ValidationError):
        await add_time_log(db, late.id, TimeLogCreate(work_date=date(2026, 3, 31), hours=Decimal("2")), seller)


async def test_staff_are_private_to_their_seller(db, seller, other_seller):
    await hire(db, seller, "Sal", salary=Decimal("1000"))
    assert await list_staff(db, other_seller) == []


async def test_preview_matches_process(db, seller):
    salaried, hourly = await crew(db, seller)

    preview = await preview_payroll(db, WEEK, seller)
    by_staff = {d.staff.id: d for d in preview["payslips"]}
    assert preview["staff_count"] == 2
    assert by_staff[salaried.id].salary_for_period == Decimal("1000.00")
    assert by_staff[hourly.id].total_hours == Decimal("12.00")
    assert by_staff[hourly.id].hourly_amount == Decimal("240.00")
    assert preview["total_amount"] == Decimal("1240.00")
    assert PayrollPreviewOut.model_validate(preview, from_attributes=True).staff_count == 2

    run = await process_payroll(db, WEEK, seller)
    assert run.status == PayrollStatus.PROCESSED
    assert run.total_amount == preview["total_amount"]
    assert sorted(p.net_pay for p in run.payslips) == [Decimal("240.00"), Decimal("1000.00")]


async def test_period_processed_once(db, seller):
    await crew(db, seller)
    await process_payroll(db, WEEK, seller)
    with pytest.raises(ValidationError):
        await process_payroll(db, WEEK, seller)

    runs, pagination = await list_payroll_runs(db, seller)
    assert len(runs) == 1
    assert pagination["total"] == 1


async def test_no_staff_no_run(db, seller):
    with pytest.raises(ValidationError):
        await process_payroll(db, WEEK, seller)


async def test_runs_are_private_to_their_seller(db, seller, other_seller):
    await crew(db, seller)
    run = await process_payroll(db, WEEK, seller)
    assert (await get_payroll_run(db, run.id, seller)).id == run.id
    with pytest.raises(NotFoundError):
        await get_payroll_run(db, run.id, SimpleNamespace(id=other_seller.id))


async def test_processed_run_and_payslips_are_immutable(db, seller):
    await crew(db, seller)
    run = await process_payroll(db, WEEK, seller)
    run_id = run.id

    run.total_amount = Decimal("1.00")
    with pytest.raises(ValidationError):
        await db.commit()
    await db.rollback()

    async with AsyncSessionLocal() as session:
        run = await get_payroll_run(session, run_id, seller)
        run.payslips[0].net_pay = Decimal("0.00")
        with pytest.raises(ValidationError):
            await session.commit()
        await session.rollback()
