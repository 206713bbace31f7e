# marketplace/routers/staff/staff_router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.db import get_db
from marketplace.models.staff_models import StaffStatus
from marketplace.schemas.staff_schemas import (
    StaffCreate, StaffUpdate, StaffOut, TimeLogCreate, TimeLogOut,
    PayrollRequest, PayrollPreviewOut, PayrollRunOut, PayrollRunList
)
from marketplace.services.staff_services.payroll_service import (
    preview_payroll, process_payroll, list_payroll_runs, get_payroll_run
)
from marketplace.services.staff_services.staff_service import (
    create_staff, list_staff, get_staff, update_staff, deactivate_staff, add_time_log, list_time_logs
)
from marketplace.utils.check_roles import require_role
from marketplace.utils.get_user import get_current_user

router = APIRouter(prefix="/staff", tags=["Staff & Payroll"])


# -----------------------
# PAYROLL
# -----------------------
@router.get("/payroll", response_model=PayrollRunList)
@require_role(["seller"])
async def route_list_payroll_runs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    runs, pagination = await list_payroll_runs(db, _user, page=page, limit=limit)
    return {"payroll_runs": runs, "pagination": pagination}


@router.post("/payroll/preview", response_model=PayrollPreviewOut)
@require_role(["seller"])
async def route_preview_payroll(
    payload: PayrollRequest,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """
    Dry run: the payslips a process call would write for this period.
    """
    preview = await preview_payroll(db, payload, _user)
    return PayrollPreviewOut.model_validate(preview, from_attributes=True)


@router.post("/payroll/process", response_model=PayrollRunOut, status_code=status.HTTP_201_CREATED)
@require_role(["seller"])
async def route_process_payroll(
    payload: PayrollRequest,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await process_payroll(db, payload, _user)


@router.get("/payroll/{run_id}", response_model=PayrollRunOut)
@require_role(["seller"])
async def route_get_payroll_run(run_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await get_payroll_run(db, run_id, _user)


# -----------------------
# STAFF
# -----------------------
@router.post("", response_model=StaffOut, status_code=status.HTTP_201_CREATED)
@require_role(["seller"])
async def route_create_staff(payload: StaffCreate, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await create_staff(db, payload, _user)


@router.get("", response_model=List[StaffOut])
@require_role(["seller"])
async def route_list_staff(
    status: Optional[StaffStatus] = Query(None),
    department: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await list_staff(db, _user, status=status, department=department)


@router.get("/{staff_id}", response_model=StaffOut)
@require_role(["seller"])
async def route_get_staff(staff_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await get_staff(db, staff_id, _user)


@router.put("/{staff_id}", response_model=StaffOut)
@require_role(["seller"])
async def route_update_staff(
    staff_id: int,
    payload: StaffUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await update_staff(db, staff_id, payload, _user)


@router.delete("/{staff_id}", response_model=StaffOut)
@require_role(["seller"])
async def route_deactivate_staff(staff_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await deactivate_staff(db, staff_id, _user)


# -----------------------
# TIME LOGS
# -----------------------
@router.post("/{staff_id}/time-logs", response_model=TimeLogOut, status_code=status.HTTP_201_CREATED)
@require_role(["seller"])
async def route_add_time_log(
    staff_id: int,
    payload: TimeLogCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await add_time_log(db, staff_id, payload, _user)


@router.get("/{staff_id}/time-logs", response_model=List[TimeLogOut])
@require_role(["seller"])
async def route_list_time_logs(staff_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await list_time_logs(db, staff_id, _user)
