# marketplace/routers/orders/drivers_router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.db import get_db
from marketplace.models.driver_models import DriverStatus
from marketplace.schemas.driver_schemas import DriverCreate, DriverOut, DriverStatusUpdate
from marketplace.services.order_services.driver_service import (
    create_driver, list_drivers, get_driver, set_driver_status
)
from marketplace.utils.check_roles import require_role
from marketplace.utils.get_user import get_current_user

router = APIRouter(prefix="/drivers", tags=["Drivers"])


@router.post("", response_model=DriverOut, status_code=status.HTTP_201_CREATED)
@require_role(["admin"])
async def route_create_driver(payload: DriverCreate, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await create_driver(db, payload, _user)


@router.get("", response_model=List[DriverOut])
@require_role(["admin", "seller"])
async def route_list_drivers(
    status: Optional[DriverStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await list_drivers(db, status)


@router.get("/{driver_id}", response_model=DriverOut)
@require_role(["admin", "seller"])
async def route_get_driver(driver_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await get_driver(db, driver_id)


@router.patch("/{driver_id}/status", response_model=DriverOut)
@require_role(["admin"])
async def route_set_driver_status(
    driver_id: int,
    payload: DriverStatusUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await set_driver_status(db, driver_id, payload.status, _user)
