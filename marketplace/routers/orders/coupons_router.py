# marketplace/routers/orders/coupons_router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.db import get_db
from marketplace.schemas.coupon_schemas import (
    CouponCreate, CouponUpdate, CouponOut, CouponStats, CouponValidateRequest, CouponValidateResponse
)
from marketplace.services.order_services.coupon_service import (
    create_coupon, get_all_coupons, get_coupon_by_id, update_coupon, delete_coupon, get_coupon_stats
)
from marketplace.services.order_services.order_service import quote_coupon
from marketplace.services.order_services.order_state_machine import Actor
from marketplace.utils.check_roles import require_role
from marketplace.utils.get_user import get_current_user

router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post("", response_model=CouponOut, status_code=status.HTTP_201_CREATED)
@require_role(["seller"])
async def route_create_coupon(
    payload: CouponCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """
    Create a percentage coupon. The code is generated server-side.
    """
    return await create_coupon(db, payload, _user)


@router.get("", response_model=List[CouponOut])
@require_role(["seller", "admin"])
async def route_get_all_coupons(
    active: Optional[bool] = Query(None, description="Filter by active flag"),
    code: Optional[str] = Query(None, description="Filter by code (partial match)"),
    include_deleted: bool = Query(False, description="Include soft-deleted coupons"),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await get_all_coupons(db, Actor.from_user(_user), active=active, include_deleted=include_deleted, code=code)


@router.get("/stats", response_model=CouponStats)
@require_role(["seller", "admin"])
async def route_coupon_stats(db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await get_coupon_stats(db, Actor.from_user(_user))


@router.post("/validate", response_model=CouponValidateResponse)
@require_role(["buyer"])
async def route_validate_coupon(
    payload: CouponValidateRequest,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """
    Check a code against a cart without using it up.
    """
    return await quote_coupon(db, payload.code, payload.items, Actor.from_user(_user))


@router.get("/{coupon_id}", response_model=CouponOut)
@require_role(["seller", "admin"])
async def route_get_coupon(coupon_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await get_coupon_by_id(db, coupon_id, Actor.from_user(_user))


@router.put("/{coupon_id}", response_model=CouponOut)
@require_role(["seller"])
async def route_update_coupon(
    coupon_id: int,
    payload: CouponUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await update_coupon(db, coupon_id, payload, _user)


@router.delete("/{coupon_id}", response_model=CouponOut)
@require_role(["seller"])
async def route_delete_coupon(coupon_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await delete_coupon(db, coupon_id, _user)
