# marketplace/routers/orders/commission_router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.db import get_db
from marketplace.models.commission_models import PayoutStatus
from marketplace.schemas.commission_schemas import (
    CommissionRateIn, CommissionRateOut, PayoutOut, ProcessPayoutsRequest
)
from marketplace.services.order_services.commission_service import (
    list_commission_rates, upsert_commission_rate, list_payouts, process_payouts
)
from marketplace.services.order_services.order_state_machine import Actor
from marketplace.utils.check_roles import require_role
from marketplace.utils.get_user import get_current_user

router = APIRouter(tags=["Commission & Payouts"])


# -----------------------
# COMMISSION RATES
# -----------------------
@router.get("/commission-rates", response_model=List[CommissionRateOut])
@require_role(["admin"])
async def route_list_commission_rates(
    seller_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await list_commission_rates(db, seller_id)


@router.post("/commission-rates", response_model=CommissionRateOut)
@require_role(["admin"])
async def route_set_commission_rate(
    payload: CommissionRateIn,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """
    Create or replace the rate for a (seller, category) scope; either may be omitted as a wildcard.
    Only affects orders placed afterwards.
    """
    return await upsert_commission_rate(db, payload.seller_id, payload.category, payload.rate, _user)


# -----------------------
# PAYOUTS
# -----------------------
@router.get("/payouts", response_model=List[PayoutOut])
@require_role(["admin", "seller"])
async def route_list_payouts(
    status: Optional[PayoutStatus] = Query(None),
    seller_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await list_payouts(db, Actor.from_user(_user), status=status, seller_id=seller_id)


@router.post("/payouts/process", response_model=List[PayoutOut])
@require_role(["admin"])
async def route_process_payouts(
    payload: ProcessPayoutsRequest,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await process_payouts(db, payload.payout_ids, _user)
