# marketplace/routers/orders/orders_router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.db import get_db
from marketplace.models.order_models import Order
from marketplace.schemas.order_schemas import (
    CheckoutRequest, OrderOut, OrderListResponse, StatusUpdate, CancelRequest,
    FulfillmentUpdate, DispatchRequest, ItemQuantityUpdate, StatusHistoryOut
)
from marketplace.schemas.payment_schemas import OrderPaymentResponse
from marketplace.services.order_services.dispatch_service import dispatch_order
from marketplace.services.order_services.order_service import (
    checkout, list_orders, get_order, get_order_history, update_item_quantity,
    change_status, cancel_order, update_fulfillment
)
from marketplace.services.order_services.order_state_machine import Actor, allowed_actions
from marketplace.services.order_services.payment_ledger import get_payment_summary
from marketplace.utils.check_roles import require_role
from marketplace.utils.get_user import get_current_user

router = APIRouter(prefix="/orders", tags=["Orders"])


def render_order(order: Order, actor: Actor) -> OrderOut:
    """Order plus the actions ``actor`` may take on it right now."""
    return OrderOut.model_validate(order).model_copy(update={"allowed_actions": allowed_actions(order, actor)})


# -----------------------
# CHECKOUT
# -----------------------
@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
@require_role(["buyer"])
async def route_checkout(
    payload: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    actor = Actor.from_user(_user)
    order = await checkout(db, payload, actor)
    return render_order(order, actor)


# -----------------------
# READ
# -----------------------
@router.get("", response_model=OrderListResponse)
async def route_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, description="Filter by order status"),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    actor = Actor.from_user(_user)
    orders, pagination = await list_orders(db, actor, page=page, limit=limit, status=status)
    return {"orders": [render_order(o, actor) for o in orders], "pagination": pagination}


@router.get("/{order_id}", response_model=OrderOut)
async def route_get_order(order_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    actor = Actor.from_user(_user)
    return render_order(await get_order(db, order_id, actor), actor)


@router.get("/{order_id}/payment", response_model=OrderPaymentResponse)
async def route_get_order_payment(order_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    order, summary, history = await get_payment_summary(db, order_id, Actor.from_user(_user))
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "currency": order.currency,
        "payment_status": order.payment_status.value,
        "payment": summary.as_dict(),
        "payment_history": history,
    }


@router.get("/{order_id}/history", response_model=List[StatusHistoryOut])
async def route_get_order_history(order_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await get_order_history(db, order_id, Actor.from_user(_user))


# -----------------------
# STATUS
# -----------------------
@router.patch("/{order_id}/status", response_model=OrderOut)
async def route_change_status(
    order_id: int,
    payload: StatusUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """
    Seller accept/reject, buyer/admin cancel, admin payment and post-delivery actions.
    Re-sending a status the order already has succeeds without changes.
    """
    actor = Actor.from_user(_user)
    order = await change_status(db, order_id, payload.status, actor, reason=payload.rejection_reason or payload.reason)
    return render_order(order, actor)


@router.post("/{order_id}/cancel", response_model=OrderOut)
async def route_cancel_order(
    order_id: int,
    payload: Optional[CancelRequest] = None,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    actor = Actor.from_user(_user)
    order = await cancel_order(db, order_id, actor, reason=payload.reason if payload else None)
    return render_order(order, actor)


@router.patch("/{order_id}/fulfillment", response_model=OrderOut)
@require_role(["admin", "seller"])
async def route_update_fulfillment(
    order_id: int,
    payload: FulfillmentUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    actor = Actor.from_user(_user)
    order = await update_fulfillment(db, order_id, payload.status, actor, payload.estimated_delivery_date)
    return render_order(order, actor)


@router.post("/{order_id}/dispatch", response_model=OrderOut)
@require_role(["admin", "seller"])
async def route_dispatch_order(
    order_id: int,
    payload: DispatchRequest,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    actor = Actor.from_user(_user)
    order = await dispatch_order(
        db, order_id, payload.driver_id, actor,
        estimated_delivery_date=payload.estimated_delivery_date,
        notes=payload.dispatch_notes,
    )
    return render_order(order, actor)


# -----------------------
# ITEMS
# -----------------------
@router.patch("/{order_id}/items/{item_id}", response_model=OrderOut)
@require_role(["buyer"])
async def route_update_item_quantity(
    order_id: int,
    item_id: int,
    payload: ItemQuantityUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    actor = Actor.from_user(_user)
    order = await update_item_quantity(db, order_id, item_id, payload.quantity, actor)
    return render_order(order, actor)
