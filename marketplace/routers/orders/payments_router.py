# marketplace/routers/orders/payments_router.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.db import get_db
from marketplace.schemas.payment_schemas import RecordCashPayment, RecordPaymentResponse
from marketplace.services.order_services.order_state_machine import Actor
from marketplace.services.order_services.payment_ledger import record_payment
from marketplace.utils.check_roles import require_role
from marketplace.utils.get_user import get_current_user

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/record-cash", response_model=RecordPaymentResponse, status_code=status.HTTP_201_CREATED)
@require_role(["admin", "seller"])
async def route_record_cash_payment(
    payload: RecordCashPayment,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """
    Record cash collected for an order (up front or on delivery).
    Fails with 409 when the amount exceeds the remaining balance.
    """
    actor = Actor.from_user(_user)
    payment, summary = await record_payment(
        db,
        payload.order_id,
        payload.amount,
        actor,
        method="CASH",
        recorded_by="admin" if actor.is_admin else payload.recorded_by,
        notes=payload.notes,
    )
    return {
        "msg": f"Payment of {payment.amount} recorded.",
        "data": payment,
        "payment": summary.as_dict(),
    }