# marketplace/services/order_services/order_lookup.py
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import NotFoundError
from marketplace.models.order_models import Order
from marketplace.services.order_services.order_state_machine import Actor


def can_view(order: Order, actor: Actor) -> bool:
    if actor.role in {"admin", "system"}:
        return True
    if actor.role == "seller":
        return order.seller_id == actor.user_id
    if actor.role == "buyer":
        return order.buyer_id == actor.user_id
    return False


async def load_order_for_update(db: AsyncSession, order_id: int, actor: Actor | None = None) -> Order:
    """Fetch the order row locked for the rest of the unit of work."""
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if not order or (actor is not None and not can_view(order, actor)):
        raise NotFoundError("Order", order_id)
    return order


async def get_visible_order(db: AsyncSession, order_id: int, actor: Actor) -> Order:
    result = await db.execute(select(Order).where(Order.id == order_id))
    order = result.scalar_one_or_none()
    if not order or not can_view(order, actor):
        raise NotFoundError("Order", order_id)
    return order
