# marketplace/services/order_services/dispatch_service.py
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import DEFAULT_DELIVERY_DAYS
from marketplace.core.exceptions import ValidationError
from marketplace.core.locks import driver_key, order_key, serialized_unit_of_work
from marketplace.models.order_models import Order
from marketplace.services.order_services.commission_service import settle_order
from marketplace.services.order_services.driver_service import claim_driver, release_driver
from marketplace.services.order_services.order_lookup import load_order_for_update
from marketplace.services.order_services.order_state_machine import (
    Actor, OrderAction, apply_transition, plan_transition
)
from marketplace.utils.activity_helpers import log_user_activity
from marketplace.utils.datetime_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


async def dispatch_order(
    db: AsyncSession,
    order_id: int,
    driver_id: int,
    actor: Actor,
    estimated_delivery_date: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Order:
    """
    Hand a PROCESSING order to a driver and move it to SHIPPED.

    The order and the driver are locked together; the driver is claimed with
    an AVAILABLE -> BUSY check-and-set, so one driver is never on two runs.
    """
    async with serialized_unit_of_work(db, order_key(order_id), driver_key(driver_id)):
        order = await load_order_for_update(db, order_id, actor)
        if plan_transition(order, OrderAction.DISPATCH, actor) is None:
            logger.info("Order %s already shipped with driver %s", order.order_number, order.driver_id)
            return order

        now = utcnow()
        eta = as_utc(estimated_delivery_date)
        if eta is not None and eta < now:
            raise ValidationError("Estimated delivery date cannot be in the past", field="estimated_delivery_date")

        driver = await claim_driver(db, driver_id)
        order.driver_id = driver.id
        order.driver = driver
        order.estimated_delivery_date = eta or now + timedelta(days=DEFAULT_DELIVERY_DAYS)
        order.dispatch_notes = notes.strip() if notes else None

        apply_transition(db, order, OrderAction.DISPATCH, actor, now=now)
        await log_user_activity(
            db,
            user_id=actor.user_id,
            username=actor.username,
            message=f"Dispatched order {order.order_number} with driver {driver.id}",
        )
        await db.flush()

    logger.info("Order %s dispatched with driver %s, eta %s", order.order_number, driver_id, order.estimated_delivery_date)
    return order


async def mark_delivered(db: AsyncSession, order_id: int, actor: Actor) -> Order:
    """SHIPPED -> DELIVERED; frees the driver and settles the seller payout. Repeat calls are no-ops."""
    async with serialized_unit_of_work(db, order_key(order_id)):
        order = await load_order_for_update(db, order_id, actor)
        if plan_transition(order, OrderAction.DELIVER, actor) is None:
            return order

        apply_transition(db, order, OrderAction.DELIVER, actor)
        await release_driver(db, order.driver_id)
        await settle_order(db, order)
        await log_user_activity(
            db,
            user_id=actor.user_id,
            username=actor.username,
            message=f"Marked order {order.order_number} as delivered",
        )
        await db.flush()

    return order
