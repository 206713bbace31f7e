# marketplace/services/order_services/order_state_machine.py
"""
Order lifecycle state machine.

The transition table below is the single owner of which status changes are
legal, who may request them and what each one stamps on the order. Callers
load the order under its per-order lock, ask ``plan_transition`` whether the
action applies, then ``apply_transition`` inside the same unit of work.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import IMMEDIATE_PAYMENT_METHODS
from marketplace.core.exceptions import InvalidTransition, PermissionDenied, ValidationError
from marketplace.models.order_models import Order, OrderStatus, OrderStatusHistory, PaymentStatus
from marketplace.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


class OrderAction(str, enum.Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    CONFIRM_PAYMENT = "CONFIRM_PAYMENT"
    FAIL_PAYMENT = "FAIL_PAYMENT"
    DISPATCH = "DISPATCH"
    DELIVER = "DELIVER"
    CANCEL = "CANCEL"
    RETURN = "RETURN"
    DISPUTE = "DISPUTE"
    REFUND = "REFUND"


@dataclass(frozen=True)
class Actor:
    user_id: Optional[int]
    role: str
    username: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(user_id=user.id, role=user.role.lower(), username=user.username)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


SYSTEM_ACTOR = Actor(user_id=None, role="system")


@dataclass(frozen=True)
class Transition:
    action: OrderAction
    sources: FrozenSet[OrderStatus]
    target: OrderStatus
    roles: FrozenSet[str]


PRE_ACCEPTANCE_STATUSES = frozenset({
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.AWAITING_SELLER_ACCEPTANCE,
})

# never accepted by the seller, so still the buyer's to withdraw
BUYER_CANCELLABLE_STATUSES = PRE_ACCEPTANCE_STATUSES | {OrderStatus.PAYMENT_FAILED}

CANCELLABLE_STATUSES = frozenset({
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.AWAITING_SELLER_ACCEPTANCE,
    OrderStatus.PAYMENT_FAILED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
})

TERMINAL_STATUSES = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
    OrderStatus.SELLER_REJECTED,
})


def _t(action, sources, target, roles) -> Transition:
    return Transition(action, frozenset(sources), target, frozenset(roles))


TRANSITIONS: Dict[OrderAction, Transition] = {
    t.action: t for t in (
        _t(OrderAction.ACCEPT, PRE_ACCEPTANCE_STATUSES, OrderStatus.PROCESSING, {"seller"}),
        _t(OrderAction.REJECT, PRE_ACCEPTANCE_STATUSES, OrderStatus.SELLER_REJECTED, {"seller"}),
        _t(OrderAction.CONFIRM_PAYMENT, {OrderStatus.PENDING_PAYMENT}, OrderStatus.AWAITING_SELLER_ACCEPTANCE, {"admin", "system"}),
        _t(OrderAction.FAIL_PAYMENT, {OrderStatus.PENDING_PAYMENT}, OrderStatus.PAYMENT_FAILED, {"admin", "system"}),
        _t(OrderAction.DISPATCH, {OrderStatus.PROCESSING}, OrderStatus.SHIPPED, {"admin", "seller"}),
        _t(OrderAction.DELIVER, {OrderStatus.SHIPPED}, OrderStatus.DELIVERED, {"admin", "seller"}),
        _t(OrderAction.CANCEL, CANCELLABLE_STATUSES, OrderStatus.CANCELLED, {"buyer", "admin"}),
        _t(OrderAction.RETURN, {OrderStatus.DELIVERED}, OrderStatus.RETURNED, {"admin"}),
        _t(OrderAction.DISPUTE, {OrderStatus.DELIVERED}, OrderStatus.DISPUTED, {"admin"}),
        _t(OrderAction.REFUND, {OrderStatus.RETURNED, OrderStatus.DISPUTED}, OrderStatus.REFUNDED, {"admin"}),
    )
}

# Names a client may send in PATCH /orders/{id}/status
_REQUEST_ALIASES: Dict[str, OrderAction] = {
    "ACCEPTED": OrderAction.ACCEPT,
    "ACCEPT": OrderAction.ACCEPT,
    "REJECTED": OrderAction.REJECT,
    "REJECT": OrderAction.REJECT,
    "PAYMENT_CONFIRMED": OrderAction.CONFIRM_PAYMENT,
    "CONFIRM_PAYMENT": OrderAction.CONFIRM_PAYMENT,
    "CANCEL": OrderAction.CANCEL,
    "DELIVER": OrderAction.DELIVER,
    "DISPATCH": OrderAction.DISPATCH,
    "RETURN": OrderAction.RETURN,
    "DISPUTE": OrderAction.DISPUTE,
    "REFUND": OrderAction.REFUND,
}
_REQUEST_ALIASES.update({t.target.value: t.action for t in TRANSITIONS.values()})


def resolve_action(requested: str) -> OrderAction:
    key = (requested or "").strip().upper()
    try:
        return _REQUEST_ALIASES[key]
    except KeyError:
        raise ValidationError(f"Unsupported status change: {requested!r}", field="status")


def normalize_status(value: str) -> OrderStatus:
    """Parse a status filter, treating AWAITING_PAYMENT as PENDING_PAYMENT."""
    key = (value or "").strip().upper()
    if key == "AWAITING_PAYMENT":
        return OrderStatus.PENDING_PAYMENT
    try:
        return OrderStatus(key)
    except ValueError:
        raise ValidationError(f"Unknown order status: {value!r}", field="status")


def initial_status(payment_method) -> OrderStatus:
    method = getattr(payment_method, "value", payment_method)
    if (method or "").upper() in IMMEDIATE_PAYMENT_METHODS:
        return OrderStatus.AWAITING_SELLER_ACCEPTANCE
    return OrderStatus.PENDING_PAYMENT


def _owns(order: Order, actor: Actor) -> bool:
    if actor.role == "seller":
        return order.seller_id == actor.user_id
    if actor.role == "buyer":
        return order.buyer_id == actor.user_id
    return actor.role in {"admin", "system"}


def _role_permits(order: Order, transition: Transition, actor: Actor) -> bool:
    return actor.role in transition.roles and _owns(order, actor)


def _state_permits(order: Order, transition: Transition, actor: Actor) -> bool:
    if order.status not in transition.sources:
        return False
    # buyers may only withdraw an order the seller has not taken on yet
    if transition.action == OrderAction.CANCEL and actor.role == "buyer":
        return order.status in BUYER_CANCELLABLE_STATUSES
    return True


def plan_transition(order: Order, action: OrderAction, actor: Actor) -> Optional[OrderStatus]:
    """
    Validate ``action`` against the order's current state.

    Returns the target status, or ``None`` when the order already sits in the
    target state (a retried request succeeds without side effects).
    Raises ``PermissionDenied`` or ``InvalidTransition`` otherwise.
    """
    transition = TRANSITIONS[action]
    if not _role_permits(order, transition, actor):
        raise PermissionDenied(f"{actor.role} may not {action.value.lower().replace('_', ' ')} this order")

    if order.status == transition.target:
        return None

    if order.status not in transition.sources:
        raise InvalidTransition(order.status, transition.target)

    if not _state_permits(order, transition, actor):
        raise PermissionDenied("Only an admin can cancel an order after the seller has accepted it")

    return transition.target


def allowed_actions(order: Order, actor: Actor) -> List[str]:
    return [
        action.value
        for action, transition in TRANSITIONS.items()
        if _role_permits(order, transition, actor) and _state_permits(order, transition, actor)
    ]


def apply_transition(
    db: AsyncSession,
    order: Order,
    action: OrderAction,
    actor: Actor,
    *,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> OrderStatus:
    """Move ``order`` to the action's target and append the history row."""
    transition = TRANSITIONS[action]
    now = now or utcnow()
    previous = order.status
    reason = reason.strip() if reason else None

    if action == OrderAction.REJECT:
        if not reason:
            raise ValidationError("A rejection reason is required", field="rejection_reason")
        order.rejection_reason = reason
    elif action == OrderAction.ACCEPT:
        order.seller_accepted_at = now
    elif action == OrderAction.DISPATCH:
        if order.driver_id is None:
            raise ValidationError("A driver must be assigned before the order can ship", field="driver_id")
        order.dispatched_at = now
    elif action == OrderAction.DELIVER:
        order.actual_delivery_date = now
    elif action == OrderAction.CANCEL:
        order.cancelled_at = now
        order.cancellation_reason = reason
    elif action == OrderAction.FAIL_PAYMENT:
        order.payment_status = PaymentStatus.FAILED
    elif action == OrderAction.REFUND:
        order.payment_status = PaymentStatus.REFUNDED

    order.status = transition.target
    order.updated_at = now

    db.add(OrderStatusHistory(
        order_id=order.id,
        from_status=previous,
        to_status=transition.target,
        action=action.value,
        actor_id=actor.user_id,
        actor_role=actor.role,
        reason=reason,
        created_at=now,
    ))

    logger.info(
        "Order %s %s -> %s (%s by %s:%s)",
        order.order_number, previous.value, transition.target.value, action.value, actor.role, actor.user_id,
    )
    return transition.target
