# tests/test_state_machine.py
from types import SimpleNamespace

import pytest

from marketplace.core.exceptions import InvalidTransition, PermissionDenied, ValidationError
from marketplace.models.order_models import OrderStatus, PaymentMethod
from marketplace.services.order_services.order_state_machine import (
    Actor, OrderAction, allowed_actions, initial_status, normalize_status, plan_transition, resolve_action,
)

BUYER = Actor(user_id=1, role="buyer")
SELLER = Actor(user_id=2, role="seller")
OTHER_SELLER = Actor(user_id=3, role="seller")
ADMIN = Actor(user_id=9, role="admin")


def order_in(status):
    return SimpleNamespace(status=status, buyer_id=1, seller_id=2, driver_id=None)


def test_initial_status_depends_on_payment_method():
    assert initial_status(PaymentMethod.CASH) == OrderStatus.PENDING_PAYMENT
    assert initial_status(PaymentMethod.CARD) == OrderStatus.AWAITING_SELLER_ACCEPTANCE
    assert initial_status("wallet") == OrderStatus.AWAITING_SELLER_ACCEPTANCE


@pytest.mark.parametrize("status", [OrderStatus.PENDING_PAYMENT, OrderStatus.AWAITING_SELLER_ACCEPTANCE])
def test_seller_accepts_before_acceptance(status):
    assert plan_transition(order_in(status), OrderAction.ACCEPT, SELLER) == OrderStatus.PROCESSING


def test_repeated_transition_is_a_no_op():
    assert plan_transition(order_in(OrderStatus.PROCESSING), OrderAction.ACCEPT, SELLER) is None
    assert plan_transition(order_in(OrderStatus.SHIPPED), OrderAction.DISPATCH, SELLER) is None


def test_shipping_requires_processing():
    with pytest.raises(InvalidTransition) as exc:
        plan_transition(order_in(OrderStatus.AWAITING_SELLER_ACCEPTANCE), OrderAction.DISPATCH, SELLER)
    assert exc.value.current_status == OrderStatus.AWAITING_SELLER_ACCEPTANCE
    assert exc.value.target_status == OrderStatus.SHIPPED


def test_delivered_order_cannot_be_cancelled():
    with pytest.raises(InvalidTransition):
        plan_transition(order_in(OrderStatus.DELIVERED), OrderAction.CANCEL, ADMIN)


def test_buyer_cancels_only_before_acceptance():
    assert plan_transition(order_in(OrderStatus.PENDING_PAYMENT), OrderAction.CANCEL, BUYER) == OrderStatus.CANCELLED
    assert plan_transition(order_in(OrderStatus.PAYMENT_FAILED), OrderAction.CANCEL, BUYER) == OrderStatus.CANCELLED
    with pytest.raises(PermissionDenied):
        plan_transition(order_in(OrderStatus.PROCESSING), OrderAction.CANCEL, BUYER)
    assert plan_transition(order_in(OrderStatus.PROCESSING), OrderAction.CANCEL, ADMIN) == OrderStatus.CANCELLED


def test_only_the_owning_seller_may_act():
    with pytest.raises(PermissionDenied):
        plan_transition(order_in(OrderStatus.AWAITING_SELLER_ACCEPTANCE), OrderAction.ACCEPT, OTHER_SELLER)
    with pytest.raises(PermissionDenied):
        plan_transition(order_in(OrderStatus.AWAITING_SELLER_ACCEPTANCE), OrderAction.ACCEPT, BUYER)


def test_refund_only_after_return_or_dispute():
    for status in (OrderStatus.RETURNED, OrderStatus.DISPUTED):
        assert plan_transition(order_in(status), OrderAction.REFUND, ADMIN) == OrderStatus.REFUNDED
    with pytest.raises(InvalidTransition):
        plan_transition(order_in(OrderStatus.DELIVERED), OrderAction.REFUND, ADMIN)


def test_allowed_actions_per_role():
    order = order_in(OrderStatus.AWAITING_SELLER_ACCEPTANCE)
    assert set(allowed_actions(order, SELLER)) == {"ACCEPT", "REJECT"}
    assert allowed_actions(order, BUYER) == ["CANCEL"]
    assert allowed_actions(order, OTHER_SELLER) == []
    assert allowed_actions(order_in(OrderStatus.PROCESSING), BUYER) == []


def test_request_aliases():
    assert resolve_action("accepted") == OrderAction.ACCEPT
    assert resolve_action("PROCESSING") == OrderAction.ACCEPT
    assert resolve_action("cancelled") == OrderAction.CANCEL
    with pytest.raises(ValidationError):
        resolve_action("teleported")


def test_awaiting_payment_is_an_alias_for_pending_payment():
    assert normalize_status("awaiting_payment") == OrderStatus.PENDING_PAYMENT
    with pytest.raises(ValidationError):
        normalize_status("LOST")


def test_buyer_may_withdraw_after_failed_payment():
    assert allowed_actions(order_in(OrderStatus.PAYMENT_FAILED), BUYER) == ["CANCEL"]
