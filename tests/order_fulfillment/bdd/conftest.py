"""Shared BDD fixtures and step definitions for order fulfillment."""

import pytest
from order_fulfillment.actor import Actor
from order_fulfillment.cart.port import CartLine
from order_fulfillment.errors import InvalidTransition
from order_fulfillment.order.transitions import TransitionContext
from pytest_bdd import given, parsers, then, when

_STAFF = Actor(user_id="staff-bdd", role="staff")


@pytest.fixture()
def error():
    """Container for captured transition errors."""
    return {"exc": None}


@pytest.fixture()
def outcome():
    return {"value": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a cash-on-delivery order for {quantity:d} "{product_id}"'),
    target_fixture="order",
)
def cod_order(services, address, quantity, product_id):
    services.carts.put("cust-bdd", [CartLine(product_id=product_id, quantity=quantity)])
    return services.checkout.checkout("cust-bdd", address, "cash_on_delivery").order


@given(parsers.cfparse('an order in "{status}" status'), target_fixture="order")
def order_in_status(place_order, status):
    return place_order(status=status, payment_method="cash_on_delivery")


@given(parsers.cfparse("{hours:d} hours have passed"))
def hours_pass(clock, hours):
    clock.advance(hours=hours)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('staff moves the order to "{status}"'), target_fixture="order")
@when(parsers.cfparse('staff moves the order to "{status}"'), target_fixture="order")
def move_order(services, order, outcome, status):
    result = services.engine.transition(str(order.id), status, TransitionContext(actor=_STAFF))
    outcome["value"] = result.outcome.value
    return result.order


@when(parsers.cfparse('staff attempts to move the order to "{status}"'))
def attempt_move(services, order, error, status):
    try:
        services.engine.transition(str(order.id), status, TransitionContext(actor=_STAFF))
    except InvalidTransition as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(services, order, status):
    assert services.store.get(order.id).status == status


@then(parsers.cfparse('the outcome is "{value}"'))
def outcome_is(outcome, value):
    assert outcome["value"] == value


@then("the transition is rejected")
def transition_rejected(error):
    assert error["exc"] is not None, "Expected an invalid transition but none was raised"
    assert isinstance(error["exc"], InvalidTransition)


@given(parsers.cfparse('"{product_id}" has {stock:d} units in stock'))
@then(parsers.cfparse('"{product_id}" has {stock:d} units in stock'))
def stock_is(services, product_id, stock):
    assert services.inventory.get_product(product_id).stock == stock
