"""BDD tests for cancelling orders and restocking."""

from order_fulfillment.actor import Actor
from order_fulfillment.errors import InvalidTransition
from order_fulfillment.order.transitions import TransitionContext
from pytest_bdd import parsers, scenarios, then, when

scenarios("features/order_cancellation.feature")


@when(parsers.cfparse('staff cancels the order because "{reason}"'), target_fixture="order")
def cancel_order(services, order, reason):
    return services.engine.transition(str(order.id), "cancelled", TransitionContext(reason=reason)).order


@then(parsers.cfparse('the cancellation reason is "{reason}"'))
def cancellation_reason_is(services, order, reason):
    assert services.store.get(order.id).cancellation_reason == reason


@when("the customer cancels the order", target_fixture="order")
def customer_cancels(services, order):
    return services.engine.cancel_for_customer(str(order.id), Actor(user_id=str(order.user_id))).order


@when("the customer attempts to cancel the order")
def customer_attempts_cancel(services, order, error):
    try:
        services.engine.cancel_for_customer(str(order.id), Actor(user_id=str(order.user_id)))
    except InvalidTransition as exc:
        error["exc"] = exc
