"""Mobile-money callback handling.

The gateway calls back once per push request with the outcome. Callbacks can
arrive more than once and out of order with sweeps or staff actions, so:

- a transaction reference that was already applied is ignored;
- an order whose payment is no longer pending is ignored;
- the payment write is conditioned on the order still being pending with a
  pending payment, and the confirmation goes through the transition engine.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError

from order_fulfillment.actor import SYSTEM_ACTOR
from order_fulfillment.cart.port import CartStore
from order_fulfillment.order.order import Order, OrderStatus, PaymentStatus
from order_fulfillment.order.store import OrderStore
from order_fulfillment.order.transitions import TransitionContext, TransitionEngine, can_transition
from order_fulfillment.utils.clock import Clock, utc_now

logger = structlog.get_logger(__name__)

PAYMENT_CONFIRMED_NOTE = "Mobile money payment confirmed"


@dataclass(frozen=True)
class PaymentCallback:
    reference: str
    success: bool
    transaction_ref: str | None = None
    result_code: str | None = None
    result_desc: str | None = None


@dataclass
class CallbackResult:
    order: Order
    applied: bool


class PaymentCallbackHandler:
    def __init__(self, store: OrderStore, engine: TransitionEngine, carts: CartStore, clock: Clock = utc_now):
        self.store = store
        self.engine = engine
        self.carts = carts
        self.clock = clock

    def handle(self, callback: PaymentCallback) -> CallbackResult:
        """Apply a gateway callback to the order it refers to.

        Raises:
            ObjectNotFoundError: no order carries ``callback.reference``.
        """
        order = self.store.find_by_payment_reference(callback.reference)
        if order is None:
            raise ObjectNotFoundError(f"No order found for payment reference {callback.reference}")

        if callback.transaction_ref and order.payment_transaction_ref == callback.transaction_ref:
            logger.info("Duplicate payment callback ignored", order_id=str(order.id), transaction_ref=callback.transaction_ref)
            return CallbackResult(order=order, applied=False)
        if order.payment_status != PaymentStatus.PENDING.value:
            logger.info(
                "Payment callback for settled order ignored",
                order_id=str(order.id),
                payment_status=order.payment_status,
            )
            return CallbackResult(order=order, applied=False)

        expected_status = order.status
        now = self.clock()
        if callback.success:
            order.mark_payment(PaymentStatus.COMPLETED.value, now, transaction_ref=callback.transaction_ref)
        else:
            order.mark_payment(PaymentStatus.FAILED.value, now, transaction_ref=callback.transaction_ref)

        if not self.store.save_if_status(order, expected_status, payment_status=PaymentStatus.PENDING.value):
            logger.info("Payment callback lost a race, ignored", order_id=str(order.id))
            return CallbackResult(order=self.store.get(order.id), applied=False)

        if not callback.success:
            logger.warning(
                "Mobile money payment failed",
                order_id=str(order.id),
                result_code=callback.result_code,
                result_desc=callback.result_desc,
            )
            return CallbackResult(order=order, applied=True)

        logger.info("Mobile money payment completed", order_id=str(order.id), transaction_ref=callback.transaction_ref)
        if can_transition(order.status, OrderStatus.CONFIRMED.value):
            order = self.engine.transition(
                str(order.id),
                OrderStatus.CONFIRMED.value,
                TransitionContext(actor=SYSTEM_ACTOR, note=PAYMENT_CONFIRMED_NOTE),
            ).order

        try:
            self.carts.clear(order.user_id)
        except Exception:
            logger.exception("Could not clear cart after payment", user_id=str(order.user_id), order_id=str(order.id))
        return CallbackResult(order=order, applied=True)
