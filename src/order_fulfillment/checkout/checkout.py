"""Checkout orchestration — cart snapshot to persisted order to payment.

Order of operations matters here:

1. Validate the cart and snapshot current catalogue prices into line items.
2. Reserve stock for every line. A line that cannot be reserved fails the
   checkout and the lines already taken are released.
3. Persist the order. If this fails the reservation is released, nothing
   else happens, and the cart is left untouched for a retry.
4. Branch on payment method:
   - cash on delivery: order starts ``confirmed``; cart cleared.
   - mobile money: order stays ``pending``; a push request goes out with a
     bounded timeout. A failed push is logged but the checkout still
     succeeds; the gateway callback settles the payment later.
   - card: synchronous capture with a bounded timeout. Success confirms the
     order and clears the cart; a decline or a gateway error marks the
     payment failed and raises, leaving the order ``pending`` and the cart
     intact. A timeout leaves the payment ``pending``: the charge may still
     have gone through.

A pending order whose payment did not go through can be retried by its owner
with ``retry_payment``.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field

import structlog
from protean.exceptions import ValidationError

from order_fulfillment.actor import Actor, Role
from order_fulfillment.cart.port import CartLine, CartStore
from order_fulfillment.config import Settings
from order_fulfillment.errors import ExternalServiceError
from order_fulfillment.inventory.port import InventoryStore, ProductStatus
from order_fulfillment.inventory.reconciler import InventoryReconciler, ReconciliationReport
from order_fulfillment.order.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from order_fulfillment.order.pricing import PricingPolicy
from order_fulfillment.order.store import OrderStore
from order_fulfillment.order.transitions import TransitionContext, TransitionEngine
from order_fulfillment.payment.port import PaymentGateway
from order_fulfillment.utils.clock import Clock, utc_now

logger = structlog.get_logger(__name__)

_GATEWAY = "payment_gateway"
_RETRYABLE_PAYMENT = {
    PaymentMethod.MOBILE_MONEY.value: {PaymentStatus.PENDING.value, PaymentStatus.FAILED.value},
    # A timed-out capture stays pending and may have been charged
    PaymentMethod.CARD.value: {PaymentStatus.FAILED.value},
}


@dataclass
class CheckoutResult:
    order: Order
    payment: dict = field(default_factory=dict)
    reservation: dict | None = None


def call_with_timeout(fn, timeout: float, service: str, *args, **kwargs):
    """Run a blocking outbound call, giving up after ``timeout`` seconds.

    Raises:
        ExternalServiceError: the call raised or did not finish in time.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        raise ExternalServiceError(service, f"No response within {timeout:g}s", timed_out=True) from exc
    except Exception as exc:
        raise ExternalServiceError(service, str(exc)) from exc
    finally:
        executor.shutdown(wait=False)


class CheckoutService:
    def __init__(
        self,
        store: OrderStore,
        inventory: InventoryStore,
        reconciler: InventoryReconciler,
        gateway: PaymentGateway,
        carts: CartStore,
        engine: TransitionEngine,
        clock: Clock = utc_now,
        settings: Settings | None = None,
    ):
        self.store = store
        self.inventory = inventory
        self.reconciler = reconciler
        self.gateway = gateway
        self.carts = carts
        self.engine = engine
        self.clock = clock
        self.settings = settings or Settings()
        self.policy = PricingPolicy.from_settings(self.settings)
        self._numbering = threading.Lock()
        self._last_sequence = 0

    # -------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------
    def checkout(
        self,
        user_id: str,
        shipping_address: dict,
        payment_method: str,
        cart: list[CartLine] | None = None,
        *,
        shipping_method: str = "standard",
        billing_address: dict | None = None,
        phone_number: str | None = None,
        card_token: str | None = None,
        discount_amount: float = 0.0,
        coupon_code: str | None = None,
    ) -> CheckoutResult:
        lines = cart if cart is not None else self.carts.get_cart(user_id)
        if not lines:
            raise ValidationError({"cart": ["Cart is empty"]})
        if payment_method not in {m.value for m in PaymentMethod}:
            raise ValidationError({"payment_method": [f"Unsupported payment method: {payment_method}"]})
        phone_on_file = str(shipping_address.get("phone") or "").strip()
        if payment_method == PaymentMethod.MOBILE_MONEY.value and not (phone_number or phone_on_file):
            raise ValidationError({"phone_number": ["A phone number is required for mobile money payments"]})

        items_data = self._snapshot(lines)
        now = self.clock()
        initial_status = (
            OrderStatus.CONFIRMED.value
            if payment_method == PaymentMethod.CASH_ON_DELIVERY.value
            else OrderStatus.PENDING.value
        )
        order = Order.create(
            user_id=user_id,
            items_data=items_data,
            shipping_address=shipping_address,
            payment_method=payment_method,
            billing_address=billing_address,
            shipping_method=shipping_method,
            discount_amount=discount_amount,
            coupon_code=coupon_code,
            status=initial_status,
            sequence=self._next_sequence(),
            created_by=str(user_id),
            policy=self.policy,
            now=now,
        )

        reservation = self._reserve(order)
        try:
            self.store.add(order)
        except Exception:
            logger.error("Order could not be persisted, releasing reserved stock", order_id=str(order.id))
            self.reconciler.release(reservation)
            raise
        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            payment_method=payment_method,
            total_amount=order.pricing.total_amount,
        )

        result = CheckoutResult(order=order, reservation=reservation.to_dict())
        if payment_method == PaymentMethod.CASH_ON_DELIVERY.value:
            result.payment = {"status": order.payment_status}
            self._clear_cart(user_id, order)
        elif payment_method == PaymentMethod.MOBILE_MONEY.value:
            result.payment = self._request_push(order, phone_number or order.shipping_address.phone)
        else:
            result.payment = self._capture_card(order, card_token)
            self._clear_cart(user_id, order)

        result.order = self.store.get(order.id)
        return result

    def retry_payment(
        self,
        order_id: str,
        actor: Actor,
        *,
        phone_number: str | None = None,
        card_token: str | None = None,
    ) -> CheckoutResult:
        """Ask the gateway again for a pending order whose payment did not go through.

        Raises:
            ObjectNotFoundError: the order does not exist.
            Unauthorized: ``actor`` does not own the order.
            ValidationError: the order is not awaiting payment, or its payment
                cannot be retried safely.
        """
        order = self.store.get(order_id)
        actor.ensure_owns(order)
        retryable = _RETRYABLE_PAYMENT.get(order.payment_method, set())
        if order.status != OrderStatus.PENDING.value or order.payment_status not in retryable:
            raise ValidationError(
                {"payment": [f"Payment cannot be retried for a {order.status} order with {order.payment_status} payment"]}
            )

        expected_payment = order.payment_status
        order.payment_attempts = (order.payment_attempts or 1) + 1
        order.mark_payment(PaymentStatus.PENDING.value, self.clock())
        if not self.store.save_if_status(order, OrderStatus.PENDING.value, payment_status=expected_payment):
            raise ValidationError({"payment": ["Order changed while retrying payment, reload and try again"]})
        logger.info("Retrying payment", order_id=str(order.id), attempt=order.payment_attempts)

        result = CheckoutResult(order=order)
        if order.payment_method == PaymentMethod.MOBILE_MONEY.value:
            result.payment = self._request_push(order, phone_number or order.shipping_address.phone)
        else:
            result.payment = self._capture_card(order, card_token)
            self._clear_cart(str(order.user_id), order)
        result.order = self.store.get(order.id)
        return result

    def _next_sequence(self) -> int:
        """Running number folded into the order number; never repeats within this process."""
        with self._numbering:
            self._last_sequence = max(self._last_sequence, self.store.count()) + 1
            return self._last_sequence

    # -------------------------------------------------------------------
    # Cart snapshot and reservation
    # -------------------------------------------------------------------
    def _snapshot(self, lines: list[CartLine]) -> list[dict]:
        """Copy names and current prices into line items, rejecting unavailable ones."""
        items, unavailable = [], []
        for line in lines:
            if line.quantity < 1:
                unavailable.append(f"{line.product_id}: quantity must be at least 1")
                continue
            product = self.inventory.get_product(line.product_id)
            if product is None:
                unavailable.append(f"{line.product_id}: product not found")
                continue
            if product.status != ProductStatus.ACTIVE.value:
                unavailable.append(f"{line.product_id}: product not active")
                continue

            attributes = line.variant_attributes()
            price, sku, available = product.sale_price, product.sku, product.stock
            if attributes:
                variant = product.find_variant(attributes)
                if variant is None:
                    unavailable.append(f"{line.product_id}: variant not found")
                    continue
                price = variant.price if variant.price is not None else product.sale_price
                sku = variant.sku or product.sku
                available = variant.stock

            if available < line.quantity:
                unavailable.append(f"{line.product_id}: only {available} left in stock")
                continue

            items.append(
                {
                    "product_id": product.id,
                    "name": product.name,
                    "sku": sku,
                    "seller_id": product.seller_id,
                    "unit_price": price,
                    "quantity": line.quantity,
                    **attributes,
                }
            )

        if unavailable:
            raise ValidationError({"items": unavailable})
        return items

    def _reserve(self, order: Order) -> ReconciliationReport:
        """Take stock for every line or for none of them."""
        reservation = self.reconciler.reserve(order)
        if reservation.ok:
            return reservation

        self.reconciler.release(reservation)
        raise ValidationError(
            {"items": [f"{failure['product_id']}: stock could not be reserved" for failure in reservation.failures]}
        )

    # -------------------------------------------------------------------
    # Payment branches
    # -------------------------------------------------------------------
    def _request_push(self, order: Order, phone_number: str) -> dict:
        try:
            push = call_with_timeout(
                self.gateway.request_push,
                self.settings.payment_timeout_seconds,
                _GATEWAY,
                order_id=str(order.id),
                amount=order.pricing.total_amount,
                currency=order.pricing.currency,
                phone_number=phone_number,
                idempotency_key=f"push-{order.id}-{order.payment_attempts}",
            )
        except ExternalServiceError as exc:
            logger.warning("Mobile money push failed", order_id=str(order.id), error=exc.message, timed_out=exc.timed_out)
            return {"status": order.payment_status, "error": exc.message}

        if not push.success:
            logger.warning("Mobile money push rejected", order_id=str(order.id), reason=push.failure_reason)
            return {"status": order.payment_status, "error": push.failure_reason}

        order.payment_reference = push.request_id
        order.updated_at = self.clock()
        if not self.store.save_if_status(order, OrderStatus.PENDING.value):
            logger.warning("Order changed before push reference was stored", order_id=str(order.id))
        logger.info("Mobile money push sent", order_id=str(order.id), request_id=push.request_id)
        return {"status": order.payment_status, "reference": push.request_id}

    def _capture_card(self, order: Order, card_token: str | None) -> dict:
        try:
            charge = call_with_timeout(
                self.gateway.capture_card,
                self.settings.payment_timeout_seconds,
                _GATEWAY,
                order_id=str(order.id),
                amount=order.pricing.total_amount,
                currency=order.pricing.currency,
                card_token=card_token,
                idempotency_key=f"card-{order.id}-{order.payment_attempts}",
            )
        except ExternalServiceError as exc:
            if not exc.timed_out:
                self._record_card_failure(order, exc.message)
            raise

        if not charge.success:
            self._record_card_failure(order, charge.failure_reason)
            raise ExternalServiceError(_GATEWAY, charge.failure_reason or "Card payment failed")

        order.mark_payment(PaymentStatus.COMPLETED.value, self.clock(), reference=charge.gateway_transaction_id)
        self.store.save_if_status(order, OrderStatus.PENDING.value)
        self.engine.transition(
            str(order.id),
            OrderStatus.CONFIRMED.value,
            TransitionContext(
                actor=Actor(user_id=str(order.user_id), role=Role.CUSTOMER.value),
                note="Card payment captured",
            ),
        )
        return {"status": PaymentStatus.COMPLETED.value, "reference": charge.gateway_transaction_id}

    def _record_card_failure(self, order: Order, reason: str | None) -> None:
        order.mark_payment(PaymentStatus.FAILED.value, self.clock())
        self.store.save_if_status(order, OrderStatus.PENDING.value)
        logger.warning("Card capture failed", order_id=str(order.id), reason=reason)

    def _clear_cart(self, user_id: str, order: Order) -> None:
        try:
            self.carts.clear(user_id)
        except Exception:
            logger.exception("Could not clear cart after checkout", user_id=str(user_id), order_id=str(order.id))
