"""FastAPI routes for order fulfillment.

Handlers resolve the wired ``Services`` and the calling ``Actor`` through
dependencies, enforce role checks, call into the engine and shape the
result. Engine errors are mapped to HTTP by ``api.errors``.

Handlers that reach an adapter (payment gateway, notifier, inventory) are
plain ``def`` and run on FastAPI's worker threadpool; store-only reads are
``async``.
"""

import json
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from order_fulfillment.actor import Actor, Role
from order_fulfillment.api.dependencies import get_actor, get_services
from order_fulfillment.api.schemas import (
    BulkStatusUpdateRequest,
    BulkStatusUpdateResponse,
    CallbackResponse,
    CheckoutRequest,
    CheckoutResponse,
    MobileMoneyCallbackRequest,
    OrderResponse,
    PaymentRetryRequest,
    PricingResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
)
from order_fulfillment.cart.port import CartLine
from order_fulfillment.checkout.callback import PaymentCallback
from order_fulfillment.order.order import Order
from order_fulfillment.order.timeline import dashboard, order_timeline, public_tracking, simulate_shipment
from order_fulfillment.order.transitions import TransitionContext
from order_fulfillment.services import Services

_SUCCESS_RESULT_CODE = "0"


def _order_response(order: Order) -> OrderResponse:
    pricing = order.pricing
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        status=order.status,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        payment_reference=order.payment_reference,
        tracking_number=order.tracking_number,
        coupon_code=order.coupon_code,
        pricing=PricingResponse(
            subtotal=pricing.subtotal,
            tax_amount=pricing.tax_amount,
            shipping_amount=pricing.shipping_amount,
            discount_amount=pricing.discount_amount,
            total_amount=pricing.total_amount,
            currency=pricing.currency,
        ),
    )


def _context(body: StatusUpdateRequest, actor: Actor) -> TransitionContext:
    return TransitionContext(
        actor=actor,
        note=body.note,
        carrier=body.carrier,
        estimated_delivery=body.estimated_delivery,
        delivery_date=body.delivery_date,
        tracking_url=body.tracking_url,
        reason=body.reason,
    )


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(tags=["checkout"])


@checkout_router.post("/checkout", status_code=201, response_model=CheckoutResponse)
def checkout(
    body: CheckoutRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> CheckoutResponse:
    """Turn the caller's cart into an order and start payment."""
    actor.require(Role.CUSTOMER, Role.STAFF, Role.ADMIN)
    cart = None
    if body.items is not None:
        cart = [CartLine(**line.model_dump()) for line in body.items]

    result = services.checkout.checkout(
        actor.user_id,
        body.shipping_address.model_dump(),
        body.payment_method,
        cart,
        shipping_method=body.shipping_method,
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        phone_number=body.phone_number,
        card_token=body.card_token,
        discount_amount=body.discount_amount,
        coupon_code=body.coupon_code,
    )
    return CheckoutResponse(
        order=_order_response(result.order),
        payment=result.payment,
        reservation=result.reservation,
    )


@checkout_router.post("/payments/mobile-money/callback", response_model=CallbackResponse)
def mobile_money_callback(
    body: MobileMoneyCallbackRequest,
    x_gateway_signature: str = Header(default=""),
    services: Services = Depends(get_services),
) -> CallbackResponse:
    """Apply a mobile-money payment result pushed by the gateway."""
    if not services.gateway.verify_callback_signature(json.dumps(body.model_dump()), x_gateway_signature):
        raise HTTPException(status_code=401, detail="Invalid callback signature")

    result = services.callbacks.handle(
        PaymentCallback(
            reference=body.checkout_request_id,
            success=body.result_code == _SUCCESS_RESULT_CODE,
            transaction_ref=body.transaction_ref,
            result_code=body.result_code,
            result_desc=body.result_desc,
        )
    )
    return CallbackResponse(
        order_id=str(result.order.id),
        status=result.order.status,
        payment_status=result.order.payment_status,
        applied=result.applied,
    )


# ---------------------------------------------------------------------------
# Tracking Router
# ---------------------------------------------------------------------------
tracking_router = APIRouter(tags=["tracking"])


@tracking_router.get("/tracking/{tracking_number}")
async def track_shipment(tracking_number: str, services: Services = Depends(get_services)) -> dict:
    """Public shipment lookup by tracking number."""
    return public_tracking(services.store, tracking_number)


@tracking_router.get("/orders/{order_id}/tracking")
async def order_tracking(
    order_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    """Full timeline for the order's owner or staff."""
    order = services.store.get(order_id)
    actor.ensure_can_view(order)
    return order_timeline(order)


@tracking_router.get("/orders/{order_id}/simulate")
async def simulate_order_shipment(
    order_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    """Simulated carrier checkpoints for a shipped order."""
    actor.require(Role.ADMIN)
    return simulate_shipment(services.store.get(order_id))


# ---------------------------------------------------------------------------
# Order Status Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.patch("/bulk-status", response_model=BulkStatusUpdateResponse)
def bulk_update_status(
    body: BulkStatusUpdateRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> BulkStatusUpdateResponse:
    """Apply one status change to many orders, each independently."""
    actor.require(Role.ADMIN)
    bulk = services.engine.bulk_transition(body.order_ids, body.status, _context(body, actor))
    return BulkStatusUpdateResponse(results=bulk.results, summary=bulk.summary)


@order_router.patch("/{order_id}/status", response_model=StatusUpdateResponse)
def update_status(
    order_id: str,
    body: StatusUpdateRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> StatusUpdateResponse:
    """Move an order to a new status."""
    actor.require(Role.STAFF, Role.ADMIN)
    result = services.engine.transition(order_id, body.status, _context(body, actor))
    return StatusUpdateResponse(
        order=_order_response(result.order),
        outcome=result.outcome.value,
        reconciliation=result.reconciliation.to_dict() if result.reconciliation else None,
    )


@order_router.patch("/{order_id}/cancel", response_model=StatusUpdateResponse)
def cancel_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> StatusUpdateResponse:
    """Cancel an order on behalf of the customer who placed it."""
    result = services.engine.cancel_for_customer(order_id, actor)
    return StatusUpdateResponse(
        order=_order_response(result.order),
        outcome=result.outcome.value,
        reconciliation=result.reconciliation.to_dict() if result.reconciliation else None,
    )


@order_router.post("/{order_id}/payment/retry", response_model=CheckoutResponse)
def retry_payment(
    order_id: str,
    body: PaymentRetryRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> CheckoutResponse:
    """Ask the gateway again for a pending order whose payment did not go through."""
    result = services.checkout.retry_payment(
        order_id,
        actor,
        phone_number=body.phone_number,
        card_token=body.card_token,
    )
    return CheckoutResponse(order=_order_response(result.order), payment=result.payment)


# ---------------------------------------------------------------------------
# Operations Router
# ---------------------------------------------------------------------------
operations_router = APIRouter(tags=["operations"])


@operations_router.get("/metrics/delivery")
async def delivery_metrics(
    start: datetime = Query(...),
    end: datetime = Query(...),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    """Delivery performance over orders created within ``[start, end]``."""
    actor.require(Role.ADMIN)
    return services.metrics.collect(start, end).to_dict()


@operations_router.post("/automated-updates")
def run_automated_updates(
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    """Run one sweep pass now."""
    actor.require(Role.ADMIN)
    return services.sweep.run().to_dict()


@operations_router.get("/dashboard")
async def operations_dashboard(
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    """Status counts, overdue shipments and stale orders."""
    actor.require(Role.STAFF, Role.ADMIN)
    return dashboard(services.store, services.clock())


@operations_router.post("/outbox/dispatch")
def dispatch_outbox(
    limit: int | None = Query(default=None, ge=1),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    """Send notifications still pending in the outbox."""
    actor.require(Role.ADMIN)
    return services.dispatcher.dispatch_pending(limit).to_dict()
