"""Status transition engine — the order state machine and its side effects.

Legal edges and their effects are data: ``TRANSITIONS`` maps
``(current, target)`` to a ``Transition`` holding the effect applied in the
same write as the status change and, optionally, an effect run once that
write has committed.

    pending    → confirmed    payment marked completed
    confirmed  → processing   tracking number assigned
    processing → shipped      tracking number, carrier, estimate, URL
    shipped    → delivered    actual delivery recorded
    pending | confirmed | processing → cancelled
                              reason recorded; stock restored after commit

Shipped and delivered orders are committed to fulfillment and cannot be
cancelled.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

import structlog
from protean.exceptions import ValidationError

from order_fulfillment.actor import SYSTEM_ACTOR, Actor
from order_fulfillment.config import Settings
from order_fulfillment.errors import InvalidTransition
from order_fulfillment.inventory.reconciler import InventoryReconciler, ReconciliationReport
from order_fulfillment.order.delivery_estimate import estimate_delivery
from order_fulfillment.order.order import Order, OrderStatus, PaymentStatus
from order_fulfillment.order.store import OrderStore
from order_fulfillment.order.tracking_number import TrackingNumberGenerator
from order_fulfillment.outbox.dispatcher import OutboxDispatcher
from order_fulfillment.outbox.outbox import NotificationOutbox
from order_fulfillment.utils.clock import Clock, utc_now

logger = structlog.get_logger(__name__)

DEFAULT_CARRIER_NAME = "Standard Delivery"
CUSTOMER_CANCELLATION_NOTE = "Cancelled by customer"


@dataclass(frozen=True)
class TransitionContext:
    """Who asked for the change and the optional data that goes with it."""

    actor: Actor = SYSTEM_ACTOR
    note: str | None = None
    carrier: str | None = None
    estimated_delivery: datetime | None = None
    delivery_date: datetime | None = None
    tracking_url: str | None = None
    reason: str | None = None


class TransitionOutcome(Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"  # already in the target status
    SUPERSEDED = "superseded"  # another actor changed the status first


@dataclass
class TransitionResult:
    order: Order
    outcome: TransitionOutcome
    reconciliation: ReconciliationReport | None = None
    notification_id: str | None = None

    @property
    def changed(self) -> bool:
        return self.outcome == TransitionOutcome.APPLIED


@dataclass
class BulkTransitionResult:
    results: list[dict] = field(default_factory=list)

    @property
    def summary(self) -> dict:
        succeeded = sum(1 for r in self.results if r["success"])
        return {"total": len(self.results), "succeeded": succeeded, "failed": len(self.results) - succeeded}


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------
def _confirm(engine: "TransitionEngine", order: Order, ctx: TransitionContext, now: datetime) -> None:
    if order.payment_status != PaymentStatus.COMPLETED.value:
        order.mark_payment(PaymentStatus.COMPLETED.value, now)


def _ensure_tracking_number(engine: "TransitionEngine", order: Order, ctx: TransitionContext) -> None:
    if not order.tracking_number:
        order.assign_tracking_number(engine.tracking_numbers.generate(ctx.carrier))


def _start_processing(engine: "TransitionEngine", order: Order, ctx: TransitionContext, now: datetime) -> None:
    _ensure_tracking_number(engine, order, ctx)


def _ship(engine: "TransitionEngine", order: Order, ctx: TransitionContext, now: datetime) -> None:
    _ensure_tracking_number(engine, order, ctx)
    estimated = ctx.estimated_delivery or estimate_delivery(
        order.shipping_method,
        order.shipping_address.county if order.shipping_address else None,
        now,
        engine.settings.remote_counties,
    )
    order.record_shipment(
        carrier=ctx.carrier or DEFAULT_CARRIER_NAME,
        shipped_date=now,
        estimated_delivery=estimated,
        tracking_url=ctx.tracking_url or f"{engine.settings.tracking_url_base.rstrip('/')}/{order.tracking_number}",
    )


def _deliver(engine: "TransitionEngine", order: Order, ctx: TransitionContext, now: datetime) -> None:
    order.record_delivery(ctx.delivery_date or now)


def _cancel(engine: "TransitionEngine", order: Order, ctx: TransitionContext, now: datetime) -> None:
    order.cancellation_reason = ctx.reason or ctx.note


def _restore_inventory(engine: "TransitionEngine", order: Order, ctx: TransitionContext) -> ReconciliationReport:
    return engine.reconciler.restore(order)


@dataclass(frozen=True)
class Transition:
    effect: Callable
    after_commit: Callable | None = None


_PENDING = OrderStatus.PENDING.value
_CONFIRMED = OrderStatus.CONFIRMED.value
_PROCESSING = OrderStatus.PROCESSING.value
_SHIPPED = OrderStatus.SHIPPED.value
_DELIVERED = OrderStatus.DELIVERED.value
_CANCELLED = OrderStatus.CANCELLED.value

TRANSITIONS: dict[tuple[str, str], Transition] = {
    (_PENDING, _CONFIRMED): Transition(_confirm),
    (_CONFIRMED, _PROCESSING): Transition(_start_processing),
    (_PROCESSING, _SHIPPED): Transition(_ship),
    (_SHIPPED, _DELIVERED): Transition(_deliver),
    (_PENDING, _CANCELLED): Transition(_cancel, after_commit=_restore_inventory),
    (_CONFIRMED, _CANCELLED): Transition(_cancel, after_commit=_restore_inventory),
    (_PROCESSING, _CANCELLED): Transition(_cancel, after_commit=_restore_inventory),
}


# Cancelled stays in the set so a repeated request reports unchanged
_CUSTOMER_CANCELLABLE = {_PENDING, _CONFIRMED, _CANCELLED}


def can_transition(current: str, target: str) -> bool:
    return (current, target) in TRANSITIONS


def _error_message(exc: Exception) -> str:
    messages = getattr(exc, "messages", None)
    if isinstance(messages, dict):
        return "; ".join(f"{key}: {', '.join(map(str, value))}" for key, value in messages.items())
    return str(exc)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
class TransitionEngine:
    def __init__(
        self,
        store: OrderStore,
        reconciler: InventoryReconciler,
        dispatcher: OutboxDispatcher,
        tracking_numbers: TrackingNumberGenerator,
        clock: Clock = utc_now,
        settings: Settings | None = None,
    ):
        self.store = store
        self.reconciler = reconciler
        self.dispatcher = dispatcher
        self.tracking_numbers = tracking_numbers
        self.clock = clock
        self.settings = settings or Settings()

    def transition(self, order_id: str, target: str, context: TransitionContext | None = None) -> TransitionResult:
        """Load an order and move it to ``target``."""
        return self.apply(self.store.get(order_id), target, context)

    def apply(self, order: Order, target: str, context: TransitionContext | None = None) -> TransitionResult:
        """Move an already-loaded order to ``target``.

        Raises:
            ValidationError: ``target`` is not an order status.
            InvalidTransition: ``target`` is not a legal successor of the current status.
        """
        ctx = context or TransitionContext()
        if target not in {s.value for s in OrderStatus}:
            raise ValidationError({"status": [f"Unknown order status: {target}"]})

        current = order.status
        if current == target:
            return TransitionResult(order=order, outcome=TransitionOutcome.UNCHANGED)

        rule = TRANSITIONS.get((current, target))
        if rule is None:
            raise InvalidTransition(current, target)

        now = self.clock()
        rule.effect(self, order, ctx, now)
        order.apply_status(target, updated_by=ctx.actor.user_id, note=ctx.note, now=now)
        notification = NotificationOutbox.for_status_change(order, now, self.settings.outbox_max_attempts)

        if not self.store.save_if_status(order, current, notification):
            latest = self.store.get(order.id)
            logger.info(
                "Order status changed concurrently, transition skipped",
                order_id=str(order.id),
                expected=current,
                actual=latest.status,
                target=target,
            )
            return TransitionResult(order=latest, outcome=TransitionOutcome.SUPERSEDED)

        logger.info(
            "Order status updated",
            order_id=str(order.id),
            from_status=current,
            to_status=target,
            updated_by=ctx.actor.user_id,
        )

        reconciliation = rule.after_commit(self, order, ctx) if rule.after_commit else None
        self._notify(notification)
        return TransitionResult(
            order=order,
            outcome=TransitionOutcome.APPLIED,
            reconciliation=reconciliation,
            notification_id=str(notification.id),
        )

    def cancel_for_customer(self, order_id: str, actor: Actor) -> TransitionResult:
        """Cancel on behalf of the customer who placed the order.

        Customers may cancel only before the order is being processed; staff
        use ``transition`` for later cancellations.

        Raises:
            Unauthorized: ``actor`` did not place the order.
            InvalidTransition: the order is past the point a customer can cancel it.
        """
        order = self.store.get(order_id)
        actor.ensure_owns(order)
        if order.status not in _CUSTOMER_CANCELLABLE:
            raise InvalidTransition(order.status, _CANCELLED)
        return self.apply(
            order,
            _CANCELLED,
            TransitionContext(actor=actor, note=CUSTOMER_CANCELLATION_NOTE, reason=CUSTOMER_CANCELLATION_NOTE),
        )

    def bulk_transition(
        self, order_ids: list[str], target: str, context: TransitionContext | None = None
    ) -> BulkTransitionResult:
        """Apply the same transition to many orders; each succeeds or fails on its own."""
        bulk = BulkTransitionResult()
        for order_id in order_ids:
            try:
                result = self.transition(order_id, target, context)
            except Exception as exc:
                logger.warning("Bulk status update failed for order", order_id=order_id, error=str(exc))
                bulk.results.append({"order_id": order_id, "success": False, "error": _error_message(exc)})
                continue
            bulk.results.append(
                {
                    "order_id": order_id,
                    "success": True,
                    "status": result.order.status,
                    "outcome": result.outcome.value,
                }
            )
        return bulk

    def _notify(self, notification: NotificationOutbox) -> None:
        try:
            self.dispatcher.dispatch(str(notification.id))
        except Exception:
            # The entry stays pending in the outbox for the next dispatch pass
            logger.exception("Immediate notification dispatch failed", outbox_id=str(notification.id))
