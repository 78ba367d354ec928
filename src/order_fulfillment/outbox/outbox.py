"""Notification outbox aggregate (CQRS).

An entry is written in the same unit of work as the order status change it
announces, so a committed transition always has its notification on record.
Dispatch happens afterwards and is retried independently of the transition.

State Machine:
    PENDING → SENDING (claimed by exactly one dispatcher)
    SENDING → SENT
    SENDING → (failed attempt, attempts < max) → PENDING
    SENDING → (failed attempt, attempts == max) → FAILED
    SENDING, claim older than the lease → claimable again
"""

from datetime import datetime, timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from order_fulfillment.domain import fulfillment
from order_fulfillment.utils.clock import as_utc


class OutboxStatus(Enum):
    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


_STATUS_MESSAGES = {
    "pending": "We have received your order and are waiting for payment confirmation.",
    "confirmed": "Your payment is confirmed and your order is being prepared.",
    "processing": "Your order is being packed and prepared for shipment.",
    "shipped": "Your order is on its way.",
    "delivered": "Your order has been delivered. Thank you for shopping with us.",
    "cancelled": "Your order has been cancelled.",
}


@fulfillment.aggregate
class NotificationOutbox:
    order_id = Identifier(required=True)
    recipient = String(required=True, max_length=255)
    subject = String(required=True, max_length=255)
    body = Text(required=True)
    event = String(required=True, max_length=100)
    status = String(choices=OutboxStatus, default=OutboxStatus.PENDING.value)
    attempts = Integer(default=0)
    max_attempts = Integer(default=3)
    last_error = String(max_length=500)
    message_id = String(max_length=255)
    created_at = DateTime()
    claimed_at = DateTime()
    sent_at = DateTime()

    @classmethod
    def for_status_change(cls, order, now: datetime, max_attempts: int = 3):
        """Compose the customer message announcing the order's current status."""
        lines = [
            f"Hello {order.shipping_address.name},",
            "",
            _STATUS_MESSAGES.get(order.status, f"Your order status is now {order.status}."),
            f"Order number: {order.order_number}",
        ]
        if order.tracking_number:
            lines.append(f"Tracking number: {order.tracking_number}")
        if order.tracking_info and order.tracking_info.tracking_url:
            lines.append(f"Track your shipment: {order.tracking_info.tracking_url}")

        return cls(
            order_id=str(order.id),
            recipient=order.shipping_address.email,
            subject=f"Order {order.order_number} is now {order.status}",
            body="\n".join(lines),
            event=f"order.{order.status}",
            status=OutboxStatus.PENDING.value,
            attempts=0,
            max_attempts=max_attempts,
            created_at=now,
        )

    def claimable(self, now: datetime, lease: timedelta) -> bool:
        if self.status == OutboxStatus.PENDING.value:
            return True
        # A dispatcher that died mid-send leaves its claim behind
        return (
            self.status == OutboxStatus.SENDING.value
            and self.claimed_at is not None
            and as_utc(self.claimed_at) + lease <= now
        )

    def claim(self, now: datetime, lease: timedelta) -> None:
        if not self.claimable(now, lease):
            raise ValidationError({"status": [f"Outbox entry is {self.status} and cannot be claimed"]})
        self.status = OutboxStatus.SENDING.value
        self.claimed_at = now

    def _assert_claimed(self):
        if self.status != OutboxStatus.SENDING.value:
            raise ValidationError({"status": [f"Outbox entry is {self.status}, not claimed for sending"]})

    def mark_sent(self, message_id: str | None, now: datetime) -> None:
        self._assert_claimed()
        self.status = OutboxStatus.SENT.value
        self.attempts = (self.attempts or 0) + 1
        self.message_id = message_id
        self.last_error = None
        self.sent_at = now

    def mark_attempt_failed(self, reason: str) -> None:
        """Count a failed attempt; give up once the attempt budget is spent."""
        self._assert_claimed()
        self.attempts = (self.attempts or 0) + 1
        self.last_error = (reason or "Unknown dispatch error")[:500]
        if self.attempts >= self.max_attempts:
            self.status = OutboxStatus.FAILED.value
        else:
            self.status = OutboxStatus.PENDING.value
