"""Order domain events — immutable facts about order lifecycle changes.

Events are past tense and versioned. They are the integration surface for
downstream consumers (analytics, notifications in other services); the
engine itself does not rely on handling them.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String

from order_fulfillment.domain import fulfillment


@fulfillment.event(part_of="Order")
class OrderPlaced:
    """An order was created at checkout from a cart snapshot."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier(required=True)
    status = String(required=True)
    payment_method = String(required=True)
    item_count = Integer(required=True)
    total_amount = Float(required=True)
    currency = String(required=True)
    placed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderStatusChanged:
    """An order moved from one status to another."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    updated_by = String()
    note = String()
    tracking_number = String()
    changed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class PaymentStatusChanged:
    """The payment status of an order changed (callback, capture or confirmation)."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_method = String(required=True)
    payment_status = String(required=True)
    payment_reference = String()
    changed_at = DateTime(required=True)
