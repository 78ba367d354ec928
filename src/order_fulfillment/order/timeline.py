"""Read-side views over orders: customer timeline, public tracking lookup,
simulated carrier progress and the operations dashboard.

Nothing here writes. Every view is a plain dict ready for JSON encoding.
"""

from datetime import datetime, timedelta

from protean.exceptions import ObjectNotFoundError, ValidationError

from order_fulfillment.order.order import Order, OrderStatus
from order_fulfillment.order.store import OrderStore
from order_fulfillment.utils.clock import as_utc

PROGRESSION = (
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
)

_DESCRIPTIONS = {
    "pending": "Order placed and waiting for payment confirmation",
    "confirmed": "Payment confirmed, order is being prepared",
    "processing": "Order is being packed and prepared for shipment",
    "shipped": "Order shipped via {carrier}",
    "delivered": "Order successfully delivered to customer",
    "cancelled": "Order has been cancelled",
}

_LOCATIONS = {
    "pending": "Online Store",
    "confirmed": "Order Processing Center",
    "processing": "Fulfillment Center",
    "shipped": "In Transit",
    "delivered": "Customer Location",
    "cancelled": "Order Cancelled",
}

STALE_CONFIRMED_AFTER = timedelta(hours=24)
STALE_PROCESSING_AFTER = timedelta(hours=48)


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


def progress_for(status: str) -> int:
    if status not in PROGRESSION:
        return 0
    return round((PROGRESSION.index(status) + 1) / len(PROGRESSION) * 100)


def _describe(status: str, order: Order) -> str:
    carrier = (order.tracking_info.carrier if order.tracking_info else None) or "carrier"
    return _DESCRIPTIONS.get(status, status).format(carrier=carrier)


def _events(order: Order) -> list[dict]:
    current = PROGRESSION.index(order.status) if order.status in PROGRESSION else -1
    events = []
    for entry in order.history():
        if entry.status in PROGRESSION:
            completed = PROGRESSION.index(entry.status) <= current
        else:
            completed = entry.status == OrderStatus.CANCELLED.value
        events.append(
            {
                "status": entry.status,
                "timestamp": _iso(entry.timestamp),
                "description": _describe(entry.status, order),
                "location": _LOCATIONS.get(entry.status, "Unknown"),
                "is_completed": completed,
                "note": entry.note,
            }
        )
    events.reverse()
    return events


def _tracking(order: Order) -> dict:
    info = order.tracking_info
    return {
        "tracking_number": order.tracking_number,
        "carrier": info.carrier if info else None,
        "shipped_date": _iso(info.shipped_date) if info else None,
        "estimated_delivery": _iso(info.estimated_delivery) if info else None,
        "actual_delivery": _iso(info.actual_delivery) if info else None,
        "tracking_url": info.tracking_url if info else None,
    }


def order_timeline(order: Order) -> dict:
    """Full tracking view for the order's owner or staff."""
    address = order.shipping_address
    return {
        "order": {
            "id": str(order.id),
            "order_number": order.order_number,
            "status": order.status,
            "payment_status": order.payment_status,
            "created_at": _iso(order.created_at),
            "total_amount": order.pricing.total_amount if order.pricing else None,
            "currency": order.pricing.currency if order.pricing else None,
        },
        "tracking": {
            **_tracking(order),
            "progress": progress_for(order.status),
            "events": _events(order),
        },
        "shipping": {
            "method": order.shipping_method,
            "address": {
                "name": address.name,
                "street": address.street,
                "city": address.city,
                "county": address.county,
                "postal_code": address.postal_code,
            }
            if address
            else None,
        },
        "items": [
            {
                "product_id": item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                **item.variant_attributes(),
            }
            for item in order.items
        ],
    }


def public_tracking(store: OrderStore, tracking_number: str) -> dict:
    """Anonymous lookup by tracking number. Exposes no customer data."""
    order = store.find_by_tracking_number(tracking_number)
    if order is None:
        raise ObjectNotFoundError(f"No shipment found for tracking number {tracking_number}")

    tracking = _tracking(order)
    return {
        "tracking_number": order.tracking_number,
        "order_number": order.order_number,
        "status": order.status,
        "carrier": tracking["carrier"],
        "estimated_delivery": tracking["estimated_delivery"],
        "actual_delivery": tracking["actual_delivery"],
        "progress": progress_for(order.status),
        "events": [{k: v for k, v in event.items() if k != "note"} for event in _events(order)],
    }


def simulate_shipment(order: Order) -> dict:
    """Deterministic carrier checkpoints for a shipped order."""
    if order.status != OrderStatus.SHIPPED.value:
        raise ValidationError({"status": [f"Only shipped orders can be simulated, order is {order.status}"]})

    info = order.tracking_info
    shipped = as_utc(info.shipped_date if info else None) or as_utc(order.updated_at)
    city = order.shipping_address.city if order.shipping_address else "Destination"
    checkpoints = [
        {"status": "picked_up", "timestamp": shipped, "location": "Warehouse - Nairobi"},
        {"status": "in_transit", "timestamp": shipped + timedelta(hours=2), "location": "Sorting Facility - Nairobi"},
        {
            "status": "out_for_delivery",
            "timestamp": shipped + timedelta(hours=24),
            "location": f"Distribution Center - {city}",
        },
    ]
    if info and info.estimated_delivery:
        checkpoints.append(
            {"status": "estimated_delivery", "timestamp": as_utc(info.estimated_delivery), "location": city}
        )

    return {
        "order_id": str(order.id),
        "tracking_number": order.tracking_number,
        "carrier": info.carrier if info else None,
        "checkpoints": [{**c, "timestamp": _iso(c["timestamp"])} for c in checkpoints],
    }


def dashboard(store: OrderStore, now: datetime) -> dict:
    """Counts per status plus the orders operations should look at."""
    now = as_utc(now)
    counts = {status.value: 0 for status in OrderStatus}
    overdue, stale = [], []

    for order in store.iter_orders():
        counts[order.status] = counts.get(order.status, 0) + 1
        info = order.tracking_info
        if order.status == OrderStatus.SHIPPED.value and info and info.estimated_delivery:
            if as_utc(info.estimated_delivery) < now:
                overdue.append(
                    {
                        "order_id": str(order.id),
                        "order_number": order.order_number,
                        "tracking_number": order.tracking_number,
                        "estimated_delivery": _iso(info.estimated_delivery),
                    }
                )
        age = now - as_utc(order.updated_at or order.created_at)
        if (order.status == OrderStatus.CONFIRMED.value and age > STALE_CONFIRMED_AFTER) or (
            order.status == OrderStatus.PROCESSING.value and age > STALE_PROCESSING_AFTER
        ):
            stale.append(
                {
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "status": order.status,
                    "hours_in_status": round(age.total_seconds() / 3600, 1),
                }
            )

    return {
        "generated_at": _iso(now),
        "status_counts": counts,
        "total_orders": sum(counts.values()),
        "overdue_shipments": overdue,
        "stale_orders": stale,
    }
