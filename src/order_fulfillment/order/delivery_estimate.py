"""Estimated delivery date for a shipment.

Base lead time by shipping method, extra days for remote counties, and no
weekend deliveries: a Saturday estimate moves to Monday, a Sunday one to
Monday as well.
"""

from datetime import datetime, timedelta

from order_fulfillment.config import DEFAULT_REMOTE_COUNTIES

BASE_DELIVERY_DAYS = {
    "standard": 5,
    "express": 2,
    "overnight": 1,
    "pickup": 0,
}
DEFAULT_DELIVERY_DAYS = 5
REMOTE_EXTRA_DAYS = 2

_SATURDAY = 5
_SUNDAY = 6


def estimate_delivery(
    shipping_method: str | None,
    county: str | None,
    shipped_at: datetime,
    remote_counties: tuple[str, ...] = DEFAULT_REMOTE_COUNTIES,
) -> datetime:
    days = BASE_DELIVERY_DAYS.get(shipping_method or "", DEFAULT_DELIVERY_DAYS)
    if county and county in remote_counties:
        days += REMOTE_EXTRA_DAYS

    estimate = shipped_at + timedelta(days=days)
    weekday = estimate.weekday()
    if weekday == _SATURDAY:
        estimate += timedelta(days=2)
    elif weekday == _SUNDAY:
        estimate += timedelta(days=1)
    return estimate
