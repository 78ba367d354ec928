"""Delivery metrics — read-only performance statistics over a date range.

``compute_delivery_metrics`` is a pure function over orders so it can be fed
from any source; ``DeliveryMetricsService`` loads the orders from the
repository. Orders missing an actual or estimated delivery date are left out
of the averages and rate denominators that need them; they are never
counted as zero.
"""

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime

from protean.exceptions import ValidationError

from order_fulfillment.order.order import OrderStatus
from order_fulfillment.order.store import OrderStore
from order_fulfillment.utils.clock import as_utc

_SECONDS_PER_DAY = 86400


@dataclass
class StatusBreakdown:
    status: str
    count: int = 0
    average_delivery_days: float | None = None


@dataclass
class OnTimeStats:
    total: int = 0
    on_time: int = 0
    on_time_rate: float = 0.0


@dataclass
class CarrierPerformance:
    carrier: str
    deliveries: int = 0
    average_delivery_days: float | None = None
    on_time_rate: float | None = None


@dataclass
class DeliveryMetrics:
    start: datetime
    end: datetime
    total_orders: int = 0
    status_counts: list[StatusBreakdown] = field(default_factory=list)
    on_time: OnTimeStats = field(default_factory=OnTimeStats)
    carriers: list[CarrierPerformance] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _days_between(start: datetime, end: datetime) -> float:
    return (as_utc(end) - as_utc(start)).total_seconds() / _SECONDS_PER_DAY


def _mean(values: list[float]) -> float | None:
    return round(sum(values) / len(values), 1) if values else None


def _rate(part: int, whole: int) -> float | None:
    return round(part / whole * 100, 1) if whole else None


def compute_delivery_metrics(orders, start: datetime, end: datetime) -> DeliveryMetrics:
    """Aggregate orders created within ``[start, end]``."""
    start, end = as_utc(start), as_utc(end)
    if start > end:
        raise ValidationError({"start": ["Start of range must not be after its end"]})

    in_range = [o for o in orders if o.created_at and start <= as_utc(o.created_at) <= end]

    counts: dict[str, int] = defaultdict(int)
    durations: dict[str, list[float]] = defaultdict(list)
    on_time = OnTimeStats()
    carrier_durations: dict[str, list[float]] = defaultdict(list)
    carrier_on_time: dict[str, list[bool]] = defaultdict(list)
    carrier_deliveries: dict[str, int] = defaultdict(int)

    for order in in_range:
        counts[order.status] += 1
        if order.status != OrderStatus.DELIVERED.value:
            continue

        info = order.tracking_info
        actual = info.actual_delivery if info else None
        estimated = info.estimated_delivery if info else None
        carrier = (info.carrier if info else None) or "Unknown"

        carrier_deliveries[carrier] += 1
        if actual:
            days = _days_between(order.created_at, actual)
            durations[order.status].append(days)
            carrier_durations[carrier].append(days)
        if actual and estimated:
            punctual = as_utc(actual) <= as_utc(estimated)
            on_time.total += 1
            on_time.on_time += int(punctual)
            carrier_on_time[carrier].append(punctual)

    on_time.on_time_rate = _rate(on_time.on_time, on_time.total) or 0.0

    return DeliveryMetrics(
        start=start,
        end=end,
        total_orders=len(in_range),
        status_counts=[
            StatusBreakdown(status=status, count=count, average_delivery_days=_mean(durations.get(status, [])))
            for status, count in sorted(counts.items())
        ],
        on_time=on_time,
        carriers=[
            CarrierPerformance(
                carrier=carrier,
                deliveries=deliveries,
                average_delivery_days=_mean(carrier_durations.get(carrier, [])),
                on_time_rate=_rate(sum(carrier_on_time[carrier]), len(carrier_on_time[carrier])),
            )
            for carrier, deliveries in sorted(carrier_deliveries.items())
        ],
    )


class DeliveryMetricsService:
    def __init__(self, store: OrderStore):
        self.store = store

    def collect(self, start: datetime, end: datetime) -> DeliveryMetrics:
        return compute_delivery_metrics(self.store.iter_orders(), start, end)
