"""Tests for the pure delivery metrics aggregation."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest
from order_fulfillment.metrics.delivery import compute_delivery_metrics
from protean.exceptions import ValidationError

START = datetime(2026, 3, 1, tzinfo=UTC)
END = datetime(2026, 3, 31, 23, 59, tzinfo=UTC)


def _order(status, created, carrier=None, actual_days=None, estimated_days=None):
    info = None
    if carrier or actual_days is not None or estimated_days is not None:
        info = SimpleNamespace(
            carrier=carrier,
            actual_delivery=created + timedelta(days=actual_days) if actual_days is not None else None,
            estimated_delivery=created + timedelta(days=estimated_days) if estimated_days is not None else None,
        )
    return SimpleNamespace(status=status, created_at=created, tracking_info=info)


@pytest.fixture()
def orders():
    day = datetime(2026, 3, 5, 10, 0, tzinfo=UTC)
    return [
        _order("delivered", day, "DHL", actual_days=3, estimated_days=5),
        _order("delivered", day, "DHL", actual_days=6, estimated_days=5),
        _order("delivered", day, "G4S", actual_days=2, estimated_days=2),
        _order("delivered", day, "G4S"),  # no dates recorded
        _order("shipped", day, "DHL", estimated_days=5),
        _order("pending", day),
        _order("delivered", datetime(2026, 2, 20, tzinfo=UTC), "DHL", actual_days=1, estimated_days=5),
    ]


class TestDeliveryMetrics:
    def test_only_orders_in_range_are_counted(self, orders):
        metrics = compute_delivery_metrics(orders, START, END)
        assert metrics.total_orders == 6

    def test_status_counts(self, orders):
        metrics = compute_delivery_metrics(orders, START, END)
        counts = {s.status: s.count for s in metrics.status_counts}
        assert counts == {"delivered": 4, "pending": 1, "shipped": 1}

    def test_average_delivery_days_ignores_missing_dates(self, orders):
        metrics = compute_delivery_metrics(orders, START, END)
        delivered = next(s for s in metrics.status_counts if s.status == "delivered")
        # (3 + 6 + 2) / 3
        assert delivered.average_delivery_days == 3.7

    def test_non_delivered_statuses_have_no_average(self, orders):
        metrics = compute_delivery_metrics(orders, START, END)
        shipped = next(s for s in metrics.status_counts if s.status == "shipped")
        assert shipped.average_delivery_days is None

    def test_on_time_rate(self, orders):
        metrics = compute_delivery_metrics(orders, START, END)
        assert metrics.on_time.total == 3
        assert metrics.on_time.on_time == 2
        assert metrics.on_time.on_time_rate == 66.7

    def test_carrier_breakdown(self, orders):
        metrics = compute_delivery_metrics(orders, START, END)
        carriers = {c.carrier: c for c in metrics.carriers}
        assert carriers["DHL"].deliveries == 2
        assert carriers["DHL"].average_delivery_days == 4.5
        assert carriers["DHL"].on_time_rate == 50.0
        assert carriers["G4S"].deliveries == 2
        assert carriers["G4S"].on_time_rate == 100.0

    def test_missing_carrier_reported_as_unknown(self):
        day = datetime(2026, 3, 5, tzinfo=UTC)
        metrics = compute_delivery_metrics([_order("delivered", day, actual_days=1)], START, END)
        assert metrics.carriers[0].carrier == "Unknown"
        assert metrics.carriers[0].on_time_rate is None

    def test_empty_range(self):
        metrics = compute_delivery_metrics([], START, END)
        assert metrics.total_orders == 0
        assert metrics.on_time.on_time_rate == 0.0
        assert metrics.carriers == []

    def test_start_after_end_rejected(self):
        with pytest.raises(ValidationError):
            compute_delivery_metrics([], END, START)

    def test_naive_bounds_are_treated_as_utc(self, orders):
        metrics = compute_delivery_metrics(orders, START.replace(tzinfo=None), END.replace(tzinfo=None))
        assert metrics.total_orders == 6

    def test_to_dict_flattens_nested_records(self, orders):
        data = compute_delivery_metrics(orders, START, END).to_dict()
        assert data["on_time"]["on_time_rate"] == 66.7
        assert {c["carrier"] for c in data["carriers"]} == {"DHL", "G4S"}
