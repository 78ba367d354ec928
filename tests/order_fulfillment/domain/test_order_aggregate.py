"""Tests for Order aggregate creation, history and tracking rules."""

import re

import pytest
from order_fulfillment.order.events import OrderPlaced, OrderStatusChanged, PaymentStatusChanged
from order_fulfillment.order.order import Order, OrderStatus, PaymentStatus, Pricing
from protean.exceptions import ValidationError


def _make_order(address, items, clock, **overrides):
    defaults = {
        "user_id": "cust-001",
        "items_data": items,
        "shipping_address": address,
        "payment_method": "mobile_money",
        "now": clock(),
    }
    defaults.update(overrides)
    return Order.create(**defaults)


class TestOrderCreation:
    def test_create_sets_pending_status(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == PaymentStatus.PENDING.value

    def test_order_number_format(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock, sequence=7)
        millis = int(clock().timestamp() * 1000)
        assert order.order_number == f"ORD{millis}0007"
        assert re.fullmatch(r"ORD\d{13}\d{4}", order.order_number)

    def test_line_items_are_snapshotted(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        assert len(order.items) == 1
        item = order.items[0]
        assert item.name == "Mechanical Keyboard"
        assert item.unit_price == 2000.0
        assert item.line_total == 4000.0

    def test_totals_include_tax_and_shipping_below_threshold(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        assert order.pricing.subtotal == 4000.0
        assert order.pricing.tax_amount == 640.0
        assert order.pricing.shipping_amount == 300.0
        assert order.pricing.total_amount == 4940.0
        assert order.pricing.currency == "KES"

    def test_shipping_waived_at_threshold(self, address, clock):
        items = [{"product_id": "p", "name": "Desk", "unit_price": 6000.0, "quantity": 1}]
        order = _make_order(address, items, clock)
        assert order.pricing.shipping_amount == 0.0
        assert order.pricing.total_amount == 6960.0

    def test_discount_reduces_total(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock, discount_amount=440.0)
        assert order.pricing.total_amount == 4500.0

    def test_billing_defaults_to_shipping(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        assert order.billing_address.street == address["street"]

    def test_first_history_entry_records_creation(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock, created_by="cust-001")
        history = order.history()
        assert len(history) == 1
        assert history[0].status == OrderStatus.PENDING.value
        assert history[0].note == "Order created"
        assert history[0].updated_by == "cust-001"

    def test_cash_on_delivery_can_start_confirmed(self, address, keyboard_items, clock):
        order = _make_order(
            address, keyboard_items, clock, payment_method="cash_on_delivery", status=OrderStatus.CONFIRMED.value
        )
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.history()[0].status == OrderStatus.CONFIRMED.value

    def test_create_raises_order_placed_event(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        placed = [e for e in order._events if isinstance(e, OrderPlaced)]
        assert len(placed) == 1
        assert placed[0].total_amount == 4940.0
        assert placed[0].item_count == 1


class TestOrderCreationValidation:
    def test_empty_items_rejected(self, address, clock):
        with pytest.raises(ValidationError) as exc:
            _make_order(address, [], clock)
        assert "items" in exc.value.messages

    def test_incomplete_address_rejected(self, address, keyboard_items, clock):
        del address["postal_code"]
        with pytest.raises(ValidationError) as exc:
            _make_order(address, keyboard_items, clock)
        assert "postal_code" in exc.value.messages["shipping_address"][0]

    def test_unknown_payment_method_rejected(self, address, keyboard_items, clock):
        with pytest.raises(ValidationError) as exc:
            _make_order(address, keyboard_items, clock, payment_method="cheque")
        assert "payment_method" in exc.value.messages

    def test_unknown_shipping_method_rejected(self, address, keyboard_items, clock):
        with pytest.raises(ValidationError) as exc:
            _make_order(address, keyboard_items, clock, shipping_method="drone")
        assert "shipping_method" in exc.value.messages


class TestPricingInvariant:
    def test_mismatched_total_rejected(self):
        with pytest.raises(ValidationError):
            Pricing(subtotal=100.0, tax_amount=16.0, shipping_amount=300.0, discount_amount=0.0, total_amount=1.0)

    def test_consistent_total_accepted(self):
        pricing = Pricing(
            subtotal=100.0, tax_amount=16.0, shipping_amount=300.0, discount_amount=16.0, total_amount=400.0
        )
        assert pricing.total_amount == 400.0


class TestHistoryAndStatus:
    def test_apply_status_appends_one_entry(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        order.apply_status("confirmed", updated_by="staff-1", note="Paid", now=clock.advance(minutes=5))
        history = order.history()
        assert [h.status for h in history] == ["pending", "confirmed"]
        assert history[-1].updated_by == "staff-1"
        assert history[-1].note == "Paid"
        assert [h.sequence for h in history] == [1, 2]

    def test_apply_status_raises_status_changed_event(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        order.apply_status("confirmed", updated_by="staff-1", note=None, now=clock())
        changed = [e for e in order._events if isinstance(e, OrderStatusChanged)]
        assert changed[-1].from_status == "pending"
        assert changed[-1].to_status == "confirmed"

    def test_mark_payment_records_reference(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        order.mark_payment("completed", clock(), reference="ws_CO_1", transaction_ref="TX1")
        assert order.payment_status == "completed"
        assert order.payment_reference == "ws_CO_1"
        assert order.payment_transaction_ref == "TX1"
        assert any(isinstance(e, PaymentStatusChanged) for e in order._events)

    def test_owned_by(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        assert order.owned_by("cust-001")
        assert not order.owned_by("cust-002")


class TestTrackingNumberAssignment:
    def test_assign_once(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        order.assign_tracking_number("STA123456ABCDEF")
        assert order.tracking_number == "STA123456ABCDEF"

    def test_reassigning_same_number_is_allowed(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        order.assign_tracking_number("STA123456ABCDEF")
        order.assign_tracking_number("STA123456ABCDEF")
        assert order.tracking_number == "STA123456ABCDEF"

    def test_different_number_rejected(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        order.assign_tracking_number("STA123456ABCDEF")
        with pytest.raises(ValidationError):
            order.assign_tracking_number("EXP654321ZZZZZZ")
        assert order.tracking_number == "STA123456ABCDEF"

    def test_record_delivery_keeps_shipment_details(self, address, keyboard_items, clock):
        order = _make_order(address, keyboard_items, clock)
        order.record_shipment("DHL", clock(), clock.advance(days=2), "https://t.example/x")
        order.record_delivery(clock.advance(days=1))
        assert order.tracking_info.carrier == "DHL"
        assert order.tracking_info.tracking_url == "https://t.example/x"
        assert order.tracking_info.actual_delivery == clock()
