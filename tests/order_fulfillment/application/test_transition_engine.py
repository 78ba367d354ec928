"""Application tests for the status transition engine."""

import re
import threading

import pytest
from order_fulfillment.actor import Actor
from order_fulfillment.errors import InvalidTransition, Unauthorized
from order_fulfillment.order.transitions import TransitionContext, TransitionOutcome
from order_fulfillment.outbox.outbox import NotificationOutbox, OutboxStatus
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError


def _outbox_entries():
    return current_domain.repository_for(NotificationOutbox)._dao.query.order_by("created_at").all().items


def _walk(services, order_id, *statuses, ctx=None):
    for status in statuses:
        services.engine.transition(order_id, status, ctx)
    return services.store.get(order_id)


class TestForwardTransitions:
    def test_confirm_marks_payment_completed(self, services, place_order, staff):
        order = place_order()
        result = services.engine.transition(str(order.id), "confirmed", TransitionContext(actor=staff, note="Paid"))

        assert result.outcome == TransitionOutcome.APPLIED
        assert result.changed
        stored = services.store.get(order.id)
        assert stored.status == "confirmed"
        assert stored.payment_status == "completed"

    def test_each_transition_appends_one_history_entry(self, services, place_order, staff):
        order = place_order()
        ctx = TransitionContext(actor=staff, note="Moving along")
        stored = _walk(services, str(order.id), "confirmed", "processing", ctx=ctx)

        history = stored.history()
        assert [h.status for h in history] == ["pending", "confirmed", "processing"]
        assert history[-1].updated_by == "staff-1"
        assert history[-1].note == "Moving along"

    def test_processing_assigns_tracking_number(self, services, place_order):
        order = place_order(status="confirmed")
        services.engine.transition(str(order.id), "processing")

        stored = services.store.get(order.id)
        assert re.fullmatch(r"STA\d{6}[A-Z0-9]{6}", stored.tracking_number)

    def test_ship_keeps_tracking_number_and_records_shipment(self, services, place_order, clock):
        order = place_order(status="confirmed")
        processing = _walk(services, str(order.id), "processing")
        tracking_number = processing.tracking_number

        services.engine.transition(str(order.id), "shipped", TransitionContext(carrier="G4S Courier"))

        stored = services.store.get(order.id)
        assert stored.tracking_number == tracking_number
        assert stored.tracking_info.carrier == "G4S Courier"
        assert stored.tracking_info.shipped_date is not None
        assert stored.tracking_info.tracking_url == f"https://tracking.example.com/{tracking_number}"

    def test_ship_defaults_carrier_and_computes_estimate(self, services, place_order, clock):
        order = place_order(status="processing")
        services.engine.transition(str(order.id), "shipped")

        stored = services.store.get(order.id)
        assert stored.tracking_number
        assert stored.tracking_info.carrier == "Standard Delivery"
        # Tuesday + 5 days lands on Sunday, moved to Monday
        assert stored.tracking_info.estimated_delivery.date().isoformat() == "2026-03-16"

    def test_ship_uses_supplied_estimate(self, services, place_order, clock):
        order = place_order(status="processing")
        estimate = clock().replace(day=20)
        services.engine.transition(str(order.id), "shipped", TransitionContext(estimated_delivery=estimate))
        assert services.store.get(order.id).tracking_info.estimated_delivery.day == 20

    def test_deliver_records_actual_delivery(self, services, place_order, clock):
        order = place_order(status="processing")
        _walk(services, str(order.id), "shipped")
        clock.advance(days=3)
        stored = _walk(services, str(order.id), "delivered")
        assert stored.status == "delivered"
        assert stored.tracking_info.actual_delivery.day == 13
        assert stored.tracking_info.carrier == "Standard Delivery"


class TestRejectedTransitions:
    def test_illegal_edge_raises_and_changes_nothing(self, services, place_order):
        order = place_order()
        with pytest.raises(InvalidTransition) as exc:
            services.engine.transition(str(order.id), "shipped")

        assert exc.value.messages == {"status": ["Cannot transition from pending to shipped"]}
        stored = services.store.get(order.id)
        assert stored.status == "pending"
        assert len(stored.history()) == 1
        assert _outbox_entries() == []

    def test_shipped_order_cannot_be_cancelled(self, services, place_order):
        order = place_order(status="processing")
        _walk(services, str(order.id), "shipped")
        with pytest.raises(InvalidTransition):
            services.engine.transition(str(order.id), "cancelled")

    def test_unknown_status_is_a_validation_error(self, services, place_order):
        order = place_order()
        with pytest.raises(ValidationError) as exc:
            services.engine.transition(str(order.id), "lost")
        assert not isinstance(exc.value, InvalidTransition)

    def test_unknown_order(self, services):
        with pytest.raises(ObjectNotFoundError):
            services.engine.transition("does-not-exist", "confirmed")


class TestIdempotenceAndRaces:
    def test_same_status_is_a_no_op(self, services, place_order):
        order = place_order(status="confirmed")
        result = services.engine.transition(str(order.id), "confirmed")

        assert result.outcome == TransitionOutcome.UNCHANGED
        assert not result.changed
        assert len(services.store.get(order.id).history()) == 1
        assert _outbox_entries() == []

    def test_stale_copy_is_superseded(self, services, place_order, staff):
        order = place_order()
        first = services.store.get(order.id)
        second = services.store.get(order.id)

        services.engine.apply(first, "confirmed", TransitionContext(actor=staff))
        result = services.engine.apply(second, "cancelled", TransitionContext(actor=staff, reason="Changed mind"))

        assert result.outcome == TransitionOutcome.SUPERSEDED
        stored = services.store.get(order.id)
        assert stored.status == "confirmed"
        assert [h.status for h in stored.history()] == ["pending", "confirmed"]
        assert result.order.status == "confirmed"

    def test_copy_outdated_by_another_write_is_superseded(self, services, place_order, clock):
        order = place_order()
        stale = services.store.get(order.id)
        # Another instance records a payment reference; the status stays pending
        fresh = services.store.get(order.id)
        fresh.mark_payment("pending", clock(), reference="ws_CO_other")
        assert services.store.save_if_status(fresh, "pending")

        result = services.engine.apply(stale, "cancelled", TransitionContext(reason="Changed mind"))

        assert result.outcome == TransitionOutcome.SUPERSEDED
        stored = services.store.get(order.id)
        assert stored.status == "pending"
        assert stored.payment_reference == "ws_CO_other"
        assert services.inventory.get_product("prod-kb").stock == 10
        assert _outbox_entries() == []

    def test_stale_version_write_is_rejected_by_store(self, services, place_order, clock):
        order = place_order()
        stale = services.store.get(order.id)
        fresh = services.store.get(order.id)
        fresh.mark_payment("failed", clock())
        assert services.store.save_if_status(fresh, "pending")

        stale.mark_payment("completed", clock())
        assert services.store.save_if_status(stale, "pending") is False

    def test_superseded_cancellation_leaves_stock_alone(self, services, place_order):
        order = place_order()
        stale = services.store.get(order.id)
        services.engine.transition(str(order.id), "confirmed")

        services.engine.apply(stale, "cancelled")
        assert services.inventory.get_product("prod-kb").stock == 10


class TestCancellation:
    def test_cancel_restores_stock_and_records_reason(self, services, place_order):
        order = place_order(status="confirmed")
        result = services.engine.transition(
            str(order.id), "cancelled", TransitionContext(reason="Customer request")
        )

        assert result.reconciliation.ok
        assert services.inventory.get_product("prod-kb").stock == 12
        assert services.store.get(order.id).cancellation_reason == "Customer request"

    def test_inventory_failure_does_not_undo_cancellation(self, services, place_order):
        services.inventory.configure(failing_product_ids=["prod-kb"])
        order = place_order()
        result = services.engine.transition(str(order.id), "cancelled")

        assert result.changed
        assert not result.reconciliation.ok
        assert result.reconciliation.failures[0]["product_id"] == "prod-kb"
        assert services.store.get(order.id).status == "cancelled"


class TestNotifications:
    def test_outbox_entry_written_and_sent(self, services, place_order, address):
        order = place_order()
        result = services.engine.transition(str(order.id), "confirmed")

        entries = _outbox_entries()
        assert len(entries) == 1
        assert str(entries[0].id) == result.notification_id
        assert entries[0].status == OutboxStatus.SENT.value
        assert services.notifier.sent[0]["recipient"] == address["email"]
        assert services.notifier.sent[0]["subject"] == f"Order {order.order_number} is now confirmed"

    def test_notifier_failure_keeps_transition(self, services, place_order):
        services.notifier.configure(should_succeed=False, raise_errors=True)
        order = place_order()
        result = services.engine.transition(str(order.id), "confirmed")

        assert result.changed
        assert services.store.get(order.id).status == "confirmed"
        entry = _outbox_entries()[0]
        assert entry.status == OutboxStatus.PENDING.value
        assert entry.attempts == 1
        assert "Notification delivery failed" in entry.last_error


class TestBulkTransition:
    def test_each_order_succeeds_or_fails_alone(self, services, place_order, staff):
        ok = place_order(status="confirmed")
        bad = place_order(status="pending")

        bulk = services.engine.bulk_transition(
            [str(ok.id), str(bad.id), "missing-id"], "processing", TransitionContext(actor=staff)
        )

        assert bulk.summary == {"total": 3, "succeeded": 1, "failed": 2}
        by_id = {r["order_id"]: r for r in bulk.results}
        assert by_id[str(ok.id)]["status"] == "processing"
        assert "Cannot transition from pending to processing" in by_id[str(bad.id)]["error"]
        assert services.store.get(bad.id).status == "pending"


class TestCustomerCancellation:
    def test_owner_cancels_confirmed_order(self, services, place_order):
        order = place_order(status="confirmed")
        result = services.engine.cancel_for_customer(str(order.id), Actor(user_id="cust-1"))

        assert result.outcome == TransitionOutcome.APPLIED
        stored = services.store.get(order.id)
        assert stored.status == "cancelled"
        assert stored.cancellation_reason == "Cancelled by customer"
        assert stored.history()[-1].updated_by == "cust-1"
        assert services.inventory.get_product("prod-kb").stock == 12

    def test_other_customer_cannot_cancel(self, services, place_order):
        order = place_order()
        with pytest.raises(Unauthorized):
            services.engine.cancel_for_customer(str(order.id), Actor(user_id="cust-2"))
        assert services.store.get(order.id).status == "pending"

    def test_processing_order_needs_staff(self, services, place_order):
        order = place_order(status="processing")
        with pytest.raises(InvalidTransition):
            services.engine.cancel_for_customer(str(order.id), Actor(user_id="cust-1"))

    def test_repeat_request_is_unchanged(self, services, place_order):
        order = place_order()
        services.engine.cancel_for_customer(str(order.id), Actor(user_id="cust-1"))
        result = services.engine.cancel_for_customer(str(order.id), Actor(user_id="cust-1"))

        assert result.outcome == TransitionOutcome.UNCHANGED
        assert services.inventory.get_product("prod-kb").stock == 12


class TestConcurrentCancellations:
    def test_unrelated_orders_restore_stock_exactly(self, services, place_order):
        from order_fulfillment.domain import fulfillment

        line = {"product_id": "prod-kb", "name": "Mechanical Keyboard", "unit_price": 2000.0, "quantity": 3}
        orders = [place_order(status="confirmed", items=[line]) for _ in range(6)]
        outcomes, errors = [], []

        def cancel(order_id):
            with fulfillment.domain_context():
                try:
                    outcomes.append(services.engine.transition(order_id, "cancelled").outcome)
                except Exception as exc:
                    errors.append(exc)

        threads = [threading.Thread(target=cancel, args=(str(order.id),)) for order in orders]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert outcomes == [TransitionOutcome.APPLIED] * 6
        assert services.inventory.get_product("prod-kb").stock == 10 + 6 * 3

    def test_racing_cancellations_of_one_order_restore_once(self, services, place_order):
        from order_fulfillment.domain import fulfillment

        order = place_order(status="confirmed")
        copies = [services.store.get(order.id) for _ in range(4)]
        outcomes, errors = [], []

        def cancel(copy):
            with fulfillment.domain_context():
                try:
                    outcomes.append(services.engine.apply(copy, "cancelled").outcome)
                except Exception as exc:
                    errors.append(exc)

        threads = [threading.Thread(target=cancel, args=(copy,)) for copy in copies]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert outcomes.count(TransitionOutcome.APPLIED) == 1
        assert outcomes.count(TransitionOutcome.SUPERSEDED) == 3
        assert services.inventory.get_product("prod-kb").stock == 12
