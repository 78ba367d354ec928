"""Automated sweep — time-driven promotion of stale orders.

Two rules, each selecting orders by their *current* stored status:

    pending + payment completed, older than the confirm grace period → confirmed
    confirmed, older than the processing grace period                → processing

Promotions go through the transition engine, whose conditioned write makes a
race with a staff member moving the same order harmless. A failure on one
order is logged and the sweep carries on with the next.

``SweepScheduler`` runs the sweep (and the outbox dispatcher) on a timer in
the runner process; the admin API can also trigger a single pass.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta

import structlog

from order_fulfillment.actor import SYSTEM_ACTOR
from order_fulfillment.config import Settings
from order_fulfillment.order.order import OrderStatus, PaymentStatus
from order_fulfillment.order.transitions import TransitionContext, TransitionEngine
from order_fulfillment.utils.clock import Clock, as_utc, utc_now

logger = structlog.get_logger(__name__)

AUTO_CONFIRM_NOTE = "Order automatically confirmed after payment verification"
AUTO_PROCESS_NOTE = "Order moved to processing automatically"


@dataclass(frozen=True)
class SweepRule:
    action: str
    source: str
    target: str
    grace: timedelta
    note: str
    payment_status: str | None = None


@dataclass
class SweepReport:
    updates: list[dict] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "updates": list(self.updates),
            "failures": list(self.failures),
            "total_updated": len(self.updates),
        }


class OrderSweep:
    def __init__(self, engine: TransitionEngine, clock: Clock = utc_now, settings: Settings | None = None):
        self.engine = engine
        self.clock = clock
        settings = settings or Settings()
        self.rules = (
            SweepRule(
                action="auto-confirmed",
                source=OrderStatus.PENDING.value,
                target=OrderStatus.CONFIRMED.value,
                grace=settings.auto_confirm_after,
                note=AUTO_CONFIRM_NOTE,
                payment_status=PaymentStatus.COMPLETED.value,
            ),
            SweepRule(
                action="auto-processing",
                source=OrderStatus.CONFIRMED.value,
                target=OrderStatus.PROCESSING.value,
                grace=settings.auto_process_after,
                note=AUTO_PROCESS_NOTE,
            ),
        )

    def run(self) -> SweepReport:
        """Run one pass of every rule."""
        now = self.clock()
        report = SweepReport()
        for rule in self.rules:
            self._apply_rule(rule, now, report)

        logger.info(
            "Automated order sweep finished",
            updated=len(report.updates),
            failed=len(report.failures),
        )
        return report

    def _apply_rule(self, rule: SweepRule, now, report: SweepReport) -> None:
        cutoff = now - rule.grace
        filters = {"status": rule.source}
        if rule.payment_status:
            filters["payment_status"] = rule.payment_status

        # Collect first: promoted orders drop out of the status filter mid-iteration
        candidates = [o for o in self.engine.store.iter_orders(**filters) if as_utc(o.created_at) < cutoff]
        context = TransitionContext(actor=SYSTEM_ACTOR, note=rule.note)

        for order in candidates:
            try:
                result = self.engine.apply(order, rule.target, context)
            except Exception as exc:
                logger.error(
                    "Automated status update failed",
                    order_id=str(order.id),
                    action=rule.action,
                    error=str(exc),
                )
                report.failures.append({"order_id": str(order.id), "action": rule.action, "error": str(exc)})
                continue

            if result.changed:
                report.updates.append({"order_id": str(order.id), "action": rule.action})


class SweepScheduler:
    """Periodic runner for the sweep and the outbox dispatcher."""

    def __init__(self, domain, services, interval: float | None = None, outbox_interval: float | None = None):
        self.domain = domain
        self.services = services
        self.interval = interval or services.settings.sweep_interval_seconds
        self.outbox_interval = outbox_interval or services.settings.outbox_interval_seconds
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        self._stopping.set()

    def sweep_once(self) -> SweepReport:
        with self.domain.domain_context():
            return self.services.sweep.run()

    def dispatch_once(self):
        with self.domain.domain_context():
            return self.services.dispatcher.dispatch_pending()

    async def _every(self, seconds: float, job, name: str) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.to_thread(job)
            except Exception:
                logger.exception("Scheduled job failed", job=name)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
            except TimeoutError:
                pass

    async def run(self) -> None:
        logger.info("Sweep scheduler started", interval=self.interval, outbox_interval=self.outbox_interval)
        await asyncio.gather(
            self._every(self.interval, self.sweep_once, "order_sweep"),
            self._every(self.outbox_interval, self.dispatch_once, "outbox_dispatch"),
        )
        logger.info("Sweep scheduler stopped")
