"""Outbox dispatcher — hands pending notifications to the Notifier.

Runs right after a transition commits (single entry) and periodically from
the runner process (everything still pending). A notifier failure only
counts an attempt against the entry; it never reaches back into the order.

Before sending, a dispatcher claims the entry with a version-checked write
(``PENDING`` to ``SENDING``). Only the claim winner calls the notifier, so an
immediate dispatch racing a periodic pass, or two runner processes, send a
message once. A claim left behind by a crashed dispatcher expires after
``claim_lease`` and the entry is picked up again.
"""

import threading
from dataclasses import dataclass, field
from datetime import timedelta

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from order_fulfillment.notifier.port import Notifier
from order_fulfillment.outbox.outbox import NotificationOutbox, OutboxStatus
from order_fulfillment.utils.clock import Clock, utc_now

logger = structlog.get_logger(__name__)

_PAGE_SIZE = 100
_LOCK_STRIPES = 16
DEFAULT_CLAIM_LEASE = timedelta(minutes=5)


@dataclass
class DispatchReport:
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"sent": len(self.sent), "failed": len(self.failed)}


class OutboxDispatcher:
    def __init__(self, notifier: Notifier, clock: Clock = utc_now, claim_lease: timedelta = DEFAULT_CLAIM_LEASE):
        self.notifier = notifier
        self.clock = clock
        self.claim_lease = claim_lease
        self._stripes = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    @property
    def repo(self):
        return current_domain.repository_for(NotificationOutbox)

    def dispatch(self, entry_id: str) -> bool:
        """Dispatch a single entry. Returns True once the entry has been sent, now or earlier."""
        entry = self._claim(entry_id)
        if entry is None:
            return self.repo.get(entry_id).status == OutboxStatus.SENT.value
        return self._deliver(entry)

    def dispatch_pending(self, limit: int | None = None) -> DispatchReport:
        """Dispatch every claimable entry, oldest first. Each entry succeeds or fails on its own."""
        now = self.clock()
        candidates = (
            self.repo._dao.query.filter(status__in=[OutboxStatus.PENDING.value, OutboxStatus.SENDING.value])
            .order_by("created_at")
            .limit(limit or _PAGE_SIZE)
            .all()
            .items
        )

        report = DispatchReport()
        for candidate in candidates:
            entry_id = str(candidate.id)
            if not candidate.claimable(now, self.claim_lease):
                report.skipped.append(entry_id)
                continue
            try:
                entry = self._claim(entry_id)
                if entry is None:
                    report.skipped.append(entry_id)
                    continue
                sent = self._deliver(entry)
            except Exception:
                logger.exception("Outbox entry dispatch errored", outbox_id=entry_id)
                report.failed.append(entry_id)
                continue
            (report.sent if sent else report.failed).append(entry_id)

        if candidates:
            logger.info("Outbox dispatch pass finished", skipped=len(report.skipped), **report.to_dict())
        return report

    def _claim(self, entry_id: str) -> NotificationOutbox | None:
        """Mark the entry ``SENDING`` for this dispatcher, or return None if someone else holds it."""
        now = self.clock()
        with self._stripes[hash(entry_id) % _LOCK_STRIPES]:
            entry = self.repo.get(entry_id)
            if not entry.claimable(now, self.claim_lease):
                return None
            entry.claim(now, self.claim_lease)
            try:
                with UnitOfWork():
                    self.repo.add(entry)
            except ExpectedVersionError:
                logger.info("Outbox entry claimed by another dispatcher", outbox_id=entry_id)
                return None
        return entry

    def _deliver(self, entry: NotificationOutbox) -> bool:
        sent = self._send(entry)
        self.repo.add(entry)
        return sent

    def _send(self, entry: NotificationOutbox) -> bool:
        try:
            result = self.notifier.send(
                entry.recipient,
                entry.subject,
                entry.body,
                metadata={"order_id": str(entry.order_id), "event": entry.event},
            )
        except Exception as exc:
            result = {"status": "failed", "error": str(exc)}

        if result.get("status") == "sent":
            entry.mark_sent(result.get("message_id"), self.clock())
            logger.info("Notification sent", outbox_id=str(entry.id), order_id=str(entry.order_id))
            return True

        entry.mark_attempt_failed(result.get("error", "Unknown dispatch error"))
        logger.warning(
            "Notification dispatch failed",
            outbox_id=str(entry.id),
            order_id=str(entry.order_id),
            attempts=entry.attempts,
            gave_up=entry.status == OutboxStatus.FAILED.value,
            error=entry.last_error,
        )
        return False
