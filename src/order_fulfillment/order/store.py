"""Order persistence helpers — lookups and the conditioned status write.

Every status write goes through ``save_if_status``: the order is persisted
only if the stored status still equals the status the change was computed
from. The check and the write happen inside one unit of work while a striped
per-order lock is held, and nothing slow (gateway, notifier, inventory) runs
under that lock.
"""

import threading
from collections.abc import Iterator

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from order_fulfillment.order.order import Order

logger = structlog.get_logger(__name__)

_PAGE_SIZE = 100
_LOCK_STRIPES = 64


class OrderStore:
    def __init__(self):
        self._stripes = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    @property
    def repo(self):
        return current_domain.repository_for(Order)

    def _lock_for(self, order_id) -> threading.Lock:
        return self._stripes[hash(str(order_id)) % _LOCK_STRIPES]

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, order_id) -> Order:
        """Load an order. Raises ``ObjectNotFoundError`` if it does not exist."""
        return self.repo.get(str(order_id))

    def _first(self, **filters) -> Order | None:
        results = self.repo._dao.query.filter(**filters).all()
        return results.first if results and results.items else None

    def find_by_tracking_number(self, tracking_number: str) -> Order | None:
        return self._first(tracking_number=tracking_number)

    def find_by_payment_reference(self, reference: str) -> Order | None:
        return self._first(payment_reference=reference)

    def tracking_number_exists(self, tracking_number: str) -> bool:
        return self.find_by_tracking_number(tracking_number) is not None

    def count(self) -> int:
        return self.repo._dao.query.all().total

    def iter_orders(self, **filters) -> Iterator[Order]:
        """Yield every matching order, oldest first, one page at a time."""
        offset = 0
        while True:
            page = (
                self.repo._dao.query.filter(**filters)
                .order_by("created_at")
                .offset(offset)
                .limit(_PAGE_SIZE)
                .all()
                .items
            )
            yield from page
            if len(page) < _PAGE_SIZE:
                return
            offset += _PAGE_SIZE

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def add(self, order: Order, *others) -> Order:
        """Persist a new order (and companion aggregates) in one unit of work."""
        with UnitOfWork():
            self.repo.add(order)
            for other in others:
                current_domain.repository_for(type(other)).add(other)
        return order

    def save_if_status(self, order: Order, expected_status: str, *others, **expected) -> bool:
        """Compare-and-swap write on status.

        Persists ``order`` together with ``others`` only if the stored order is
        still in ``expected_status`` (and matches any extra ``expected`` field
        values). Returns False, writing nothing, when another actor changed
        the order first. A stale in-memory copy (the stored version moved on
        after ``order`` was loaded) counts as a change by another actor, even
        when the status still matches.
        """
        with self._lock_for(order.id):
            try:
                with UnitOfWork():
                    stored = self.repo._dao.query.filter(id=str(order.id), status=expected_status, **expected).all()
                    if not stored.items:
                        return False
                    self.repo.add(order)
                    for other in others:
                        current_domain.repository_for(type(other)).add(other)
            except ExpectedVersionError:
                logger.info("Stale order copy, write rejected", order_id=str(order.id), expected=expected_status)
                return False
        return True
