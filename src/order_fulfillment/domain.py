"""Order fulfillment bounded context — order lifecycle from checkout to delivery.

Owns the order status state machine, tracking-number issuance, inventory
reconciliation on cancellation, time-based promotion of stale orders,
delivery-performance metrics, and checkout/payment orchestration. Uses CQRS
(not event sourcing): the Order aggregate is persisted as current state and
status writes are conditioned on the status they were computed from.
"""

from protean.domain import Domain

from order_fulfillment.utils.logging import configure_logging

configure_logging()

fulfillment = Domain(name="fulfillment")
