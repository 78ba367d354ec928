"""Inventory reconciler — keeps catalogue stock in step with order state.

Stock is reserved (decremented) at checkout before the order is persisted,
released again if that order is never kept, and restored (incremented) when
the order is cancelled. Each line item is handled on its own: a product that
was deleted from the catalogue is reported and skipped, and the remaining
items are still processed.
"""

from dataclasses import dataclass, field

import structlog
from protean.exceptions import ObjectNotFoundError

from order_fulfillment.inventory.port import InventoryStore, ProductStatus

logger = structlog.get_logger(__name__)


@dataclass
class ReconciliationReport:
    """Per-item outcome of a reserve or restore pass."""

    applied: list[dict] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {"applied": list(self.applied), "failures": list(self.failures)}


class InventoryReconciler:
    def __init__(self, store: InventoryStore):
        self.store = store

    def restore(self, order) -> ReconciliationReport:
        """Return every line item's quantity to stock after a cancellation."""
        logger.info("Restoring inventory for cancelled order", order_id=str(order.id))
        report = self._adjust_all(order, sign=1)
        if report.failures:
            logger.warning(
                "Inventory restore incomplete",
                order_id=str(order.id),
                failed_items=len(report.failures),
            )
        return report

    def reserve(self, order) -> ReconciliationReport:
        """Take every line item's quantity out of stock for a new order."""
        report = self._adjust_all(order, sign=-1)
        if report.failures:
            logger.warning(
                "Inventory reservation incomplete",
                order_id=str(order.id),
                failed_items=len(report.failures),
            )
        return report

    def release(self, reservation: ReconciliationReport) -> ReconciliationReport:
        """Put back the stock a reservation took when no order was kept for it."""
        report = ReconciliationReport()
        for entry in reservation.applied:
            try:
                report.applied.append(self._adjust(entry["product_id"], entry["variant_id"], -entry["quantity"]))
            except Exception as exc:
                logger.error(
                    "Could not release reserved stock",
                    product_id=entry["product_id"],
                    variant_id=entry["variant_id"],
                    quantity=-entry["quantity"],
                    error=str(exc),
                )
                report.failures.append({"product_id": entry["product_id"], "error": str(exc)})
        return report

    def _adjust_all(self, order, sign: int) -> ReconciliationReport:
        report = ReconciliationReport()
        for item in order.items or []:
            try:
                report.applied.append(self._adjust_item(item, sign * item.quantity))
            except Exception as exc:
                logger.warning(
                    "Stock adjustment failed for order item",
                    order_id=str(order.id),
                    product_id=str(item.product_id),
                    quantity=sign * item.quantity,
                    error=str(exc),
                )
                report.failures.append({"product_id": str(item.product_id), "error": str(exc)})
        return report

    def _adjust_item(self, item, delta: int) -> dict:
        product_id = str(item.product_id)
        product = self.store.get_product(product_id)
        if product is None:
            raise ObjectNotFoundError(f"Product {product_id} no longer exists")

        variant_id = None
        attributes = item.variant_attributes()
        if attributes:
            variant = product.find_variant(attributes)
            if variant is None:
                raise ObjectNotFoundError(f"No variant of product {product_id} matches {attributes}")
            variant_id = variant.id
        return self._adjust(product_id, variant_id, delta)

    def _adjust(self, product_id: str, variant_id: str | None, delta: int) -> dict:
        if variant_id:
            product = self.store.adjust_variant_stock(product_id, variant_id, delta)
        else:
            product = self.store.adjust_product_stock(product_id, delta)

        if delta > 0 and product.status == ProductStatus.OUT_OF_STOCK.value and product.total_stock > 0:
            self.store.set_product_status(product_id, ProductStatus.ACTIVE.value)
            logger.info("Product back in stock", product_id=product_id, total_stock=product.total_stock)
        elif delta < 0 and product.total_stock == 0 and product.status == ProductStatus.ACTIVE.value:
            self.store.set_product_status(product_id, ProductStatus.OUT_OF_STOCK.value)
            logger.info("Product out of stock", product_id=product_id)

        return {"product_id": product_id, "variant_id": variant_id, "quantity": delta}
