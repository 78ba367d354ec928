"""Fake inventory adapter — in-memory product stock for testing and development.

Each product has its own lock, so adjustments to unrelated products never
wait on each other. Specific products can be configured to fail, which is
how tests exercise per-item failure isolation.
"""

import threading
from collections import defaultdict
from dataclasses import replace

from protean.exceptions import ObjectNotFoundError, ValidationError

from order_fulfillment.inventory.port import InventoryStore, ProductRecord, VariantRecord


class FakeInventoryStore(InventoryStore):
    def __init__(self):
        self.products: dict[str, ProductRecord] = {}
        self.failing_product_ids: set[str] = set()
        self.failure_reason = "Inventory service unavailable"
        self._locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._registry_lock = threading.Lock()

    def configure(self, failing_product_ids=(), failure_reason: str = "Inventory service unavailable"):
        """Make adjustments for the given products raise, for failure-path tests."""
        self.failing_product_ids = set(failing_product_ids)
        self.failure_reason = failure_reason

    def add_product(
        self,
        product_id: str,
        name: str,
        price: float,
        stock: int = 0,
        status: str = "active",
        sku: str | None = None,
        seller_id: str | None = None,
        discount_percent: float = 0.0,
        variants: list[dict] | None = None,
    ) -> ProductRecord:
        """Seed a product. Variants are dicts of VariantRecord fields."""
        record = ProductRecord(
            id=product_id,
            name=name,
            price=price,
            stock=stock,
            status=status,
            sku=sku,
            seller_id=seller_id,
            discount_percent=discount_percent,
            variants=tuple(VariantRecord(**v) for v in variants or []),
        )
        self.products[product_id] = record
        return record

    def _lock_for(self, product_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks[product_id]

    def _require(self, product_id: str) -> ProductRecord:
        if product_id in self.failing_product_ids:
            raise RuntimeError(self.failure_reason)
        product = self.products.get(product_id)
        if product is None:
            raise ObjectNotFoundError(f"Product {product_id} does not exist")
        return product

    def get_product(self, product_id: str) -> ProductRecord | None:
        return self.products.get(product_id)

    def adjust_product_stock(self, product_id: str, delta: int) -> ProductRecord:
        with self._lock_for(product_id):
            product = self._require(product_id)
            new_stock = product.stock + delta
            if new_stock < 0:
                raise ValidationError({"stock": [f"Insufficient stock for product {product_id}"]})
            product = replace(product, stock=new_stock)
            self.products[product_id] = product
            return product

    def adjust_variant_stock(self, product_id: str, variant_id: str, delta: int) -> ProductRecord:
        with self._lock_for(product_id):
            product = self._require(product_id)
            variants = list(product.variants)
            index = next((i for i, v in enumerate(variants) if v.id == variant_id), None)
            if index is None:
                raise ObjectNotFoundError(f"Variant {variant_id} of product {product_id} does not exist")
            new_stock = variants[index].stock + delta
            if new_stock < 0:
                raise ValidationError({"stock": [f"Insufficient stock for variant {variant_id}"]})
            variants[index] = replace(variants[index], stock=new_stock)
            product = replace(product, variants=tuple(variants))
            self.products[product_id] = product
            return product

    def set_product_status(self, product_id: str, status: str) -> ProductRecord:
        with self._lock_for(product_id):
            product = replace(self._require(product_id), status=status)
            self.products[product_id] = product
            return product

    def reset(self):
        """Clear all products (useful between tests)."""
        self.products.clear()
        self.failing_product_ids.clear()
