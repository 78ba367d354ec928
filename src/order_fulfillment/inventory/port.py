"""Inventory store port — the engine's narrow view of catalogue stock.

The catalogue owns products; the engine only reads product snapshots (for
checkout pricing) and adjusts stock counters. Adapters must make each
adjustment atomic per product or per variant; no wider lock is assumed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class ProductStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out_of_stock"


@dataclass(frozen=True)
class VariantRecord:
    id: str
    stock: int = 0
    size: str | None = None
    color: str | None = None
    material: str | None = None
    price: float | None = None
    sku: str | None = None

    def matches(self, attributes: dict) -> bool:
        """True when every requested attribute equals this variant's value."""
        return all(getattr(self, key, None) == value for key, value in attributes.items())


@dataclass(frozen=True)
class ProductRecord:
    id: str
    name: str
    price: float
    stock: int = 0
    status: str = ProductStatus.ACTIVE.value
    sku: str | None = None
    seller_id: str | None = None
    discount_percent: float = 0.0
    variants: tuple[VariantRecord, ...] = field(default_factory=tuple)

    @property
    def total_stock(self) -> int:
        return self.stock + sum(v.stock for v in self.variants)

    @property
    def sale_price(self) -> float:
        """Catalogue price after the product's own percentage discount."""
        if self.discount_percent > 0:
            return round(self.price * (1 - self.discount_percent / 100), 2)
        return self.price

    def find_variant(self, attributes: dict) -> VariantRecord | None:
        return next((v for v in self.variants if v.matches(attributes)), None)


class InventoryStore(ABC):
    """Abstract interface for inventory adapters."""

    @abstractmethod
    def get_product(self, product_id: str) -> ProductRecord | None:
        """Return the current product record, or None if it does not exist."""
        ...

    @abstractmethod
    def adjust_product_stock(self, product_id: str, delta: int) -> ProductRecord:
        """Atomically add ``delta`` (may be negative) to the product's own stock.

        Raises:
            ObjectNotFoundError: the product does not exist.
            ValidationError: the adjustment would take stock below zero.
        """
        ...

    @abstractmethod
    def adjust_variant_stock(self, product_id: str, variant_id: str, delta: int) -> ProductRecord:
        """Atomically add ``delta`` to one variant's stock. Same errors as above."""
        ...

    @abstractmethod
    def set_product_status(self, product_id: str, status: str) -> ProductRecord:
        """Set the product's availability status."""
        ...
