"""Cart store port — where the customer's cart lives until checkout clears it."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    size: str | None = None
    color: str | None = None
    material: str | None = None

    def variant_attributes(self) -> dict:
        return {key: value for key, value in (("size", self.size), ("color", self.color), ("material", self.material)) if value}


class CartStore(ABC):
    @abstractmethod
    def get_cart(self, user_id: str) -> list[CartLine]:
        """Return the user's cart lines (empty list when there is no cart)."""
        ...

    @abstractmethod
    def clear(self, user_id: str) -> None:
        """Empty the user's cart."""
        ...
