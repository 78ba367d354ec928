"""Fake cart store — in-memory carts keyed by user id."""

from order_fulfillment.cart.port import CartLine, CartStore


class FakeCartStore(CartStore):
    def __init__(self):
        self.carts: dict[str, list[CartLine]] = {}

    def put(self, user_id: str, lines: list[CartLine]) -> None:
        """Seed a user's cart."""
        self.carts[str(user_id)] = list(lines)

    def get_cart(self, user_id: str) -> list[CartLine]:
        return list(self.carts.get(str(user_id), []))

    def clear(self, user_id: str) -> None:
        self.carts.pop(str(user_id), None)

    def reset(self):
        self.carts.clear()
