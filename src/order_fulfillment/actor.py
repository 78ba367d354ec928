"""The authenticated caller, as handed to the engine by the upstream auth layer."""

from dataclasses import dataclass
from enum import Enum

from order_fulfillment.errors import Unauthorized


class Role(Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"
    SYSTEM = "system"


_STAFF_ROLES = {Role.STAFF.value, Role.ADMIN.value, Role.SYSTEM.value}


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str = Role.CUSTOMER.value

    @property
    def is_staff(self) -> bool:
        return self.role in _STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN.value, Role.SYSTEM.value)

    def require(self, *roles: Role) -> None:
        """Raise ``Unauthorized`` unless the actor holds one of ``roles`` (system always passes)."""
        if self.role == Role.SYSTEM.value:
            return
        if self.role not in {role.value for role in roles}:
            raise Unauthorized(f"Requires one of: {', '.join(role.value for role in roles)}")

    def ensure_can_view(self, order) -> None:
        if not (self.is_staff or order.owned_by(self.user_id)):
            raise Unauthorized()

    def ensure_owns(self, order) -> None:
        if not order.owned_by(self.user_id):
            raise Unauthorized("Only the customer who placed the order can do this")


SYSTEM_ACTOR = Actor(user_id="system", role=Role.SYSTEM.value)
