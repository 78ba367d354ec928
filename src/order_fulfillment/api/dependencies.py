"""Request-scoped dependencies: the wired services and the calling actor."""

from fastapi import Header, Request

from order_fulfillment.actor import Actor, Role
from order_fulfillment.errors import Unauthorized
from order_fulfillment.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_user_role: str = Header(default=Role.CUSTOMER.value),
) -> Actor:
    """Identity set by the upstream authentication layer."""
    if not x_user_id:
        raise Unauthorized("Authentication required")
    if x_user_role not in {Role.CUSTOMER.value, Role.STAFF.value, Role.ADMIN.value}:
        raise Unauthorized(f"Unknown role: {x_user_role}")
    return Actor(user_id=x_user_id, role=x_user_role)
