"""Order fulfillment API package."""

from order_fulfillment.api.errors import register_exception_handlers
from order_fulfillment.api.routes import checkout_router, operations_router, order_router, tracking_router

routers = [checkout_router, tracking_router, order_router, operations_router]

__all__ = [
    "checkout_router",
    "operations_router",
    "order_router",
    "register_exception_handlers",
    "routers",
    "tracking_router",
]
