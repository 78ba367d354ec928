"""Order fulfillment FastAPI application.

Web server that handles checkout, payment callbacks, order status changes,
tracking lookups and operational reports synchronously over HTTP. Every
request runs inside the fulfillment domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied.
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from order_fulfillment.domain import fulfillment
from order_fulfillment.utils.logging import add_context, clear_context

fulfillment.init()

from order_fulfillment.api import register_exception_handlers, routers  # noqa: E402
from order_fulfillment.services import Services, build_services  # noqa: E402


def create_app(services: Services | None = None) -> FastAPI:
    """Build the app around ``services`` (wired from the environment by default)."""
    application = FastAPI(
        title="Order Fulfillment API",
        description="Order lifecycle from checkout to delivery",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the fulfillment domain context and bind a request id for logging."""
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        add_context(request_id=request_id, path=request.url.path)
        try:
            with fulfillment.domain_context():
                response = await call_next(request)
        finally:
            clear_context()
        response.headers["x-request-id"] = request_id
        return response

    register_exception_handlers(application)
    for router in routers:
        application.include_router(router)

    @application.get("/health")
    async def health():
        return JSONResponse(content={"status": "ok", "domain": fulfillment.name})

    application.state.services = services or build_services()
    return application


app = create_app()
