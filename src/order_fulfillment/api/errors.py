"""Map engine errors onto HTTP responses.

Every error body has the same shape::

    {"error": {"code": "...", "message": "...", "details": {...}}}
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError

from order_fulfillment.errors import ExternalServiceError, InvalidTransition, TrackingNumberExhausted, Unauthorized

logger = structlog.get_logger(__name__)

ERROR_CODES = {
    "VALIDATION_ERROR": 400,
    "UNAUTHORIZED": 403,
    "NOT_FOUND": 404,
    "INVALID_TRANSITION": 409,
    "EXTERNAL_SERVICE_ERROR": 502,
    "TRACKING_NUMBER_UNAVAILABLE": 503,
}


def error_response(code: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_CODES[code],
        content={"error": {"code": code, "message": message, "details": details or {}}},
    )


def _first_message(messages) -> str:
    if isinstance(messages, dict):
        for value in messages.values():
            if value:
                return str(value[0]) if isinstance(value, list) else str(value)
    return "Request validation failed"


async def _invalid_transition(request: Request, exc: InvalidTransition) -> JSONResponse:
    return error_response(
        "INVALID_TRANSITION",
        _first_message(exc.messages),
        {"current": exc.current, "target": exc.target},
    )


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return error_response("VALIDATION_ERROR", _first_message(exc.messages), exc.messages)


async def _not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return error_response("NOT_FOUND", str(exc) or "Not found")


async def _unauthorized(request: Request, exc: Unauthorized) -> JSONResponse:
    return error_response("UNAUTHORIZED", exc.message)


async def _external_service(request: Request, exc: ExternalServiceError) -> JSONResponse:
    logger.warning("External service error", service=exc.service, error=exc.message, path=request.url.path)
    return error_response(
        "EXTERNAL_SERVICE_ERROR",
        exc.message,
        {"service": exc.service, "timed_out": exc.timed_out},
    )


async def _tracking_number_exhausted(request: Request, exc: TrackingNumberExhausted) -> JSONResponse:
    logger.error("Tracking number allocation exhausted", error=str(exc), path=request.url.path)
    return error_response("TRACKING_NUMBER_UNAVAILABLE", str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    # Subclass before base class: Starlette resolves handlers along the MRO
    app.add_exception_handler(InvalidTransition, _invalid_transition)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(Unauthorized, _unauthorized)
    app.add_exception_handler(ExternalServiceError, _external_service)
    app.add_exception_handler(TrackingNumberExhausted, _tracking_number_exhausted)
