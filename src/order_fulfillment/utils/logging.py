"""Structured logging for the order fulfillment engine.

Every module logs through ``structlog.get_logger(__name__)`` with key/value
fields (``order_id``, ``from_status``, ``to_status`` ...). This module wires
those loggers onto the stdlib root logger once, at domain import time.

Environment:
    PROTEAN_ENV / ENVIRONMENT / ENV   selects the profile (default development)
    LOG_LEVEL                         overrides the profile's level
    LOG_DIR                           directory for rotating files (default logs)
"""

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}
_JSON_ENVIRONMENTS = {"production", "staging"}
_NOISY_LOGGERS = ("urllib3", "asyncio", "httpx", "uvicorn.access")
_MAX_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class LogProfile:
    environment: str
    level: str
    log_dir: Path | None
    json: bool

    @classmethod
    def from_env(cls) -> "LogProfile":
        environment = (
            os.getenv("PROTEAN_ENV") or os.getenv("ENVIRONMENT") or os.getenv("ENV") or "development"
        ).lower()
        return cls(
            environment=environment,
            level=os.getenv("LOG_LEVEL", _LEVELS.get(environment, "INFO")).upper(),
            # Test runs write no files
            log_dir=None if environment == "test" else Path(os.getenv("LOG_DIR", "logs")),
            json=environment in _JSON_ENVIRONMENTS,
        )


def _rotating(path: Path, level: int | str) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=_MAX_BYTES, backupCount=5, encoding="utf-8")
    handler.setLevel(level)
    return handler


def _handlers(profile: LogProfile) -> list[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(profile.level)
    handlers = [console]

    if profile.log_dir is not None:
        profile.log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(_rotating(profile.log_dir / "order_fulfillment.log", profile.level))
        handlers.append(_rotating(profile.log_dir / "order_fulfillment_error.log", logging.ERROR))
    return handlers


def _renderer(profile: LogProfile):
    if profile.json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=True,
        exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=True, max_frames=2),
    )


def configure_logging(profile: LogProfile | None = None) -> LogProfile:
    """Route structlog through the stdlib root logger for ``profile``."""
    profile = profile or LogProfile.from_env()

    root = logging.getLogger()
    root.setLevel(profile.level)
    root.handlers = _handlers(profile)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            ),
            _renderer(profile),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return profile


def add_context(**kwargs: Any) -> None:
    """Bind fields (request id, path) onto every log line for the current request."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
