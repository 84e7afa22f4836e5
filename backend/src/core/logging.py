"""
Structured logging for the order API.

structlog renders to the console in development and to JSON lines elsewhere.
The request id and the acting party live in context variables, so every
line logged while an order request is handled carries them without being
passed around explicitly.
"""

import logging
import sys
import time
from contextvars import ContextVar
from typing import Any, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

from src.core.config import get_settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
actor_ctx: ContextVar[Optional[tuple[str, Optional[str]]]] = ContextVar(
    "actor", default=None
)

QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


def add_correlation(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Copy the request id and acting party into the event."""
    request_id = request_id_ctx.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)

    actor = actor_ctx.get()
    if actor is not None:
        event_dict.setdefault("actor_id", actor[0])
        event_dict.setdefault("actor_role", actor[1])
    return event_dict


def configure_logging() -> None:
    """
    Install the structlog processor chain and the stdlib root handler.

    Level comes from APP_LOG_LEVEL.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_correlation,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.is_development:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Make ``request_id`` the current correlation id.

    A fresh UUID is used when the caller did not send one.
    """
    request_id = request_id or str(uuid4())
    request_id_ctx.set(request_id)
    return request_id


def get_request_id() -> str:
    return request_id_ctx.get()


def set_actor(actor_id: Optional[str], role: Optional[str]) -> None:
    """Record the authenticated party for the rest of the request."""
    actor_ctx.set((actor_id, role) if actor_id else None)


def clear_context() -> None:
    """Forget request-scoped values once the response is sent."""
    request_id_ctx.set("")
    actor_ctx.set(None)


class PerformanceLogger:
    """
    Times a block and logs its duration.

    Blocks slower than ``slow_threshold_ms`` are logged as warnings and
    blocks that raise are logged as errors with the exception type.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        slow_threshold_ms: float = 500,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.slow_threshold_ms = slow_threshold_ms
        self.context = context
        self._started: Optional[float] = None

    @property
    def elapsed_ms(self) -> float:
        if self._started is None:
            return 0.0
        return round((time.perf_counter() - self._started) * 1000, 2)

    def __enter__(self) -> "PerformanceLogger":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        fields = {"operation": self.operation, "duration_ms": self.elapsed_ms, **self.context}

        if exc_type is not None:
            self.logger.error("Operation failed", error_type=exc_type.__name__, **fields)
        elif fields["duration_ms"] > self.slow_threshold_ms:
            self.logger.warning("Slow operation", **fields)
        else:
            self.logger.debug("Operation completed", **fields)


def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    **context: Any,
) -> PerformanceLogger:
    """
    Time a block of order processing.

    Example:
        >>> with log_performance(logger, "order_creation", buyer_id=str(buyer_id)):
        ...     order = await creator.create(request)
    """
    return PerformanceLogger(logger, operation, **context)
