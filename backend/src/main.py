"""
AgroMarket order API application.

Wires the order router and probe endpoints into one FastAPI app, installs
request correlation and rate limiting, and renders every failure as the same
error envelope: ``error``, ``message``, ``code`` and ``request_id``.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.health import router as health_router
from src.api.rate_limit import limiter
from src.api.v1 import orders_router
from src.core.config import get_settings
from src.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from src.database.connection import close_database_connections
from src.services.orders.errors import OrderServiceError

configure_logging()
logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log startup and dispose of the database engine on shutdown."""
    settings = get_settings()
    logger.info(
        "Order API starting",
        environment=settings.environment,
        version=settings.app_version,
        allow_late_cancellation=settings.allow_late_cancellation,
    )

    yield

    with log_performance(logger, "order_api_shutdown"):
        await close_database_connections()


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Order creation, stock reservation and fulfillment tracking",
    lifespan=lifespan,
    debug=settings.debug,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


def error_response(
    status_code: int, error: str, message: str, code: str, **extra: Any
) -> JSONResponse:
    """Build the error envelope shared by every handler."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "code": code,
            "request_id": get_request_id(),
            **extra,
        },
    )


@app.middleware("http")
async def correlate_request(request: Request, call_next):
    """
    Tag the request with an id, time it and echo the id back.

    An incoming ``X-Request-ID`` is reused so callers can follow one order
    operation across services.
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    path = request.url.path

    try:
        with log_performance(logger, "http_request", method=request.method, path=path):
            response = await call_next(request)
    except Exception as e:
        logger.error(
            "Request crashed",
            method=request.method,
            path=path,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    else:
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "Request handled",
            method=request.method,
            path=path,
            status_code=response.status_code,
        )
        return response
    finally:
        clear_context()


@app.exception_handler(OrderServiceError)
async def order_service_exception_handler(
    request: Request, exc: OrderServiceError
) -> JSONResponse:
    """
    Render order core errors with their own status and code.

    The message of server-side failures is replaced by a generic one; the
    real cause only goes to the log.
    """
    server_side = exc.status_code >= 500
    log = logger.error if server_side else logger.warning
    log(
        "Order request failed" if server_side else "Order request rejected",
        method=request.method,
        path=request.url.path,
        code=exc.code,
        error=exc.message,
        **exc.context,
    )
    return error_response(
        exc.status_code,
        type(exc).__name__,
        GENERIC_ERROR_MESSAGE if server_side else exc.message,
        exc.code,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning(
        "Malformed order request",
        method=request.method,
        path=request.url.path,
        errors=exc.errors(),
    )
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation Error",
        "Request validation failed",
        "REQUEST_INVALID",
        details=jsonable_encoder(exc.errors()),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        GENERIC_ERROR_MESSAGE,
        "INTERNAL_ERROR",
    )


app.include_router(health_router)
app.include_router(
    orders_router,
    prefix=f"{settings.api_v1_prefix}/orders",
    tags=["Orders"],
)
