"""FastAPI application for the HVAC CRM quotation service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.base import BaseHTTPMiddleware

from hvaccrm.core.logging import configure_logging
from hvaccrm.db.connection import close_db
from hvaccrm.quotations.errors import (
    ConflictError,
    InvalidStateError,
    LifecycleError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from hvaccrm.web.routes import health, projects, quotations

# Initialize structured logging
configure_logging()
logger = structlog.get_logger()

ERROR_STATUS_CODES: dict[type[LifecycleError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    InvalidStateError: 409,
    ConflictError: 409,
    StoreError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_db()


app = FastAPI(
    title="HVAC CRM Quotations",
    description="Quotation lifecycle, invoicing and project financials",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise

        logger.info("request_completed", status_code=response.status_code)
        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestLoggingMiddleware)

# Prometheus Metrics
Instrumentator().instrument(app).expose(app)


# Exception Handlers
@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    """Map quotation lifecycle errors onto HTTP status codes."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.error("lifecycle_error", error_type=type(exc).__name__, error=str(exc))
    else:
        logger.info("lifecycle_rejected", error_type=type(exc).__name__, error=str(exc))
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


# Include Routers
app.include_router(health.router)
app.include_router(quotations.router)
app.include_router(projects.router)
