"""
Multimail demo service.

FastAPI application entry point.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from multimail import __version__
from multimail.app.api import email_router
from multimail.app.dependencies import get_dispatcher, initialize_services, shutdown_services
from multimail.errors import (
    DispatchInterruptedError,
    MailError,
    MessageValidationError,
    PoolSaturationError,
    TransportError,
)
from multimail.observability import configure_logging, log_context

configure_logging()
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info("Starting Multimail services...")
    try:
        initialize_services()
        logger.info("Multimail services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down Multimail services...")
    try:
        shutdown_services()
        logger.info("Multimail services shut down successfully")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)


def _error_response(status_code: int, exc: MailError, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc), **extra},
    )


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title="Multimail",
        description="Send mail through several independently configured transports",
        version=__version__,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        with log_context(request_id=request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.exception_handler(MessageValidationError)
    async def _validation_error(request: Request, exc: MessageValidationError) -> JSONResponse:
        return _error_response(422, exc, errors=exc.errors)

    @app.exception_handler(TransportError)
    async def _transport_error(request: Request, exc: TransportError) -> JSONResponse:
        return _error_response(502, exc, template=exc.template)

    @app.exception_handler(PoolSaturationError)
    async def _saturated(request: Request, exc: PoolSaturationError) -> JSONResponse:
        return _error_response(503, exc)

    @app.exception_handler(DispatchInterruptedError)
    async def _interrupted(request: Request, exc: DispatchInterruptedError) -> JSONResponse:
        return _error_response(504, exc, template=exc.template)

    app.include_router(email_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, str]:
        """Root endpoint with service info."""
        return {
            "service": "multimail",
            "version": __version__,
            "status": "running",
        }

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, Any]:
        """
        Health check endpoint.

        Returns registered templates and worker pool statistics.
        """
        try:
            dispatcher = get_dispatcher()
            return {
                "status": "healthy",
                "templates": dispatcher.registry.identifiers,
                "pool": dispatcher.pool.stats(),
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
            }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "multimail.app.main:app",
        host="0.0.0.0",
        port=8000,
    )
