"""FastAPI application entry point and lifecycle management."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from iap_coordinator.logging_config import configure_logging, get_logger
from iap_coordinator.middleware import ContextMiddleware, RequestLoggingMiddleware
from iap_coordinator.models import ErrorResponse

VERSION = "0.1.0"

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Registers the gateway as a transaction observer and starts loading the
    product list; unregisters on shutdown.
    """
    from iap_coordinator.services.purchase_gateway import get_purchase_gateway
    from iap_coordinator.services.ui_state import get_ui_state_recorder
    from iap_coordinator.services.view_model import get_view_model

    logger.info("coordinator_starting", version=VERSION)

    try:
        view_model = get_view_model(delegate=get_ui_state_recorder())
        view_model.view_did_setup()
        logger.info("coordinator_started", status="ready")
        yield
    finally:
        logger.info("coordinator_shutting_down")
        get_purchase_gateway().stop_observing()
        logger.info("coordinator_stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    json_format = os.getenv("LOG_FORMAT", "json").lower() == "json"
    configure_logging(log_level=log_level, json_format=json_format)

    app = FastAPI(
        title="IAP Purchase Coordinator",
        description="Purchase flow coordinator between a store UI and a transaction queue",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Allow all origins for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    include_request_details = os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true"
    app.add_middleware(RequestLoggingMiddleware, include_request_details=include_request_details)
    app.add_middleware(ContextMiddleware)

    from iap_coordinator.api.control import router as control_router
    from iap_coordinator.api.store import router as store_router

    app.include_router(store_router)
    app.include_router(control_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Health check endpoint."""
        logger.debug("root_endpoint_called")
        return {
            "service": "iap-coordinator",
            "status": "running",
            "version": VERSION,
        }

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Detailed health check."""
        from iap_coordinator.repositories.product_repository import get_product_repository
        from iap_coordinator.services.purchase_gateway import get_purchase_gateway

        gateway = get_purchase_gateway()
        product_repo = get_product_repository()

        return {
            "status": "healthy",
            "observer": "registered" if gateway.is_observing else "not_registered",
            "payments": "enabled" if gateway.can_make_payments() else "disabled",
            "catalog": f"loaded ({len(product_repo)} products)",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="internal_server_error",
                message="An unexpected error occurred",
            ).model_dump(),
        )

    logger.info("app_created", endpoints=len(app.routes))
    return app
