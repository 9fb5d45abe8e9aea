"""DLVR API service.

FastAPI application providing:
- Certified delivery sending and lifecycle events
- Signed receipts and public receipt verification
- Service of process and affidavits
- Public delivery tracking

The app factory builds one DeliveryOrchestrator per app; every router uses it
through app.state, so a single signing key backs all receipts the app issues.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dlvr.api.middleware import ErrorHandlerMiddleware, RequestIDMiddleware
from dlvr.api.middleware.errors import APIError, build_error_response, domain_error_response
from dlvr.api.routers import delivery_router, meta_router, public_router, service_router
from dlvr.core.config import Settings
from dlvr.core.errors import DLVRError
from dlvr.core.settings import get_settings
from dlvr.services.lifecycle import DeliveryOrchestrator

logger = logging.getLogger(__name__)

API_TITLE = "DLVR API"
API_DESCRIPTION = """
Certified delivery with signed, beacon-anchored receipts.

## Namespaces

- **/dlvr/v1/** - Deliveries, receipts, service of process, bulk sends
- **/verify/** - Public receipt verification
- **/track/** - Public delivery tracking
- **/api/v1/status** - Service status

## Documentation

- OpenAPI spec: `/api/openapi.json`
- Swagger UI: `/api/docs`
"""


def create_app(
    settings: Settings | None = None,
    orchestrator: DeliveryOrchestrator | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional Settings instance; defaults to the cached
            environment settings.
        orchestrator: Optional pre-built orchestrator (tests inject one with
            a mock beacon transport).

    Returns:
        Configured FastAPI application ready to serve requests.

    Example:
        app = create_app(Settings(environment="dev", beacon={"enabled": False}))
    """
    if settings is None:
        settings = orchestrator.settings if orchestrator is not None else get_settings()
    if orchestrator is None:
        orchestrator = DeliveryOrchestrator(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await orchestrator.initialize()
        yield

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=settings.app_version,
        # Interactive docs are not published in production.
        docs_url=None if settings.is_production else "/api/docs",
        redoc_url=None if settings.is_production else "/api/redoc",
        openapi_url=None if settings.is_production else "/api/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.orchestrator = orchestrator

    _add_middleware(app)
    _add_exception_handlers(app)
    _include_routers(app)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint for container orchestration."""
        return {"status": "healthy"}

    logger.info("DLVR API application created (version=%s)", settings.app_version)

    return app


def _add_middleware(app: FastAPI) -> None:
    # Last added is outermost: the request ID must be set before errors are rendered.
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)


def _add_exception_handlers(app: FastAPI) -> None:
    async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
        return build_error_response(
            error=exc.error,
            message=exc.message,
            status_code=exc.status_code,
            detail=exc.detail,
        )

    async def handle_domain_error(request: Request, exc: DLVRError) -> JSONResponse:
        return domain_error_response(exc)

    app.add_exception_handler(APIError, handle_api_error)
    app.add_exception_handler(DLVRError, handle_domain_error)


def _include_routers(app: FastAPI) -> None:
    app.include_router(delivery_router)
    app.include_router(service_router)
    app.include_router(public_router)
    app.include_router(meta_router)
