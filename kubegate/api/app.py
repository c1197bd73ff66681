"""FastAPI application factory for kubegate.

Usage::

    from kubegate.api.app import create_app

    app = create_app(cache=cache, permissions=permissions, config=config)

The factory is used by both the production bootstrap (``kubegate.app``) and
unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from kubegate.api.routes import metrics_router, router
from kubegate.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(
    cache: Any,
    permissions: Any = None,
    config: Any = None,
) -> FastAPI:
    """Create and configure the kubegate FastAPI application.

    Args:
        cache:       ResourceSynchronizer instance.
        permissions: PermissionCheckResult computed at startup.
        config:      KubeGateConfig.  Used for cluster name and namespace.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubegate import __version__

    app = FastAPI(
        title="kubegate",
        summary="Cluster cache and capability gate",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )

    app.state.cache = cache
    app.state.permissions = permissions
    app.state.config = config

    app.include_router(router, prefix=_API_PREFIX)
    app.include_router(metrics_router)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = exc.errors()
        first_msg = str(errors[0].get("msg", "")) if errors else ""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=first_msg).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
