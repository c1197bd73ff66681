"""Route handlers for the operational REST API."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kubegate.api.schemas import HealthResponse, StatusResponse
from kubegate.models.resources import CacheReadiness

router = APIRouter()
metrics_router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> JSONResponse:
    """Liveness plus readiness: 200 once the cache is ready, 503 otherwise."""
    from kubegate import __version__

    cache = request.app.state.cache
    state = cache.readiness() if cache is not None else CacheReadiness.WARMING
    body = HealthResponse(
        status="ok" if state is CacheReadiness.READY else "degraded",
        version=__version__,
        cache_state=str(state),
    )
    return JSONResponse(status_code=200 if state is CacheReadiness.READY else 503, content=body.model_dump())


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    cache = request.app.state.cache
    permissions = request.app.state.permissions
    config = request.app.state.config

    return StatusResponse(
        cluster_name=config.cluster.cluster_name if config is not None else "",
        namespace=config.cluster.namespace if config is not None else "",
        distribution=cache.distribution if cache is not None else "",
        cache_state=str(cache.readiness()) if cache is not None else str(CacheReadiness.WARMING),
        kinds=[str(kind) for kind in cache.kinds] if cache is not None else [],
        object_counts=cache.counts() if cache is not None else {},
        permissions={key: str(outcome) for key, outcome in permissions.outcomes.items()}
        if permissions is not None
        else {},
        features=permissions.predicates() if permissions is not None else {},
    )


@metrics_router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
