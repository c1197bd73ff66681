"""Response models for the operational REST API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str
    version: str
    cache_state: str


class StatusResponse(BaseModel):
    """Cache and capability state of this instance.

    Only counts and outcomes are exposed, never cached object content.
    """

    cluster_name: str
    namespace: str = Field(description="Namespace restriction, empty for cluster-wide")
    distribution: str
    cache_state: str
    kinds: list[str]
    object_counts: dict[str, int]
    permissions: dict[str, str]
    features: dict[str, bool]


class ErrorResponse(BaseModel):
    error: str
    detail: str
