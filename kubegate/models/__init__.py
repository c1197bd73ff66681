"""Core data structures for kubegate."""

from kubegate.models.config import KubeGateConfig
from kubegate.models.permissions import PermissionOutcome, PermissionRequirement
from kubegate.models.resources import (
    ARGO_ROLLOUT,
    CacheReadiness,
    CustomResourceKind,
    OwnerReference,
    OwnerReferenceList,
    ResourceChange,
    ResourceKind,
)

__all__ = [
    "ARGO_ROLLOUT",
    "CacheReadiness",
    "CustomResourceKind",
    "KubeGateConfig",
    "OwnerReference",
    "OwnerReferenceList",
    "PermissionOutcome",
    "PermissionRequirement",
    "ResourceChange",
    "ResourceKind",
]
