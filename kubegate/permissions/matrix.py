"""The declared permission matrix.

The matrix is a pure function of static configuration: the base rows every
deployment needs, plus the Argo Rollouts rows when that integration is
enabled.  It is composed once, before the probe runs.
"""

from __future__ import annotations

from collections.abc import Iterable

from kubegate.models.permissions import PermissionRequirement

_READ = ("get", "list", "watch")
_SCALE = ("get", "update", "patch")

BASE_PERMISSIONS: tuple[PermissionRequirement, ...] = (
    PermissionRequirement(group="apps", resource="deployments", verbs=_READ),
    PermissionRequirement(group="apps", resource="replicasets", verbs=_READ),
    PermissionRequirement(group="apps", resource="daemonsets", verbs=_READ),
    PermissionRequirement(group="apps", resource="statefulsets", verbs=_READ),
    PermissionRequirement(
        group="autoscaling", resource="horizontalpodautoscalers", verbs=_READ, allow_graceful_failure=True
    ),
    PermissionRequirement(resource="services", verbs=_READ),
    PermissionRequirement(resource="pods", verbs=_READ),
    PermissionRequirement(resource="nodes", verbs=_READ),
    PermissionRequirement(resource="namespaces", verbs=_READ),
    PermissionRequirement(resource="events", verbs=_READ),
    PermissionRequirement(group="apps", resource="deployments", verbs=("patch",), allow_graceful_failure=True),
    PermissionRequirement(
        group="apps", resource="deployments", subresource="scale", verbs=_SCALE, allow_graceful_failure=True
    ),
    PermissionRequirement(
        group="apps", resource="statefulsets", subresource="scale", verbs=_SCALE, allow_graceful_failure=True
    ),
    PermissionRequirement(resource="pods", verbs=("delete",), allow_graceful_failure=True),
    PermissionRequirement(resource="pods", subresource="eviction", verbs=("create",), allow_graceful_failure=True),
    PermissionRequirement(resource="nodes", verbs=("patch",), allow_graceful_failure=True),
    PermissionRequirement(resource="pods", subresource="exec", verbs=("create",), allow_graceful_failure=True),
)

ARGO_ROLLOUT_PERMISSIONS: tuple[PermissionRequirement, ...] = (
    PermissionRequirement(
        group="argoproj.io", resource="rollouts", verbs=(*_READ, "patch"), allow_graceful_failure=True
    ),
)

CLUSTER_SCOPED_RESOURCES = frozenset({"nodes", "namespaces"})


def build_permission_matrix(
    *,
    namespace: str = "",
    argo_rollouts_enabled: bool = False,
) -> tuple[PermissionRequirement, ...]:
    """Compose the matrix for the given configuration.

    With a namespace restriction, rows for cluster-scoped resources are left
    out: those kinds are never subscribed and their features stay disabled.

    Raises:
        ValueError: if two rows produce the same permission key.
    """
    rows: list[PermissionRequirement] = list(BASE_PERMISSIONS)
    if argo_rollouts_enabled:
        rows.extend(ARGO_ROLLOUT_PERMISSIONS)
    if namespace:
        rows = [row for row in rows if row.resource not in CLUSTER_SCOPED_RESOURCES]
    ensure_unique_keys(rows)
    return tuple(rows)


def ensure_unique_keys(rows: Iterable[PermissionRequirement]) -> None:
    seen: set[str] = set()
    for row in rows:
        for key in row.keys():
            if key in seen:
                raise ValueError(f"Duplicate permission key in matrix: {key}")
            seen.add(key)
