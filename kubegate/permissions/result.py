"""Immutable permission check result and its feature predicates.

Consumers never look up raw permission keys.  Each gated feature has one
named predicate here, which keeps the key strings in a single place and lets
every call site be tested with ``mock_all_permitted()`` or
``mock_all_denied()``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from kubegate.models.permissions import PermissionOutcome, PermissionRequirement
from kubegate.permissions.matrix import ARGO_ROLLOUT_PERMISSIONS, BASE_PERMISSIONS


class PermissionCheckResult:
    """Outcome per permission key, computed once at startup."""

    def __init__(self, outcomes: Mapping[str, PermissionOutcome]) -> None:
        self._outcomes = MappingProxyType(dict(outcomes))

    @property
    def outcomes(self) -> Mapping[str, PermissionOutcome]:
        return self._outcomes

    @property
    def has_errors(self) -> bool:
        return any(outcome is PermissionOutcome.ERROR for outcome in self._outcomes.values())

    def _has(self, *keys: str) -> bool:
        return all(self._outcomes.get(key) is PermissionOutcome.OK for key in keys)

    # ------------------------------------------------------------------
    # Feature predicates
    # ------------------------------------------------------------------

    @property
    def can_read_horizontal_pod_autoscalers(self) -> bool:
        return self._has(
            "autoscaling/horizontalpodautoscalers/get",
            "autoscaling/horizontalpodautoscalers/list",
            "autoscaling/horizontalpodautoscalers/watch",
        )

    @property
    def is_rollout_restart_permitted(self) -> bool:
        return self._has("apps/deployments/patch")

    @property
    def is_scale_deployment_permitted(self) -> bool:
        return self._has(
            "apps/deployments/scale/get",
            "apps/deployments/scale/update",
            "apps/deployments/scale/patch",
        )

    @property
    def is_scale_stateful_set_permitted(self) -> bool:
        return self._has(
            "apps/statefulsets/scale/get",
            "apps/statefulsets/scale/update",
            "apps/statefulsets/scale/patch",
        )

    @property
    def is_delete_pod_permitted(self) -> bool:
        return self._has("pods/delete")

    @property
    def is_drain_node_permitted(self) -> bool:
        return self._has("pods/eviction/create", "nodes/patch")

    @property
    def is_taint_node_permitted(self) -> bool:
        return self._has("pods/eviction/create", "nodes/patch")

    @property
    def is_crash_loop_pod_permitted(self) -> bool:
        return self._has("pods/exec/create")

    @property
    def can_read_argo_rollouts(self) -> bool:
        return self._has(
            "argoproj.io/rollouts/get",
            "argoproj.io/rollouts/list",
            "argoproj.io/rollouts/watch",
        )

    @property
    def is_argo_rollout_restart_permitted(self) -> bool:
        return self._has("argoproj.io/rollouts/patch")

    def predicates(self) -> dict[str, bool]:
        """Every named predicate with its current value."""
        return {name: getattr(self, name) for name in PREDICATES}


PREDICATES: tuple[str, ...] = tuple(
    name
    for name, attr in vars(PermissionCheckResult).items()
    if isinstance(attr, property) and name.startswith(("can_", "is_"))
)


def _mock(outcome: PermissionOutcome, matrix: Iterable[PermissionRequirement] | None) -> PermissionCheckResult:
    rows = matrix if matrix is not None else (*BASE_PERMISSIONS, *ARGO_ROLLOUT_PERMISSIONS)
    return PermissionCheckResult({key: outcome for row in rows for key in row.keys()})


def mock_all_permitted(matrix: Iterable[PermissionRequirement] | None = None) -> PermissionCheckResult:
    """A result granting every row of *matrix* (default: every known row)."""
    return _mock(PermissionOutcome.OK, matrix)


def mock_all_denied(matrix: Iterable[PermissionRequirement] | None = None) -> PermissionCheckResult:
    """A result where every row of *matrix* was denied gracefully."""
    return _mock(PermissionOutcome.WARN, matrix)
