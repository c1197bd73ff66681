"""Tests for the permission matrix, the probe and the result predicates."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from kubernetes_asyncio.client.exceptions import ApiException
from structlog.testing import capture_logs

from kubegate.errors import FatalStartupError
from kubegate.models.permissions import PermissionOutcome, PermissionRequirement
from kubegate.permissions import (
    CapabilityProbe,
    PermissionCheckResult,
    build_permission_matrix,
    mock_all_denied,
    mock_all_permitted,
)
from kubegate.permissions.matrix import ARGO_ROLLOUT_PERMISSIONS, BASE_PERMISSIONS, ensure_unique_keys
from kubegate.permissions.result import PREDICATES

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _attrs_key(attrs: Any) -> str:
    return "/".join(p for p in (attrs.group, attrs.resource, attrs.subresource, attrs.verb) if p)


def _make_authorization_api(
    denied: set[str] | None = None,
    failing: set[str] | None = None,
) -> MagicMock:
    denied = denied or set()
    failing = failing or set()
    reviewed: list[Any] = []

    async def _review(body: Any) -> SimpleNamespace:
        attrs = body.spec.resource_attributes
        reviewed.append(attrs)
        key = _attrs_key(attrs)
        if key in failing:
            raise ApiException(status=500, reason="Internal Server Error")
        return SimpleNamespace(status=SimpleNamespace(allowed=key not in denied))

    api = MagicMock()
    api.create_self_subject_access_review = AsyncMock(side_effect=_review)
    api.reviewed = reviewed
    return api


def _make_probe(namespace: str = "", **kwargs: Any) -> tuple[CapabilityProbe, MagicMock]:
    api = _make_authorization_api(**kwargs)
    return CapabilityProbe(None, namespace=namespace, authorization_api=api), api


# ---------------------------------------------------------------------------
# Matrix composition
# ---------------------------------------------------------------------------


class TestPermissionRequirement:
    def test_key_omits_empty_segments(self) -> None:
        assert PermissionRequirement(verbs=("get",), resource="pods").key("get") == "pods/get"
        row = PermissionRequirement(verbs=("get",), group="apps", resource="deployments", subresource="scale")
        assert row.key("get") == "apps/deployments/scale/get"


class TestBuildPermissionMatrix:
    def test_base_matrix_keys_are_unique(self) -> None:
        matrix = build_permission_matrix()
        keys = [key for row in matrix for key in row.keys()]
        assert len(keys) == len(set(keys))
        assert "pods/list" in keys
        assert "argoproj.io/rollouts/patch" not in keys

    def test_argo_rows_added_when_enabled(self) -> None:
        keys = [key for row in build_permission_matrix(argo_rollouts_enabled=True) for key in row.keys()]
        assert "argoproj.io/rollouts/watch" in keys
        assert "argoproj.io/rollouts/patch" in keys

    def test_namespace_drops_cluster_scoped_rows(self) -> None:
        resources = {row.resource for row in build_permission_matrix(namespace="shop")}
        assert "nodes" not in resources
        assert "namespaces" not in resources
        assert "pods" in resources

    def test_composition_is_pure(self) -> None:
        assert build_permission_matrix(argo_rollouts_enabled=True) == build_permission_matrix(
            argo_rollouts_enabled=True
        )

    def test_duplicate_keys_rejected(self) -> None:
        rows = [
            PermissionRequirement(verbs=("get", "list"), resource="pods"),
            PermissionRequirement(verbs=("list",), resource="pods", allow_graceful_failure=True),
        ]
        with pytest.raises(ValueError, match="pods/list"):
            ensure_unique_keys(rows)

    def test_extension_rows_are_optional(self) -> None:
        assert all(row.allow_graceful_failure for row in ARGO_ROLLOUT_PERMISSIONS)


# ---------------------------------------------------------------------------
# Result predicates
# ---------------------------------------------------------------------------


class TestPermissionCheckResult:
    def test_all_permitted_grants_every_predicate(self) -> None:
        assert all(mock_all_permitted().predicates().values())
        assert not mock_all_permitted().has_errors

    def test_all_denied_disables_every_predicate(self) -> None:
        result = mock_all_denied()
        assert not any(result.predicates().values())
        assert not result.has_errors

    def test_predicate_names(self) -> None:
        assert set(PREDICATES) == {
            "can_read_horizontal_pod_autoscalers",
            "is_rollout_restart_permitted",
            "is_scale_deployment_permitted",
            "is_scale_stateful_set_permitted",
            "is_delete_pod_permitted",
            "is_drain_node_permitted",
            "is_taint_node_permitted",
            "is_crash_loop_pod_permitted",
            "can_read_argo_rollouts",
            "is_argo_rollout_restart_permitted",
        }

    def test_predicate_needs_every_key(self) -> None:
        outcomes = dict(mock_all_permitted().outcomes)
        outcomes["apps/deployments/scale/update"] = PermissionOutcome.WARN
        result = PermissionCheckResult(outcomes)
        assert not result.is_scale_deployment_permitted
        assert result.is_scale_stateful_set_permitted

    def test_outcomes_are_read_only(self) -> None:
        result = mock_all_permitted()
        with pytest.raises(TypeError):
            result.outcomes["pods/get"] = PermissionOutcome.ERROR  # type: ignore[index]

    def test_unknown_keys_read_as_not_granted(self) -> None:
        assert not PermissionCheckResult({}).can_read_argo_rollouts

    def test_mock_restricted_to_matrix(self) -> None:
        result = mock_all_permitted(BASE_PERMISSIONS)
        assert result.is_rollout_restart_permitted
        assert not result.can_read_argo_rollouts


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------


class TestCapabilityProbe:
    async def test_all_granted(self) -> None:
        probe, api = _make_probe()
        matrix = build_permission_matrix()

        with capture_logs() as logs:
            result = await probe.check(matrix)

        assert set(result.outcomes.values()) == {PermissionOutcome.OK}
        assert api.create_self_subject_access_review.await_count == sum(len(r.verbs) for r in matrix)
        summary = [log for log in logs if log["event"] == "permission_check_results"]
        assert len(summary) == 1
        assert summary[0]["all_granted"] is True

    async def test_optional_denial_is_warning_and_predicate_false(self) -> None:
        probe, _ = _make_probe(denied={"apps/deployments/patch"})

        with capture_logs() as logs:
            result = await probe.check(build_permission_matrix())

        assert result.outcomes["apps/deployments/patch"] is PermissionOutcome.WARN
        assert not result.is_rollout_restart_permitted
        assert result.is_scale_deployment_permitted
        assert not result.has_errors
        assert any(log["log_level"] == "warning" and log.get("permission") == "apps/deployments/patch" for log in logs)
        assert not any(log["log_level"] == "critical" for log in logs)

    async def test_required_denial_is_fatal(self) -> None:
        probe, _ = _make_probe(denied={"pods/list"})

        with capture_logs() as logs, pytest.raises(FatalStartupError) as exc_info:
            await probe.check(build_permission_matrix())

        assert exc_info.value.component == "permissions"
        assert "pods/list" in exc_info.value.reason
        critical = [log for log in logs if log["log_level"] == "critical"]
        assert critical[0]["event"] == "required permissions are missing"
        assert critical[0]["missing"] == ["pods/list"]
        # The whole matrix is logged before failing
        assert any(log["event"] == "permission_check_results" for log in logs)

    async def test_review_failure_on_optional_row_is_warning(self) -> None:
        probe, _ = _make_probe(failing={"pods/exec/create"})

        with capture_logs() as logs:
            result = await probe.check(build_permission_matrix())

        assert result.outcomes["pods/exec/create"] is PermissionOutcome.WARN
        assert not result.is_crash_loop_pod_permitted
        assert any(log["event"] == "permission_check_failed" for log in logs)

    async def test_review_failure_on_required_row_is_fatal(self) -> None:
        probe, _ = _make_probe(failing={"apps/deployments/watch"})
        with pytest.raises(FatalStartupError):
            await probe.check(build_permission_matrix())

    async def test_namespace_is_set_on_every_review(self) -> None:
        probe, api = _make_probe(namespace="shop")
        await probe.check(build_permission_matrix(namespace="shop"))
        assert {attrs.namespace for attrs in api.reviewed} == {"shop"}

    async def test_cluster_wide_reviews_have_no_namespace(self) -> None:
        probe, api = _make_probe()
        await probe.check(build_permission_matrix())
        assert {attrs.namespace for attrs in api.reviewed} == {None}

    async def test_argo_denial_disables_only_argo(self) -> None:
        denied = {f"argoproj.io/rollouts/{verb}" for verb in ("get", "list", "watch", "patch")}
        probe, _ = _make_probe(denied=denied)
        result = await probe.check(build_permission_matrix(argo_rollouts_enabled=True))
        assert not result.can_read_argo_rollouts
        assert not result.is_argo_rollout_restart_permitted
        assert result.can_read_horizontal_pod_autoscalers

    async def test_duplicate_matrix_rejected_before_reviews(self) -> None:
        probe, api = _make_probe()
        rows = [PermissionRequirement(verbs=("get",), resource="pods")] * 2
        with pytest.raises(ValueError):
            await probe.check(rows)
        api.create_self_subject_access_review.assert_not_awaited()
