"""CapabilityProbe: classify the declared permission matrix at startup.

One SelfSubjectAccessReview is issued per (row, verb).  Reviews that are
denied or fail are classified ``warn`` when the row allows graceful failure
(the dependent feature disables itself through its predicate) and ``error``
otherwise.  The complete matrix is logged once; any ``error`` is fatal.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import structlog
from kubernetes_asyncio import client as k8s_client

from kubegate.errors import FatalStartupError
from kubegate.models.permissions import PermissionOutcome, PermissionRequirement
from kubegate.observability.metrics import permission_outcome
from kubegate.permissions.matrix import ensure_unique_keys
from kubegate.permissions.result import PermissionCheckResult

_log = structlog.get_logger(component="permissions.probe")


class CapabilityProbe:
    """Runs access reviews for the identity the client is authenticated as."""

    def __init__(
        self,
        api_client: Any,
        *,
        namespace: str = "",
        authorization_api: Any | None = None,
    ) -> None:
        self._api = authorization_api or k8s_client.AuthorizationV1Api(api_client)
        self._namespace = namespace

    async def check(self, matrix: Sequence[PermissionRequirement]) -> PermissionCheckResult:
        """Review every row of *matrix* and return the classified result.

        Raises:
            FatalStartupError: if any required permission is missing.  The
                full matrix has been logged before the error is raised.
        """
        ensure_unique_keys(matrix)
        checks = [(row, verb) for row in matrix for verb in row.verbs]
        allowed = await asyncio.gather(*(self._review(row, verb) for row, verb in checks))

        outcomes: dict[str, PermissionOutcome] = {}
        for (row, verb), granted in zip(checks, allowed, strict=True):
            if granted:
                outcomes[row.key(verb)] = PermissionOutcome.OK
            elif row.allow_graceful_failure:
                outcomes[row.key(verb)] = PermissionOutcome.WARN
            else:
                outcomes[row.key(verb)] = PermissionOutcome.ERROR

        result = PermissionCheckResult(outcomes)
        log_permission_check_result(result)

        if result.has_errors:
            missing = sorted(k for k, v in result.outcomes.items() if v is PermissionOutcome.ERROR)
            _log.critical("required permissions are missing", missing=missing)
            raise FatalStartupError("permissions", f"required permissions are missing: {', '.join(missing)}")
        return result

    async def _review(self, row: PermissionRequirement, verb: str) -> bool:
        namespaced = bool(self._namespace)
        body = k8s_client.V1SelfSubjectAccessReview(
            spec=k8s_client.V1SelfSubjectAccessReviewSpec(
                resource_attributes=k8s_client.V1ResourceAttributes(
                    namespace=self._namespace if namespaced else None,
                    verb=verb,
                    group=row.group,
                    resource=row.resource,
                    subresource=row.subresource or None,
                )
            )
        )
        try:
            review = await self._api.create_self_subject_access_review(body=body)
        except Exception as exc:  # noqa: BLE001
            _log.error("permission_check_failed", permission=row.key(verb), error=str(exc))
            return False
        return bool(review.status is not None and review.status.allowed)


def log_permission_check_result(result: PermissionCheckResult) -> None:
    """Emit the consolidated permission matrix and record it as metrics."""
    all_granted = True
    for key, outcome in result.outcomes.items():
        permission_outcome.labels(permission=key, outcome=str(outcome)).set(1)
        if outcome is PermissionOutcome.OK:
            _log.debug("permission_granted", permission=key)
        elif outcome is PermissionOutcome.WARN:
            all_granted = False
            _log.warning(
                "permission missing, but not required; some features will be disabled",
                permission=key,
            )
        else:
            all_granted = False
            _log.error("permission_missing", permission=key)

    _log.info(
        "permission_check_results",
        results={key: str(outcome) for key, outcome in result.outcomes.items()},
        all_granted=all_granted,
        predicates=result.predicates(),
    )
