"""Resource kinds and cached-object data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ResourceKind(StrEnum):
    """Closed set of built-in kinds the synchronizer keeps a local store for."""

    DAEMON_SET = "daemonset"
    DEPLOYMENT = "deployment"
    REPLICA_SET = "replicaset"
    STATEFUL_SET = "statefulset"
    POD = "pod"
    SERVICE = "service"
    NAMESPACE = "namespace"
    NODE = "node"
    EVENT = "event"
    HORIZONTAL_POD_AUTOSCALER = "horizontalpodautoscaler"

    @property
    def cluster_scoped(self) -> bool:
        """True for kinds that do not live inside a namespace."""
        return self in (ResourceKind.NAMESPACE, ResourceKind.NODE)


class CacheReadiness(StrEnum):
    """Lifecycle state of the local cache."""

    WARMING = "warming"
    READY = "ready"
    STOPPED = "stopped"


@dataclass(frozen=True)
class CustomResourceKind:
    """Identity of a kind that is only reachable through the dynamic adapter."""

    group: str
    version: str
    kind: str
    plural: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"

    def __str__(self) -> str:
        return f"{self.plural}.{self.group}"


ARGO_ROLLOUT = CustomResourceKind(group="argoproj.io", version="v1alpha1", kind="Rollout", plural="rollouts")


@dataclass(frozen=True)
class OwnerReference:
    """A resolved ancestor of an object. ``kind`` is always lower case."""

    name: str
    kind: str


@dataclass
class OwnerReferenceList:
    """Ordered ancestors of an object, nearest first.

    ``deployment`` and ``daemon_set`` hold the cached workload objects met
    while walking the chain, so callers can read the pod template without a
    second lookup.
    """

    owner_refs: list[OwnerReference] = field(default_factory=list)
    deployment: Any | None = None
    daemon_set: Any | None = None

    def container_spec(self, container_name: str) -> Any | None:
        """Return the pod-template container named *container_name*, if any."""
        workload = self.deployment if self.deployment is not None else self.daemon_set
        if workload is None:
            return None
        template = getattr(workload.spec, "template", None) if workload.spec is not None else None
        pod_spec = getattr(template, "spec", None)
        for container in getattr(pod_spec, "containers", None) or []:
            if container.name == container_name:
                return container
        return None


@dataclass(frozen=True)
class ResourceChange:
    """Notification emitted to subscribers whenever a watched object changes."""

    kind: ResourceKind | CustomResourceKind
    event_type: str  # ADDED | MODIFIED | DELETED | RELISTED
    namespace: str
    name: str
