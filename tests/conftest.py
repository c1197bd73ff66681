"""Shared fixtures and factories for kubegate tests.

Provides typed Kubernetes model factories plus fake list and watch
functions, so cache, ownership and permission tests run without a cluster.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from kubernetes_asyncio import client as k8s

from kubegate.cache.synchronizer import _KIND_SPECS
from kubegate.models.resources import ResourceKind

_NOW = datetime.now(UTC)


# ---------------------------------------------------------------------------
# Metadata helpers
# ---------------------------------------------------------------------------


def owner_ref(kind: str, name: str) -> k8s.V1OwnerReference:
    return k8s.V1OwnerReference(api_version="apps/v1", kind=kind, name=name, uid=f"uid-{name}")


def make_meta(
    name: str,
    namespace: str | None = "default",
    *,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    owners: list[k8s.V1OwnerReference] | None = None,
) -> k8s.V1ObjectMeta:
    return k8s.V1ObjectMeta(
        name=name,
        namespace=namespace,
        labels=labels,
        annotations=annotations,
        owner_references=owners,
        managed_fields=[k8s.V1ManagedFieldsEntry(manager="kubectl", operation="Update")],
        resource_version="1",
    )


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


def make_container(name: str = "app") -> k8s.V1Container:
    return k8s.V1Container(
        name=name,
        image="nginx:1.25",
        image_pull_policy="IfNotPresent",
        command=["nginx", "-g", "daemon off;"],
        env=[k8s.V1EnvVar(name="MODE", value="prod")],
        liveness_probe=k8s.V1Probe(http_get=k8s.V1HTTPGetAction(path="/healthz", port=8080)),
        resources=k8s.V1ResourceRequirements(limits={"cpu": "500m"}, requests={"memory": "64Mi"}),
    )


def make_pod(
    name: str = "web-7d9f-abcde",
    namespace: str = "default",
    *,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    owners: list[k8s.V1OwnerReference] | None = None,
    node_name: str = "node-1",
) -> k8s.V1Pod:
    return k8s.V1Pod(
        metadata=make_meta(name, namespace, labels=labels, annotations=annotations, owners=owners),
        spec=k8s.V1PodSpec(
            node_name=node_name,
            host_pid=False,
            service_account_name="default",
            containers=[make_container()],
        ),
        status=k8s.V1PodStatus(
            phase="Running",
            pod_ip="10.0.0.12",
            container_statuses=[
                k8s.V1ContainerStatus(
                    name="app", image="nginx:1.25", image_id="sha", ready=True, restart_count=0
                )
            ],
        ),
    )


def _template(containers: list[k8s.V1Container] | None = None) -> k8s.V1PodTemplateSpec:
    return k8s.V1PodTemplateSpec(spec=k8s.V1PodSpec(containers=containers or [make_container()]))


def make_deployment(
    name: str = "web",
    namespace: str = "default",
    *,
    owners: list[k8s.V1OwnerReference] | None = None,
    containers: list[k8s.V1Container] | None = None,
) -> k8s.V1Deployment:
    return k8s.V1Deployment(
        metadata=make_meta(name, namespace, owners=owners),
        spec=k8s.V1DeploymentSpec(
            replicas=2,
            selector=k8s.V1LabelSelector(match_labels={"app": name}),
            template=_template(containers),
        ),
        status=k8s.V1DeploymentStatus(
            ready_replicas=2,
            conditions=[k8s.V1DeploymentCondition(type="Available", status="True")],
        ),
    )


def make_replica_set(
    name: str = "web-7d9f",
    namespace: str = "default",
    *,
    owners: list[k8s.V1OwnerReference] | None = None,
) -> k8s.V1ReplicaSet:
    return k8s.V1ReplicaSet(
        metadata=make_meta(name, namespace, owners=owners),
        spec=k8s.V1ReplicaSetSpec(replicas=2, selector=k8s.V1LabelSelector(match_labels={"app": "web"})),
        status=k8s.V1ReplicaSetStatus(replicas=2, ready_replicas=2),
    )


def make_daemon_set(
    name: str = "agent",
    namespace: str = "kube-system",
    *,
    owners: list[k8s.V1OwnerReference] | None = None,
    containers: list[k8s.V1Container] | None = None,
) -> k8s.V1DaemonSet:
    return k8s.V1DaemonSet(
        metadata=make_meta(name, namespace, owners=owners),
        spec=k8s.V1DaemonSetSpec(
            selector=k8s.V1LabelSelector(match_labels={"app": name}),
            template=_template(containers),
        ),
        status=k8s.V1DaemonSetStatus(
            current_number_scheduled=3,
            desired_number_scheduled=3,
            number_misscheduled=0,
            number_ready=3,
        ),
    )


def make_stateful_set(
    name: str = "db",
    namespace: str = "default",
    *,
    owners: list[k8s.V1OwnerReference] | None = None,
) -> k8s.V1StatefulSet:
    return k8s.V1StatefulSet(
        metadata=make_meta(name, namespace, owners=owners),
        spec=k8s.V1StatefulSetSpec(
            selector=k8s.V1LabelSelector(match_labels={"app": name}),
            service_name=name,
            template=_template(),
        ),
        status=k8s.V1StatefulSetStatus(replicas=3, ready_replicas=3, current_replicas=3),
    )


def make_service(
    name: str = "web",
    namespace: str = "default",
    *,
    selector: dict[str, str] | None = None,
    labels: dict[str, str] | None = None,
) -> k8s.V1Service:
    return k8s.V1Service(
        metadata=make_meta(name, namespace, labels=labels),
        spec=k8s.V1ServiceSpec(
            selector=selector,
            cluster_ip="10.96.0.10",
            ports=[k8s.V1ServicePort(port=80, target_port=8080)],
        ),
        status=k8s.V1ServiceStatus(load_balancer=k8s.V1LoadBalancerStatus()),
    )


def make_namespace(name: str = "default") -> k8s.V1Namespace:
    return k8s.V1Namespace(
        metadata=make_meta(name, None),
        spec=k8s.V1NamespaceSpec(finalizers=["kubernetes"]),
    )


def make_node(name: str = "node-1", *, ready: bool = True) -> k8s.V1Node:
    return k8s.V1Node(
        metadata=make_meta(name, None, labels={"kubernetes.io/hostname": name}),
        spec=k8s.V1NodeSpec(pod_cidr="10.244.0.0/24", provider_id=f"aws:///{name}"),
        status=k8s.V1NodeStatus(
            conditions=[k8s.V1NodeCondition(type="Ready", status="True" if ready else "False")],
            addresses=[k8s.V1NodeAddress(type="InternalIP", address="192.168.1.10")],
            capacity={"cpu": "4"},
        ),
    )


def make_event(
    name: str = "web.17a",
    namespace: str = "default",
    *,
    last_seen: datetime | None = None,
    reason: str = "Scheduled",
) -> k8s.CoreV1Event:
    return k8s.CoreV1Event(
        metadata=make_meta(name, namespace),
        involved_object=k8s.V1ObjectReference(kind="Pod", name="web-7d9f-abcde", namespace=namespace),
        reason=reason,
        message=f"{reason} happened",
        last_timestamp=last_seen or _NOW,
    )


def make_hpa(
    name: str = "web",
    namespace: str = "default",
    *,
    target_kind: str = "Deployment",
    target_name: str = "web",
) -> k8s.V2HorizontalPodAutoscaler:
    return k8s.V2HorizontalPodAutoscaler(
        metadata=make_meta(name, namespace),
        spec=k8s.V2HorizontalPodAutoscalerSpec(
            max_replicas=5,
            min_replicas=1,
            scale_target_ref=k8s.V2CrossVersionObjectReference(
                api_version="apps/v1", kind=target_kind, name=target_name
            ),
        ),
    )


def make_rollout_doc(name: str = "checkout", namespace: str = "shop") -> dict[str, Any]:
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Rollout",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "managedFields": [{"manager": "argo-rollouts"}],
            "annotations": {
                "meta.helm.sh/release-name": "shop",
                "rollout.argoproj.io/revision": "4",
            },
        },
        "spec": {"replicas": 3},
    }


# ---------------------------------------------------------------------------
# Fake list / watch plumbing
# ---------------------------------------------------------------------------


def make_list(items: list[Any], resource_version: str = "100") -> SimpleNamespace:
    """A typed-style list response: ``.items`` and ``.metadata.resource_version``."""
    return SimpleNamespace(items=list(items), metadata=SimpleNamespace(resource_version=resource_version))


def watch_event(event_type: str, obj: Any) -> dict[str, Any]:
    return {"type": event_type, "object": obj, "raw_object": {}}


def gone_event() -> dict[str, Any]:
    return {"type": "ERROR", "object": None, "raw_object": {"kind": "Status", "code": 410, "reason": "Expired"}}


class FakeStream:
    """Async context manager and iterator standing in for ``Watch.stream``."""

    def __init__(self, events: list[Any], *, block: bool) -> None:
        self._events = events
        self._block = block

    async def __aenter__(self) -> FakeStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False

    def __aiter__(self) -> Any:
        return self._iterate()

    async def _iterate(self) -> Any:
        for event in self._events:
            if isinstance(event, BaseException):
                raise event
            yield event
        if self._block:
            await asyncio.Event().wait()


class FakeWatchFactory:
    """Replaces ``watch.Watch``: each stream plays the next script.

    Once every script has been played the stream stays open without events
    until the informer task is cancelled.  With *hold_open* a scripted stream
    also stays open after its last event instead of ending (which would
    trigger a relist).  With *only* the scripts are played solely to streams
    opened on that list function; every other stream stays idle.
    """

    def __init__(self, *scripts: list[Any], hold_open: bool = False, only: Any = None) -> None:
        self.scripts = list(scripts)
        self.hold_open = hold_open
        self.only = only
        self.calls: list[dict[str, Any]] = []

    def __call__(self) -> FakeWatchFactory:
        return self

    def stream(self, func: Any, **kwargs: Any) -> FakeStream:
        self.calls.append(kwargs)
        if self.scripts and (self.only is None or func is self.only):
            return FakeStream(self.scripts.pop(0), block=self.hold_open)
        return FakeStream([], block=True)


def make_apis(objects: dict[ResourceKind, list[Any]] | None = None) -> dict[str, MagicMock]:
    """API group mocks whose list methods return *objects* for each kind."""
    objects = objects or {}
    apis = {"core": MagicMock(), "apps": MagicMock(), "autoscaling": MagicMock()}
    for kind, spec in _KIND_SPECS.items():
        response = make_list(objects.get(kind, []))
        api = apis[spec.api]
        setattr(api, spec.list_all, AsyncMock(return_value=response))
        if spec.list_namespaced:
            setattr(api, spec.list_namespaced, AsyncMock(return_value=response))
    return apis


async def wait_for_change(queue: asyncio.Queue[Any], event_type: str, timeout: float = 2.0) -> Any:
    """Drain *queue* until a change of *event_type* arrives."""
    while True:
        change = await asyncio.wait_for(queue.get(), timeout=timeout)
        if change.event_type == event_type:
            return change
