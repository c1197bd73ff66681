"""Insertion-time field stripping for cached objects.

Every object entering a local store passes through the transform registered
for its kind.  The transforms keep an explicit allow-list of fields needed
for identity, scheduling attribution and discovery enrichment (selectors,
probes, resource limits/requests, labels, a few provider annotations) and
discard everything else, which bounds per-object memory at cluster scale.

Rules shared by all transforms:

* Input of an unexpected type (including ``None``) is returned unchanged.
* ``metadata.managed_fields`` is always cleared.
* Annotations are filtered against ``RETAINED_ANNOTATIONS`` by exact key;
  empty values count as absent.  An empty result becomes ``None``.

The objects handed in come straight from the watch decoder and are owned by
the watch loop, so they are stripped in place and returned.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from kubernetes_asyncio.client import (
    Configuration,
    CoreV1Event,
    V1Container,
    V1DaemonSet,
    V1DaemonSetStatus,
    V1Deployment,
    V1Namespace,
    V1NamespaceSpec,
    V1Node,
    V1NodeSpec,
    V1NodeStatus,
    V1ObjectMeta,
    V1Pod,
    V1PodSpec,
    V1PodStatus,
    V1ReplicaSet,
    V1ReplicaSetSpec,
    V1ReplicaSetStatus,
    V1ResourceRequirements,
    V1Service,
    V1ServiceSpec,
    V1ServiceStatus,
    V1StatefulSet,
    V1StatefulSetStatus,
    V2HorizontalPodAutoscaler,
)

from kubegate.models.resources import ResourceKind

_log = structlog.get_logger(component="cache.transforms")

Transform = Callable[[Any], Any]
_M = TypeVar("_M")

RETAINED_ANNOTATIONS: frozenset[str] = frozenset(
    {
        "meta.helm.sh/release-name",
        "meta.helm.sh/release-namespace",
        "operator-sdk/primary-resource",
    }
)

# Stripped sub-objects leave required fields unset on purpose.
_LENIENT = Configuration()
_LENIENT.client_side_validation = False


def _new(model: type[_M], **kwargs: Any) -> _M:
    return model(local_vars_configuration=_LENIENT, **kwargs)  # type: ignore[call-arg]


def retained_annotations(annotations: dict[str, str] | None) -> dict[str, str] | None:
    """Return the allow-listed, non-empty subset of *annotations*, or None."""
    if not annotations:
        return None
    kept = {key: value for key, value in annotations.items() if key in RETAINED_ANNOTATIONS and value}
    return kept or None


def _strip_metadata(metadata: V1ObjectMeta | None, *, keep_annotations: bool = True) -> None:
    if metadata is None:
        return
    metadata.managed_fields = None
    metadata.annotations = retained_annotations(metadata.annotations) if keep_annotations else None


def _typed(model: type[_M]) -> Callable[[Callable[[_M], _M]], Transform]:
    """Apply the wrapped transform only to instances of *model*."""

    def decorator(fn: Callable[[_M], _M]) -> Transform:
        @functools.wraps(fn)
        def wrapper(obj: Any) -> Any:
            if not isinstance(obj, model):
                _log.debug("transform_skipped", transform=fn.__name__, got=type(obj).__name__)
                return obj
            return fn(obj)

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Typed transforms, one per kind
# ---------------------------------------------------------------------------


@_typed(V1DaemonSet)
def transform_daemon_set(ds: V1DaemonSet) -> V1DaemonSet:
    _strip_metadata(ds.metadata)
    status = ds.status
    ds.status = _new(
        V1DaemonSetStatus,
        number_ready=status.number_ready if status else None,
        desired_number_scheduled=status.desired_number_scheduled if status else None,
    )
    return ds


@_typed(V1Deployment)
def transform_deployment(deployment: V1Deployment) -> V1Deployment:
    _strip_metadata(deployment.metadata)
    if deployment.status is not None:
        deployment.status.conditions = None
    return deployment


def _strip_container(container: V1Container) -> V1Container:
    resources = container.resources
    return _new(
        V1Container,
        name=container.name,
        image_pull_policy=container.image_pull_policy,
        liveness_probe=container.liveness_probe,
        readiness_probe=container.readiness_probe,
        resources=_new(
            V1ResourceRequirements,
            limits=resources.limits if resources else None,
            requests=resources.requests if resources else None,
        ),
    )


@_typed(V1Pod)
def transform_pod(pod: V1Pod) -> V1Pod:
    _strip_metadata(pod.metadata)
    spec = pod.spec
    pod.spec = _new(
        V1PodSpec,
        node_name=spec.node_name if spec else None,
        host_pid=spec.host_pid if spec else None,
        containers=[_strip_container(c) for c in (spec.containers or [])] if spec else [],
    )
    status = pod.status
    pod.status = _new(
        V1PodStatus,
        phase=status.phase if status else None,
        container_statuses=status.container_statuses if status else None,
    )
    return pod


@_typed(V1Namespace)
def transform_namespace(namespace: V1Namespace) -> V1Namespace:
    _strip_metadata(namespace.metadata)
    namespace.spec = _new(V1NamespaceSpec, finalizers=None)
    return namespace


@_typed(V1ReplicaSet)
def transform_replica_set(rs: V1ReplicaSet) -> V1ReplicaSet:
    # Only identity and owner references matter for ownership walks.
    _strip_metadata(rs.metadata)
    rs.spec = _new(V1ReplicaSetSpec)
    rs.status = _new(V1ReplicaSetStatus)
    return rs


@_typed(V1Service)
def transform_service(service: V1Service) -> V1Service:
    _strip_metadata(service.metadata)
    if service.metadata is not None:
        service.metadata.labels = None
    spec = service.spec
    service.spec = _new(V1ServiceSpec, selector=spec.selector if spec else None)
    service.status = _new(V1ServiceStatus)
    return service


@_typed(V1StatefulSet)
def transform_stateful_set(sts: V1StatefulSet) -> V1StatefulSet:
    _strip_metadata(sts.metadata)
    status = sts.status
    sts.status = _new(V1StatefulSetStatus, ready_replicas=status.ready_replicas if status else None)
    return sts


@_typed(CoreV1Event)
def transform_event(event: CoreV1Event) -> CoreV1Event:
    if event.metadata is not None:
        event.metadata.managed_fields = None
    return event


@_typed(V1Node)
def transform_node(node: V1Node) -> V1Node:
    _strip_metadata(node.metadata)
    node.spec = _new(V1NodeSpec)
    status = node.status
    node.status = _new(
        V1NodeStatus,
        conditions=status.conditions if status else None,
        addresses=status.addresses if status else None,
    )
    return node


@_typed(V2HorizontalPodAutoscaler)
def transform_horizontal_pod_autoscaler(hpa: V2HorizontalPodAutoscaler) -> V2HorizontalPodAutoscaler:
    _strip_metadata(hpa.metadata)
    return hpa


TRANSFORMS: dict[ResourceKind, Transform] = {
    ResourceKind.DAEMON_SET: transform_daemon_set,
    ResourceKind.DEPLOYMENT: transform_deployment,
    ResourceKind.REPLICA_SET: transform_replica_set,
    ResourceKind.STATEFUL_SET: transform_stateful_set,
    ResourceKind.POD: transform_pod,
    ResourceKind.SERVICE: transform_service,
    ResourceKind.NAMESPACE: transform_namespace,
    ResourceKind.NODE: transform_node,
    ResourceKind.EVENT: transform_event,
    ResourceKind.HORIZONTAL_POD_AUTOSCALER: transform_horizontal_pod_autoscaler,
}


# ---------------------------------------------------------------------------
# Loosely typed documents (custom resources)
# ---------------------------------------------------------------------------


def transform_document(doc: Any) -> Any:
    """Strip a custom-resource document the same way the typed transforms do.

    Custom resources arrive as plain nested dicts with camelCase keys, so
    this path is kept apart from the typed registry.
    """
    if not isinstance(doc, dict):
        _log.debug("transform_skipped", transform="transform_document", got=type(doc).__name__)
        return doc
    metadata = doc.get("metadata")
    if isinstance(metadata, dict):
        metadata.pop("managedFields", None)
        annotations = retained_annotations(metadata.get("annotations"))
        if annotations is None:
            metadata.pop("annotations", None)
        else:
            metadata["annotations"] = annotations
    return doc
