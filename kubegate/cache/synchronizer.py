"""ResourceSynchronizer: the typed, multi-kind local cache.

One Informer per enabled kind runs as its own asyncio task; all of them share
a single stop event and cannot be cancelled individually.  ``start()`` blocks
until every informer reported its initial sync, bounded by a timeout that is
fatal: a cache that never synced cannot serve correct data.

All read methods are synchronous dictionary lookups against the local
stores.  They never touch the network and are safe to call from any number of
concurrent discovery or action handlers.  A miss (object absent, kind not
subscribed, cache stopped) returns ``None`` or an empty list.

Which kinds are subscribed is decided from the permission check result and
the namespace restriction before any watch starts:

* ``horizontalpodautoscaler`` only when the HPA read permissions were granted;
  subscribing without them would block the sync wait forever.
* ``node`` and ``namespace`` are cluster scoped and skipped entirely when a
  namespace restriction is configured.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio import watch

from kubegate.cache.informer import Informer
from kubegate.cache.selectors import map_selector_matches, selector_matches
from kubegate.cache.transforms import TRANSFORMS
from kubegate.errors import FatalStartupError
from kubegate.models.resources import CacheReadiness, ResourceChange, ResourceKind
from kubegate.observability.metrics import cache_lookups_total

if TYPE_CHECKING:
    from kubegate.permissions.result import PermissionCheckResult

_log = structlog.get_logger(component="cache.synchronizer")

_DISCOVERY_DISABLED_LABELS = ("steadybit.com/discovery-disabled", "steadybit.com.discovery-disabled")
_AGENT_LABEL = "com.steadybit.agent"

SUBSCRIBER_QUEUE_SIZE = 1024


@dataclass(frozen=True)
class _KindSpec:
    api: str
    list_all: str
    list_namespaced: str | None


_KIND_SPECS: dict[ResourceKind, _KindSpec] = {
    ResourceKind.DAEMON_SET: _KindSpec("apps", "list_daemon_set_for_all_namespaces", "list_namespaced_daemon_set"),
    ResourceKind.DEPLOYMENT: _KindSpec("apps", "list_deployment_for_all_namespaces", "list_namespaced_deployment"),
    ResourceKind.REPLICA_SET: _KindSpec("apps", "list_replica_set_for_all_namespaces", "list_namespaced_replica_set"),
    ResourceKind.STATEFUL_SET: _KindSpec(
        "apps", "list_stateful_set_for_all_namespaces", "list_namespaced_stateful_set"
    ),
    ResourceKind.POD: _KindSpec("core", "list_pod_for_all_namespaces", "list_namespaced_pod"),
    ResourceKind.SERVICE: _KindSpec("core", "list_service_for_all_namespaces", "list_namespaced_service"),
    ResourceKind.NAMESPACE: _KindSpec("core", "list_namespace", None),
    ResourceKind.NODE: _KindSpec("core", "list_node", None),
    ResourceKind.EVENT: _KindSpec("core", "list_event_for_all_namespaces", "list_namespaced_event"),
    ResourceKind.HORIZONTAL_POD_AUTOSCALER: _KindSpec(
        "autoscaling",
        "list_horizontal_pod_autoscaler_for_all_namespaces",
        "list_namespaced_horizontal_pod_autoscaler",
    ),
}


def enabled_kinds(permissions: PermissionCheckResult, namespace: str = "") -> list[ResourceKind]:
    """Return the kinds that may be subscribed under *permissions* and *namespace*."""
    kinds: list[ResourceKind] = []
    for kind in ResourceKind:
        if namespace and kind.cluster_scoped:
            continue
        if kind is ResourceKind.HORIZONTAL_POD_AUTOSCALER and not permissions.can_read_horizontal_pod_autoscalers:
            continue
        kinds.append(kind)
    return kinds


def is_excluded_from_discovery(metadata: Any) -> bool:
    """True when an object opted out of discovery through its labels."""
    labels = getattr(metadata, "labels", None) or {}
    for key in _DISCOVERY_DISABLED_LABELS:
        if str(labels.get(key, "")).lower() == "true":
            return True
    return str(labels.get(_AGENT_LABEL, "")).lower() == "true"


def build_apis(api_client: Any) -> dict[str, Any]:
    """Typed API groups used by the informers."""
    return {
        "core": k8s_client.CoreV1Api(api_client),
        "apps": k8s_client.AppsV1Api(api_client),
        "autoscaling": k8s_client.AutoscalingV2Api(api_client),
    }


class ResourceSynchronizer:
    """Explicit handle to the typed cache.

    Constructed once at startup after the permission check and passed by
    reference to every consumer.
    """

    def __init__(
        self,
        api_client: Any,
        permissions: PermissionCheckResult,
        *,
        namespace: str = "",
        resync_seconds: int = 600,
        sync_timeout_seconds: int = 120,
        stop_event: asyncio.Event | None = None,
        distribution: str = "kubernetes",
        apis: dict[str, Any] | None = None,
        watch_factory: Callable[[], Any] = watch.Watch,
    ) -> None:
        self.permissions = permissions
        self.namespace = namespace
        self.distribution = distribution
        self.stop_event = stop_event or asyncio.Event()
        self._apis = apis if apis is not None else build_apis(api_client)
        self._resync_seconds = resync_seconds
        self._sync_timeout_seconds = sync_timeout_seconds
        self._watch_factory = watch_factory
        self._informers: dict[ResourceKind, Informer] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self._subscribers: list[tuple[frozenset[ResourceKind], asyncio.Queue[ResourceChange]]] = []
        self._readiness = CacheReadiness.WARMING

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start every informer and wait for the initial sync.

        Raises:
            FatalStartupError: if the caches did not sync within the timeout.
        """
        if self._tasks:
            return
        for kind in enabled_kinds(self.permissions, self.namespace):
            self._informers[kind] = self._build_informer(kind)
        self._tasks = [
            asyncio.create_task(informer.run(), name=f"informer-{kind}") for kind, informer in self._informers.items()
        ]
        _log.info("cache_sync_started", kinds=[str(k) for k in self._informers], namespace=self.namespace or "*")

        try:
            await asyncio.wait_for(
                asyncio.gather(*(informer.wait_synced() for informer in self._informers.values())),
                timeout=self._sync_timeout_seconds,
            )
        except TimeoutError as exc:
            pending = [str(kind) for kind, informer in self._informers.items() if not informer.has_synced]
            _log.critical(
                "timed out waiting for caches to sync",
                pending_kinds=pending,
                timeout_seconds=self._sync_timeout_seconds,
            )
            await self.stop()
            raise FatalStartupError("cache", f"timed out waiting for caches to sync: {pending}", exc) from exc

        self._readiness = CacheReadiness.READY
        _log.info("cache_synced", counts=self.counts())

    def _build_informer(self, kind: ResourceKind) -> Informer:
        spec = _KIND_SPECS[kind]
        api = self._apis[spec.api]
        list_kwargs: dict[str, Any] = {}
        if self.namespace and spec.list_namespaced:
            list_fn = getattr(api, spec.list_namespaced)
            list_kwargs["namespace"] = self.namespace
        else:
            list_fn = getattr(api, spec.list_all)
        return Informer(
            kind,
            list_fn,
            stop_event=self.stop_event,
            transform=TRANSFORMS[kind],
            list_kwargs=list_kwargs,
            resync_seconds=self._resync_seconds,
            on_change=self._dispatch,
            watch_factory=self._watch_factory,
        )

    async def stop(self) -> None:
        """Fire the shared stop signal and tear down every store together."""
        if self._readiness is CacheReadiness.STOPPED:
            return
        self.stop_event.set()
        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        for informer in self._informers.values():
            informer.close()
        self._readiness = CacheReadiness.STOPPED
        _log.info("cache_stopped")

    def readiness(self) -> CacheReadiness:
        if self.stop_event.is_set():
            return CacheReadiness.STOPPED
        return self._readiness

    @property
    def kinds(self) -> list[ResourceKind]:
        return list(self._informers)

    def counts(self) -> dict[str, int]:
        return {str(kind): len(informer.store) for kind, informer in self._informers.items()}

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------

    def subscribe(
        self, *kinds: ResourceKind, maxsize: int = SUBSCRIBER_QUEUE_SIZE
    ) -> asyncio.Queue[ResourceChange]:
        """Return a queue receiving changes of *kinds* (all kinds when empty).

        The queue holds at most *maxsize* changes.  When a subscriber falls
        behind, the oldest pending change is dropped to make room for the
        newest one.
        """
        queue: asyncio.Queue[ResourceChange] = asyncio.Queue(maxsize=max(1, maxsize))
        self._subscribers.append((frozenset(kinds), queue))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ResourceChange]) -> None:
        self._subscribers = [(kinds, q) for kinds, q in self._subscribers if q is not queue]

    def _dispatch(self, change: ResourceChange) -> None:
        for kinds, queue in self._subscribers:
            if kinds and change.kind not in kinds:
                continue
            if queue.full():
                dropped = queue.get_nowait()
                _log.debug("subscriber_change_dropped", kind=str(dropped.kind), event_type=dropped.event_type)
            queue.put_nowait(change)

    # ------------------------------------------------------------------
    # Generic reads
    # ------------------------------------------------------------------

    def get(self, kind: ResourceKind, namespace: str, name: str) -> Any | None:
        if self.stop_event.is_set():
            return None
        informer = self._informers.get(kind)
        if informer is None:
            _log.debug("lookup_kind_not_subscribed", kind=str(kind))
            return None
        item = informer.store.get(namespace, name)
        if item is None:
            cache_lookups_total.labels(kind=str(kind), result="miss").inc()
            _log.debug("lookup_miss", kind=str(kind), namespace=namespace, name=name)
        else:
            cache_lookups_total.labels(kind=str(kind), result="hit").inc()
        return item

    def list(self, kind: ResourceKind, namespace: str | None = None) -> list[Any]:
        if self.stop_event.is_set():
            return []
        informer = self._informers.get(kind)
        if informer is None:
            return []
        return informer.store.list(namespace)

    # ------------------------------------------------------------------
    # Typed reads
    # ------------------------------------------------------------------

    def pods(self) -> list[Any]:
        return self.list(ResourceKind.POD)

    def pod_by_namespace_and_name(self, namespace: str, name: str) -> Any | None:
        return self.get(ResourceKind.POD, namespace, name)

    def pods_by_label_selector(self, label_selector: Any, namespace: str) -> list[Any]:
        return [
            pod
            for pod in self.list(ResourceKind.POD, namespace)
            if selector_matches(label_selector, pod.metadata.labels if pod.metadata else None)
        ]

    def deployments(self) -> list[Any]:
        return self.list(ResourceKind.DEPLOYMENT)

    def deployment_by_namespace_and_name(self, namespace: str, name: str) -> Any | None:
        return self.get(ResourceKind.DEPLOYMENT, namespace, name)

    def daemon_sets(self) -> list[Any]:
        return self.list(ResourceKind.DAEMON_SET)

    def daemon_set_by_namespace_and_name(self, namespace: str, name: str) -> Any | None:
        return self.get(ResourceKind.DAEMON_SET, namespace, name)

    def replica_sets(self) -> list[Any]:
        return self.list(ResourceKind.REPLICA_SET)

    def replica_set_by_namespace_and_name(self, namespace: str, name: str) -> Any | None:
        return self.get(ResourceKind.REPLICA_SET, namespace, name)

    def stateful_sets(self) -> list[Any]:
        return self.list(ResourceKind.STATEFUL_SET)

    def stateful_set_by_namespace_and_name(self, namespace: str, name: str) -> Any | None:
        return self.get(ResourceKind.STATEFUL_SET, namespace, name)

    def services(self) -> list[Any]:
        return self.list(ResourceKind.SERVICE)

    def service_by_namespace_and_name(self, namespace: str, name: str) -> Any | None:
        return self.get(ResourceKind.SERVICE, namespace, name)

    def services_by_pod(self, pod: Any) -> list[Any]:
        """Services in the pod's namespace whose selector matches the pod labels."""
        metadata = pod.metadata
        return self.services_matching_labels(metadata.namespace or "", metadata.labels or {})

    def services_matching_labels(self, namespace: str, labels: dict[str, str]) -> list[Any]:
        return [
            service
            for service in self.list(ResourceKind.SERVICE, namespace)
            if service.spec is not None and map_selector_matches(service.spec.selector, labels)
        ]

    def namespaces(self) -> list[Any]:
        return self.list(ResourceKind.NAMESPACE)

    def namespace_by_name(self, name: str) -> Any | None:
        return self.get(ResourceKind.NAMESPACE, "", name)

    def nodes(self) -> list[Any]:
        return self.list(ResourceKind.NODE)

    def node_by_name(self, name: str) -> Any | None:
        return self.get(ResourceKind.NODE, "", name)

    def nodes_ready_count(self) -> int:
        ready = 0
        for node in self.nodes():
            conditions = node.status.conditions if node.status is not None else None
            if any(c.type == "Ready" and c.status == "True" for c in conditions or []):
                ready += 1
        return ready

    def events(self, since: datetime) -> list[Any]:
        """Events last seen after *since*, oldest first.

        A naive *since* is taken as UTC.
        """
        if since.tzinfo is None:
            since = since.replace(tzinfo=UTC)
        result = []
        for event in self.list(ResourceKind.EVENT):
            seen = _event_time(event)
            if seen is not None and seen > since:
                result.append((seen, event))
        result.sort(key=lambda pair: pair[0])
        return [event for _, event in result]

    def horizontal_pod_autoscalers(self) -> list[Any]:
        return self.list(ResourceKind.HORIZONTAL_POD_AUTOSCALER)

    def horizontal_pod_autoscaler_by_namespace_and_deployment(self, namespace: str, deployment: str) -> Any | None:
        for hpa in self.list(ResourceKind.HORIZONTAL_POD_AUTOSCALER, namespace):
            ref = hpa.spec.scale_target_ref if hpa.spec is not None else None
            if ref is not None and ref.kind == "Deployment" and ref.name == deployment:
                return hpa
        return None


def _event_time(event: Any) -> datetime | None:
    return event.last_timestamp or event.event_time
