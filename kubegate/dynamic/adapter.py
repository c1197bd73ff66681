"""DynamicResourceAdapter: list, watch and merge-patch custom resources.

Custom kinds have no generated models, so their objects are kept as plain
dict documents.  The adapter shares the permission result and observes the
stop event of the typed cache, but ``stop()`` only tears down its own
informers and never fires the shared event.  A kind whose read permissions
were not granted is never subscribed.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio import watch

from kubegate.cache.informer import Informer, list_items
from kubegate.cache.transforms import transform_document
from kubegate.errors import DynamicPatchError
from kubegate.models.resources import ARGO_ROLLOUT, CustomResourceKind
from kubegate.observability.metrics import dynamic_patches_total

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from kubegate.permissions.result import PermissionCheckResult

_log = structlog.get_logger(component="dynamic.adapter")

_MERGE_PATCH = "application/merge-patch+json"

# Predicate names on PermissionCheckResult gating each custom kind.
_READ_PREDICATES: dict[CustomResourceKind, str] = {ARGO_ROLLOUT: "can_read_argo_rollouts"}
_PATCH_PREDICATES: dict[CustomResourceKind, str] = {ARGO_ROLLOUT: "is_argo_rollout_restart_permitted"}


class DynamicResourceAdapter:
    """Loosely typed access to custom resources."""

    def __init__(
        self,
        api_client: Any,
        permissions: PermissionCheckResult,
        *,
        namespace: str = "",
        resync_seconds: int = 600,
        stop_event: asyncio.Event | None = None,
        custom_api: Any | None = None,
        watch_factory: Callable[[], Any] = watch.Watch,
    ) -> None:
        self.permissions = permissions
        self.namespace = namespace
        self.stop_event = stop_event or asyncio.Event()
        self._api = custom_api or k8s_client.CustomObjectsApi(api_client)
        self._resync_seconds = resync_seconds
        self._watch_factory = watch_factory
        self._informers: dict[CustomResourceKind, Informer] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped or self.stop_event.is_set()

    def _permitted(self, table: dict[CustomResourceKind, str], kind: CustomResourceKind) -> bool:
        predicate = table.get(kind)
        return predicate is not None and bool(getattr(self.permissions, predicate))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, kinds: Iterable[CustomResourceKind]) -> None:
        """Subscribe every readable kind and wait for its initial list."""
        for kind in kinds:
            if kind in self._informers:
                continue
            if not self._permitted(_READ_PREDICATES, kind):
                _log.warning("custom_kind_not_readable", kind=str(kind))
                continue
            informer = self._build_informer(kind)
            self._informers[kind] = informer
            self._tasks.append(asyncio.create_task(informer.run(), name=f"informer-{kind}"))
        if self._informers:
            await asyncio.gather(*(informer.wait_synced() for informer in self._informers.values()))
        _log.info("dynamic_adapter_started", kinds=[str(k) for k in self._informers])

    def _build_informer(self, kind: CustomResourceKind) -> Informer:
        list_kwargs: dict[str, Any] = {"group": kind.group, "version": kind.version, "plural": kind.plural}
        if self.namespace:
            list_kwargs["namespace"] = self.namespace
            list_fn = self._api.list_namespaced_custom_object
        else:
            list_fn = self._api.list_cluster_custom_object
        return Informer(
            kind,
            list_fn,
            stop_event=self.stop_event,
            transform=transform_document,
            list_kwargs=list_kwargs,
            resync_seconds=self._resync_seconds,
            watch_factory=self._watch_factory,
        )

    async def stop(self) -> None:
        self._stopped = True
        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        for informer in self._informers.values():
            informer.close()

    @property
    def kinds(self) -> list[CustomResourceKind]:
        return list(self._informers)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self, kind: CustomResourceKind, namespace: str | None = None) -> list[dict[str, Any]]:
        """Documents of *kind* from the local store; empty when not subscribed."""
        if self.stopped:
            return []
        informer = self._informers.get(kind)
        if informer is None:
            _log.debug("lookup_kind_not_subscribed", kind=str(kind))
            return []
        return informer.store.list(namespace)

    def get(self, kind: CustomResourceKind, namespace: str, name: str) -> dict[str, Any] | None:
        if self.stopped:
            return None
        informer = self._informers.get(kind)
        return informer.store.get(namespace, name) if informer is not None else None

    async def fetch(self, kind: CustomResourceKind, namespace: str | None = None) -> list[dict[str, Any]]:
        """List *kind* straight from the API server, bypassing the store."""
        namespace = namespace if namespace is not None else self.namespace
        if namespace:
            result = await self._api.list_namespaced_custom_object(
                group=kind.group, version=kind.version, namespace=namespace, plural=kind.plural
            )
        else:
            result = await self._api.list_cluster_custom_object(
                group=kind.group, version=kind.version, plural=kind.plural
            )
        items, _ = list_items(result)
        return [transform_document(item) for item in items]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def patch(
        self,
        kind: CustomResourceKind,
        namespace: str,
        name: str,
        merge_document: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply a JSON merge patch to one object.

        Raises:
            DynamicPatchError: if the API call fails; the client error is
                chained as ``__cause__``.
        """
        try:
            result = await self._api.patch_namespaced_custom_object(
                group=kind.group,
                version=kind.version,
                namespace=namespace,
                plural=kind.plural,
                name=name,
                body=merge_document,
                _content_type=_MERGE_PATCH,
            )
        except Exception as exc:
            dynamic_patches_total.labels(kind=str(kind), success="false").inc()
            _log.error("dynamic_patch_failed", kind=str(kind), namespace=namespace, name=name, error=str(exc))
            raise DynamicPatchError(str(kind), namespace, name, str(exc)) from exc
        dynamic_patches_total.labels(kind=str(kind), success="true").inc()
        _log.info("dynamic_patch_applied", kind=str(kind), namespace=namespace, name=name)
        return result

    async def restart_rollout(self, namespace: str, name: str) -> dict[str, Any]:
        """Ask the Argo Rollouts controller to restart every pod of a rollout."""
        if not self._permitted(_PATCH_PREDICATES, ARGO_ROLLOUT):
            raise DynamicPatchError(str(ARGO_ROLLOUT), namespace, name, "patch permission not granted")
        restart_at = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        return await self.patch(ARGO_ROLLOUT, namespace, name, {"spec": {"restartAt": restart_at}})
