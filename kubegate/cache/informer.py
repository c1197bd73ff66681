"""Watch-and-cache subscription for a single kind.

An Informer lists the kind once, fills its IndexedStore through the kind's
transform, signals initial sync, then follows a watch stream from the list's
resource version.  The watch is opened with ``timeout_seconds`` set to the
resync period; when the server closes it the informer relists, which bounds
drift from missed events.

Failure handling:

* ``410 Gone`` (raised as ApiException or delivered as an ERROR event) means
  the resource version expired and triggers an immediate relist.
* Any other failure is logged and retried with exponential back-off
  (1 s doubling up to 30 s).  The back-off sleep returns early when the
  shared stop event fires.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from kubegate.cache.store import IndexedStore, object_key
from kubegate.models.resources import CustomResourceKind, ResourceChange, ResourceKind
from kubegate.observability.metrics import cached_objects, watch_restarts_total

_log = structlog.get_logger(component="cache.informer")

_BACKOFF_INITIAL = 1.0
_BACKOFF_MAX = 30.0
_HTTP_GONE = 410

ListFn = Callable[..., Awaitable[Any]]
ChangeHandler = Callable[[ResourceChange], None]


class _ResourceExpired(Exception):
    """The watch resource version is too old; a full relist is required."""


def list_items(result: Any) -> tuple[list[Any], str]:
    """Extract items and resource version from a typed or raw list response."""
    if isinstance(result, dict):
        metadata = result.get("metadata") or {}
        return list(result.get("items") or []), str(metadata.get("resourceVersion") or "")
    metadata = getattr(result, "metadata", None)
    return list(getattr(result, "items", None) or []), getattr(metadata, "resource_version", None) or ""


class Informer:
    """Keeps one IndexedStore in sync with the cluster for one kind."""

    def __init__(
        self,
        kind: ResourceKind | CustomResourceKind,
        list_fn: ListFn,
        *,
        stop_event: asyncio.Event,
        transform: Callable[[Any], Any] | None = None,
        list_kwargs: dict[str, Any] | None = None,
        resync_seconds: int = 600,
        on_change: ChangeHandler | None = None,
        watch_factory: Callable[[], Any] = watch.Watch,
    ) -> None:
        self.kind = kind
        self.store = IndexedStore(str(kind))
        self._list_fn = list_fn
        self._stop = stop_event
        self._transform = transform or (lambda obj: obj)
        self._list_kwargs = dict(list_kwargs or {})
        self._resync_seconds = resync_seconds
        self._on_change = on_change
        self._watch_factory = watch_factory
        self._synced = asyncio.Event()

    @property
    def has_synced(self) -> bool:
        return self._synced.is_set()

    async def wait_synced(self) -> None:
        await self._synced.wait()

    # ------------------------------------------------------------------
    # Watch loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run until the stop event fires or the task is cancelled."""
        backoff = _BACKOFF_INITIAL
        while not self._stop.is_set():
            try:
                resource_version = await self._relist()
                backoff = _BACKOFF_INITIAL
                await self._watch(resource_version)
                watch_restarts_total.labels(kind=str(self.kind), reason="resync").inc()
            except _ResourceExpired:
                watch_restarts_total.labels(kind=str(self.kind), reason="gone").inc()
                _log.debug("watch_resource_version_expired", kind=str(self.kind))
            except ApiException as exc:
                if exc.status == _HTTP_GONE:
                    watch_restarts_total.labels(kind=str(self.kind), reason="gone").inc()
                    _log.debug("watch_resource_version_expired", kind=str(self.kind))
                    continue
                backoff = await self._back_off(backoff, exc)
            except Exception as exc:  # noqa: BLE001
                backoff = await self._back_off(backoff, exc)

    async def _relist(self) -> str:
        result = await self._list_fn(**self._list_kwargs)
        items, resource_version = list_items(result)
        self.store.replace(self._transform(item) for item in items)
        cached_objects.labels(kind=str(self.kind)).set(len(self.store))
        if not self._synced.is_set():
            _log.info("informer_synced", kind=str(self.kind), objects=len(self.store))
            self._synced.set()
        self._emit("RELISTED", "", "")
        return resource_version

    async def _watch(self, resource_version: str) -> None:
        kwargs = dict(self._list_kwargs)
        kwargs["timeout_seconds"] = self._resync_seconds
        if resource_version:
            kwargs["resource_version"] = resource_version
        async with self._watch_factory().stream(self._list_fn, **kwargs) as stream:
            async for event in stream:
                if self._stop.is_set():
                    return
                self._apply(event)

    def _apply(self, event: dict[str, Any]) -> None:
        event_type = event.get("type", "")
        obj = event.get("object")
        if event_type == "ERROR":
            raw = event.get("raw_object") or obj
            code = raw.get("code") if isinstance(raw, dict) else None
            if code == _HTTP_GONE:
                raise _ResourceExpired()
            raise RuntimeError(f"watch error event: {raw!r}")
        if event_type not in ("ADDED", "MODIFIED", "DELETED"):
            return

        if event_type == "DELETED":
            namespace, name = object_key(obj)
            self.store.delete(namespace, name)
        else:
            obj = self._transform(obj)
            namespace, name = object_key(obj)
            self.store.upsert(obj)
        cached_objects.labels(kind=str(self.kind)).set(len(self.store))
        self._emit(event_type, namespace, name)

    def _emit(self, event_type: str, namespace: str, name: str) -> None:
        if self._on_change is None:
            return
        self._on_change(ResourceChange(kind=self.kind, event_type=event_type, namespace=namespace, name=name))

    async def _back_off(self, delay: float, exc: Exception) -> float:
        watch_restarts_total.labels(kind=str(self.kind), reason="error").inc()
        _log.warning("watch_failed", kind=str(self.kind), error=str(exc), retry_in_seconds=delay)
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
        except TimeoutError:
            pass
        return min(delay * 2, _BACKOFF_MAX)

    def close(self) -> None:
        """Drop the store content; subsequent reads return nothing."""
        self.store.close()
        cached_objects.labels(kind=str(self.kind)).set(0)
