"""Indexed local store backing one watched kind.

A store is written only by the watch loop that owns it.  Readers get plain
references to cached objects and must treat them as read-only.  Full relists
build new index dictionaries and swap them in with a single assignment, so a
concurrent reader never observes a half-replaced store.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


def object_key(obj: Any) -> tuple[str, str]:
    """Return ``(namespace, name)`` for a typed model or a plain document.

    Cluster-scoped objects use an empty namespace.
    """
    if isinstance(obj, dict):
        metadata = obj.get("metadata") or {}
        return str(metadata.get("namespace") or ""), str(metadata.get("name") or "")
    metadata = getattr(obj, "metadata", None)
    return (getattr(metadata, "namespace", None) or "", getattr(metadata, "name", None) or "")


class IndexedStore:
    """Objects of one kind indexed by namespace and name."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._items: dict[tuple[str, str], Any] = {}
        self._by_namespace: dict[str, dict[str, Any]] = {}
        self._stopped = False

    def __len__(self) -> int:
        return len(self._items)

    @property
    def stopped(self) -> bool:
        return self._stopped

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, namespace: str, name: str) -> Any | None:
        if self._stopped:
            return None
        return self._items.get((namespace or "", name))

    def list(self, namespace: str | None = None) -> list[Any]:
        """Return every object, or only those in *namespace* when given."""
        if self._stopped:
            return []
        if namespace is None:
            return list(self._items.values())
        return list(self._by_namespace.get(namespace, {}).values())

    # ------------------------------------------------------------------
    # Writes (owning watch loop only)
    # ------------------------------------------------------------------

    def replace(self, objects: Iterable[Any]) -> None:
        """Atomically replace the whole content with *objects*."""
        if self._stopped:
            return
        items: dict[tuple[str, str], Any] = {}
        by_namespace: dict[str, dict[str, Any]] = {}
        for obj in objects:
            namespace, name = object_key(obj)
            if not name:
                continue
            items[(namespace, name)] = obj
            by_namespace.setdefault(namespace, {})[name] = obj
        self._items, self._by_namespace = items, by_namespace

    def upsert(self, obj: Any) -> None:
        if self._stopped:
            return
        namespace, name = object_key(obj)
        if not name:
            return
        self._items[(namespace, name)] = obj
        self._by_namespace.setdefault(namespace, {})[name] = obj

    def delete(self, namespace: str, name: str) -> None:
        self._items.pop((namespace, name), None)
        ns_map = self._by_namespace.get(namespace)
        if ns_map is not None:
            ns_map.pop(name, None)
            if not ns_map:
                self._by_namespace.pop(namespace, None)

    def close(self) -> None:
        """Drop every object; later reads return nothing."""
        self._stopped = True
        self._items = {}
        self._by_namespace = {}
