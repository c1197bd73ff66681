"""Ownership chain resolution over the typed cache.

Walks ``metadata.owner_references`` depth-first, one reference at a time in
declaration order, flattening every resolved ancestor into a single list
ordered from nearest to furthest (pod → replicaset → deployment).  Ownership
data is enrichment, never control flow: an unsupported owner kind or an owner
missing from the cache silently ends that branch.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any, Protocol

import structlog

from kubegate.models.resources import OwnerReference, OwnerReferenceList

_log = structlog.get_logger(component="cache.owners")


class OwnerKind(StrEnum):
    """Owner kinds the resolver can follow."""

    REPLICA_SET = "replicaset"
    DAEMON_SET = "daemonset"
    DEPLOYMENT = "deployment"
    STATEFUL_SET = "statefulset"


class _CacheProto(Protocol):
    """Lookups required by OwnershipResolver."""

    def replica_set_by_namespace_and_name(self, namespace: str, name: str) -> Any | None: ...

    def daemon_set_by_namespace_and_name(self, namespace: str, name: str) -> Any | None: ...

    def deployment_by_namespace_and_name(self, namespace: str, name: str) -> Any | None: ...

    def stateful_set_by_namespace_and_name(self, namespace: str, name: str) -> Any | None: ...


class OwnershipResolver:
    """Resolve ancestor chains using only local cache lookups."""

    def __init__(self, cache: _CacheProto) -> None:
        self._lookups: dict[OwnerKind, Callable[[str, str], Any | None]] = {
            OwnerKind.REPLICA_SET: cache.replica_set_by_namespace_and_name,
            OwnerKind.DAEMON_SET: cache.daemon_set_by_namespace_and_name,
            OwnerKind.DEPLOYMENT: cache.deployment_by_namespace_and_name,
            OwnerKind.STATEFUL_SET: cache.stateful_set_by_namespace_and_name,
        }

    def owner_reference_list(self, metadata: Any) -> OwnerReferenceList:
        """Return the ancestors of the object described by *metadata*."""
        result = OwnerReferenceList()
        if metadata is None:
            return result
        visited = {("", metadata.namespace or "", metadata.name or "")}
        self._walk(metadata, result, visited)
        return result

    def _walk(self, metadata: Any, result: OwnerReferenceList, visited: set[tuple[str, str, str]]) -> None:
        namespace = metadata.namespace or ""
        for ref in metadata.owner_references or []:
            try:
                kind = OwnerKind((ref.kind or "").lower())
            except ValueError:
                _log.debug("owner_kind_unsupported", kind=ref.kind, name=ref.name)
                continue

            key = (str(kind), namespace, ref.name)
            if key in visited:
                _log.debug("owner_cycle_detected", kind=str(kind), namespace=namespace, name=ref.name)
                continue
            visited.add(key)

            owner = self._lookups[kind](namespace, ref.name)
            if owner is None:
                continue

            result.owner_refs.append(OwnerReference(name=owner.metadata.name, kind=str(kind)))
            if kind is OwnerKind.DEPLOYMENT:
                result.deployment = owner
            elif kind is OwnerKind.DAEMON_SET:
                result.daemon_set = owner
            self._walk(owner.metadata, result, visited)
