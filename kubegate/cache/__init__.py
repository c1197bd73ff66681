"""Cache layer for kubegate.

Provides the typed local cache of cluster objects, backed by one watch stream
per kind.  Consumers only ever read from it; each store is written solely by
its own watch loop.

Submodules:
    store        -- IndexedStore: objects of one kind keyed by namespace/name.
    informer     -- Informer: list + watch loop feeding one store.
    transforms   -- Insertion-time field stripping, one transform per kind.
    synchronizer -- ResourceSynchronizer: starts all informers, typed reads.
    owners       -- OwnershipResolver: owner-reference chain walking.
    selectors    -- Label selector evaluation.
"""

from kubegate.cache.owners import OwnerKind, OwnershipResolver
from kubegate.cache.synchronizer import ResourceSynchronizer, is_excluded_from_discovery

__all__ = ["OwnerKind", "OwnershipResolver", "ResourceSynchronizer", "is_excluded_from_discovery"]
