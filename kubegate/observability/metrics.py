"""Prometheus metrics for the cache and the capability gate."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

cached_objects = Gauge(
    "kubegate_cached_objects",
    "Number of objects currently held in the local store of a kind.",
    ["kind"],
)

watch_restarts_total = Counter(
    "kubegate_watch_restarts_total",
    "Watch loop restarts, by kind and reason (resync, gone, error).",
    ["kind", "reason"],
)

cache_lookups_total = Counter(
    "kubegate_cache_lookups_total",
    "Keyed cache lookups, by kind and result (hit, miss).",
    ["kind", "result"],
)

permission_outcome = Gauge(
    "kubegate_permission_outcome",
    "1 for the outcome recorded for a permission key at startup.",
    ["permission", "outcome"],
)

dynamic_patches_total = Counter(
    "kubegate_dynamic_patches_total",
    "Merge patches sent through the dynamic adapter.",
    ["kind", "success"],
)
