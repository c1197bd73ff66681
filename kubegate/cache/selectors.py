"""Label selector evaluation against cached objects."""

from __future__ import annotations

from typing import Any


def selector_matches(selector: Any | None, labels: dict[str, str] | None) -> bool:
    """Evaluate a ``V1LabelSelector`` against *labels*.

    A ``None`` selector matches nothing; an empty selector matches everything,
    mirroring the API server's semantics.  Unknown operators never match.
    """
    if selector is None:
        return False
    labels = labels or {}
    for key, value in (selector.match_labels or {}).items():
        if labels.get(key) != value:
            return False
    for requirement in selector.match_expressions or []:
        if not _requirement_matches(requirement, labels):
            return False
    return True


def _requirement_matches(requirement: Any, labels: dict[str, str]) -> bool:
    operator = requirement.operator
    values = requirement.values or []
    present = requirement.key in labels
    if operator == "In":
        return present and labels[requirement.key] in values
    if operator == "NotIn":
        return not present or labels[requirement.key] not in values
    if operator == "Exists":
        return present
    if operator == "DoesNotExist":
        return not present
    return False


def map_selector_matches(selector: dict[str, str] | None, labels: dict[str, str] | None) -> bool:
    """Evaluate a plain equality selector (as used by Services).

    ``None`` matches nothing; every selector entry must be present in *labels*.
    """
    if selector is None:
        return False
    labels = labels or {}
    return all(labels.get(key) == value for key, value in selector.items())
