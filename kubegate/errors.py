"""Exception types raised across component boundaries.

Only FatalStartupError is allowed to terminate the process.  Every other
condition inside the cache layer (lookup misses, ownership gaps, transform
skips, optional permission denials) is absorbed into an empty result or a
boolean predicate and never surfaces as an exception.
"""

from __future__ import annotations


class FatalStartupError(Exception):
    """Raised when the layer cannot reach a state where it serves correct data.

    Causes: initial cache sync timeout, a denied required permission, or a
    Kubernetes client that cannot be constructed.
    """

    def __init__(self, component: str, reason: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Component '{component}' failed to start: {reason}")
        self.component = component
        self.reason = reason
        self.cause = cause


class DynamicPatchError(Exception):
    """A merge patch against a custom resource failed.

    Carries the identity of the target so callers can report it without
    inspecting the underlying client exception (available as ``__cause__``).
    """

    def __init__(self, kind: str, namespace: str, name: str, reason: str) -> None:
        super().__init__(f"Failed to patch {kind} {namespace}/{name}: {reason}")
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.reason = reason
