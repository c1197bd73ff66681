"""Permission requirement and outcome data structures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class PermissionOutcome(StrEnum):
    """Classification of a single access review."""

    OK = "ok"
    WARN = "warn"
    ERROR = "error"


@dataclass(frozen=True)
class PermissionRequirement:
    """One row of the permission matrix.

    ``allow_graceful_failure`` marks the row optional: a denial disables the
    dependent feature instead of aborting startup.
    """

    verbs: tuple[str, ...]
    resource: str
    group: str = ""
    subresource: str = ""
    allow_graceful_failure: bool = False

    def key(self, verb: str) -> str:
        """Compose ``group/resource/subresource/verb``, omitting empty segments."""
        parts = [self.group, self.resource, self.subresource, verb]
        return "/".join(p for p in parts if p)

    def keys(self) -> list[str]:
        return [self.key(verb) for verb in self.verbs]
