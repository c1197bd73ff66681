"""Capability gating for kubegate.

Exports:
    build_permission_matrix -- Pure composition of the declared matrix.
    CapabilityProbe         -- Runs the access reviews once at startup.
    PermissionCheckResult   -- Immutable outcomes behind named predicates.
    mock_all_permitted      -- All-granted result for tests and local runs.
    mock_all_denied         -- All-denied result for tests.
"""

from kubegate.permissions.matrix import build_permission_matrix
from kubegate.permissions.probe import CapabilityProbe
from kubegate.permissions.result import PermissionCheckResult, mock_all_denied, mock_all_permitted

__all__ = [
    "CapabilityProbe",
    "PermissionCheckResult",
    "build_permission_matrix",
    "mock_all_denied",
    "mock_all_permitted",
]
