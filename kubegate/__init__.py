"""kubegate: cluster resource synchronization and capability gating.

Maintains a memory-bounded local cache of Kubernetes objects, resolves
ownership chains across workload kinds, and probes the caller's effective
permissions before dependent features are allowed to activate.
"""

__version__ = "0.3.0"
