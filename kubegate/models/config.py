"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ClusterConfig:
    """Cluster identity and cache synchronization settings."""

    cluster_name: str = ""
    namespace: str = ""  # non-empty restricts the cache and disables cluster-scoped kinds
    resync_seconds: int = 600
    sync_timeout_seconds: int = 120


@dataclass
class FeatureConfig:
    """Optional integrations."""

    argo_rollouts_enabled: bool = False


@dataclass
class APIConfig:
    """Operational REST API configuration."""

    port: int = 8088


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeGateConfig:
    """Top-level kubegate configuration."""

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    features: FeatureConfig = field(default_factory=FeatureConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
