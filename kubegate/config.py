"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubegate.models.config import (
    APIConfig,
    ClusterConfig,
    FeatureConfig,
    KubeGateConfig,
    LogConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEGATE_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_cluster_name(value: str) -> str:
    if not value.strip():
        raise ValueError("KUBEGATE_CLUSTER_NAME must be set")
    return value.strip()


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> KubeGateConfig:
    """Load configuration from KUBEGATE_* environment variables.

    Raises:
        ValueError: if a required value is missing or malformed.
    """
    return KubeGateConfig(
        cluster=ClusterConfig(
            cluster_name=_validate_cluster_name(_env("CLUSTER_NAME", "")),
            namespace=_env("NAMESPACE", "").strip(),
            resync_seconds=_env_int("RESYNC_SECONDS", 600, min_val=60, max_val=86400),
            sync_timeout_seconds=_env_int("SYNC_TIMEOUT_SECONDS", 120, min_val=5, max_val=900),
        ),
        features=FeatureConfig(
            argo_rollouts_enabled=_env_bool("ARGO_ROLLOUTS_ENABLED", False),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8088, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
