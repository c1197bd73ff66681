"""Kubernetes API client construction.

The in-cluster service account is preferred; outside a cluster the local
kubeconfig is used.  The returned ApiClient is shared by every component and
closed by the application on shutdown.
"""

from __future__ import annotations

from typing import Any

import structlog
from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio import config as k8s_config

from kubegate import __version__

_log = structlog.get_logger(component="client")

_OPENSHIFT_GROUP_SUFFIX = "openshift.io"


async def create_api_client() -> k8s_client.ApiClient:
    """Load cluster credentials and return a ready ApiClient."""
    try:
        # load_incluster_config() is synchronous in kubernetes-asyncio
        k8s_config.load_incluster_config()
        _log.info("k8s client configured from in-cluster service account")
    except k8s_config.ConfigException:
        # load_kube_config() is async in kubernetes-asyncio
        await k8s_config.load_kube_config()
        _log.info("k8s client configured from kubeconfig")

    api_client = k8s_client.ApiClient()
    api_client.user_agent = f"kubegate/{__version__}"

    version = await k8s_client.VersionApi(api_client).get_code()
    _log.info("connected to cluster", server_version=version.git_version, platform=version.platform)
    return api_client


async def detect_distribution(api_client: Any) -> str:
    """Return ``openshift`` when the cluster serves OpenShift API groups."""
    groups = await k8s_client.ApisApi(api_client).get_api_versions()
    for group in groups.groups or []:
        if group.name.endswith(_OPENSHIFT_GROUP_SUFFIX):
            return "openshift"
    return "kubernetes"
