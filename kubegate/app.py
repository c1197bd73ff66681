"""Application bootstrap for kubegate.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → permissions → cache
              → ownership resolver → dynamic adapter → REST

The permission check runs exactly once, before any watch is opened, and its
result decides which kinds the cache subscribes to.  A required permission
that is missing, or a cache that does not sync in time, stops startup with a
FatalStartupError.

Shutdown is graceful: components are stopped in reverse startup order and
each stop error is caught and logged independently.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kubegate.config import load_config
from kubegate.errors import FatalStartupError
from kubegate.models.config import KubeGateConfig
from kubegate.models.resources import ARGO_ROLLOUT
from kubegate.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from kubegate.cache import OwnershipResolver, ResourceSynchronizer
    from kubegate.dynamic import DynamicResourceAdapter
    from kubegate.permissions import PermissionCheckResult

_SHUTDOWN_GRACE_SECONDS = 15


class KubeGateApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe on an app that was never started or already stopped.
    """

    def __init__(self) -> None:
        self.config: KubeGateConfig | None = None

        self._api_client: object | None = None
        self._distribution = "kubernetes"
        self.permissions: PermissionCheckResult | None = None
        self.cache: ResourceSynchronizer | None = None
        self.owners: OwnershipResolver | None = None
        self.dynamic: DynamicResourceAdapter | None = None
        self._rest_server: object | None = None

        # One stop signal shared by every watch loop
        self._stop_event = asyncio.Event()
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises FatalStartupError if a mandatory component cannot start.
        The caller (main()) turns this into a non-zero exit.
        """
        # --- 1. Configuration -------------------------------------------
        try:
            self.config = load_config()
        except ValueError as exc:
            raise FatalStartupError("config", str(exc), exc) from exc

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, cluster_name=self.config.cluster.cluster_name)
        self._log = get_logger("app")
        self._log.info(
            "kubegate starting",
            version=_kubegate_version(),
            namespace=self.config.cluster.namespace or "*",
        )

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Permission check -----------------------------------------
        await self._start_permissions()

        # --- 5. Resource cache -------------------------------------------
        await self._start_cache()

        # --- 6. Ownership resolver ---------------------------------------
        self._start_owners()

        # --- 7. Dynamic adapter (optional) -------------------------------
        await self._start_dynamic()

        # --- 8. REST API -------------------------------------------------
        await self._start_rest()

        assert self.cache is not None
        self._running = True
        self._log.info("kubegate started", port=self.config.api.port, counts=self.cache.counts())

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_k8s_client(self) -> None:
        """Build the shared ApiClient and detect the cluster distribution."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            from kubegate.client import create_api_client, detect_distribution

            self._api_client = await create_api_client()
            self._distribution = await detect_distribution(self._api_client)
            self._log.info("k8s client started", distribution=self._distribution)
        except Exception as exc:
            raise FatalStartupError("k8s_client", str(exc), exc) from exc

    async def _start_permissions(self) -> None:
        """Compose the permission matrix and probe it once."""
        assert self._log is not None
        assert self.config is not None
        from kubegate.permissions import CapabilityProbe, build_permission_matrix

        matrix = build_permission_matrix(
            namespace=self.config.cluster.namespace,
            argo_rollouts_enabled=self.config.features.argo_rollouts_enabled,
        )
        probe = CapabilityProbe(self._api_client, namespace=self.config.cluster.namespace)
        # FatalStartupError propagates; the probe has already logged the matrix
        self.permissions = await probe.check(matrix)

    async def _start_cache(self) -> None:
        """Subscribe every permitted kind and wait for the initial sync."""
        assert self._log is not None
        assert self.config is not None
        assert self.permissions is not None
        from kubegate.cache import ResourceSynchronizer

        self._log.debug("starting resource cache")
        cache = ResourceSynchronizer(
            self._api_client,
            self.permissions,
            namespace=self.config.cluster.namespace,
            resync_seconds=self.config.cluster.resync_seconds,
            sync_timeout_seconds=self.config.cluster.sync_timeout_seconds,
            stop_event=self._stop_event,
            distribution=self._distribution,
        )
        self.cache = cache
        await cache.start()
        self._log.info("resource cache started", kinds=[str(k) for k in cache.kinds])

    def _start_owners(self) -> None:
        assert self.cache is not None
        from kubegate.cache import OwnershipResolver

        self.owners = OwnershipResolver(self.cache)

    async def _start_dynamic(self) -> None:
        """Start the custom-resource adapter when an integration needs it.

        Non-fatal: a failure leaves the integration disabled.
        """
        assert self._log is not None
        assert self.config is not None
        assert self.permissions is not None
        if not self.config.features.argo_rollouts_enabled:
            self._log.info("dynamic adapter disabled (argo_rollouts_enabled=false)")
            return
        if not self.permissions.can_read_argo_rollouts:
            self._log.warning("argo rollouts enabled but not readable; integration disabled")
            return

        self._log.debug("starting dynamic adapter")
        from kubegate.dynamic import DynamicResourceAdapter

        adapter = DynamicResourceAdapter(
            self._api_client,
            self.permissions,
            namespace=self.config.cluster.namespace,
            resync_seconds=self.config.cluster.resync_seconds,
            stop_event=self._stop_event,
        )
        try:
            await asyncio.wait_for(adapter.start([ARGO_ROLLOUT]), timeout=self.config.cluster.sync_timeout_seconds)
        except Exception as exc:
            self._log.warning("dynamic adapter failed to start; argo rollouts disabled", error=str(exc))
            await adapter.stop()
            return
        self.dynamic = adapter

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server.  Non-fatal."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from kubegate.api import build_app

            fastapi_app = build_app(cache=self.cache, permissions=self.permissions, config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            self._log.warning("rest api failed to start", error=str(exc))

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return
        log = self._log or get_logger("app")
        log.info("kubegate shutting down")
        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        await self._stop_component("dynamic", self.dynamic)
        self.owners = None
        await self._stop_component("cache", self.cache)
        self._stop_event.set()
        await self._stop_k8s_client()
        log.info("kubegate stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()  # type: ignore[attr-defined]
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _kubegate_version() -> str:
    from kubegate import __version__

    return __version__


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeGateApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app._running:
            await asyncio.sleep(1)
    except FatalStartupError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=exc.reason,
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()
