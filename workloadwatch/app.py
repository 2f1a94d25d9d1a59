"""Application bootstrap for workloadwatch.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → gateway → registry/reports
              → reconciler → report shipper → metrics

Shutdown is fully graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single component failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from workloadwatch.config import load_config
from workloadwatch.models.config import WorkloadWatchConfig
from workloadwatch.observability.logging import get_logger, setup_logging
from workloadwatch.registry import WorkloadRegistry
from workloadwatch.reports import ReportBuffer

if TYPE_CHECKING:
    import structlog

    from workloadwatch.gateway import ClusterGateway
    from workloadwatch.reconciler import PodReconciler
    from workloadwatch.reports import ReportShipper

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class WorkloadWatchApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self) -> None:
        self.config: WorkloadWatchConfig | None = None

        self._gateway: ClusterGateway | None = None
        self._registry: WorkloadRegistry | None = None
        self._reports: ReportBuffer | None = None
        self._reconciler: PodReconciler | None = None
        self._shipper: ReportShipper | None = None

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def registry(self) -> WorkloadRegistry | None:
        return self._registry

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, cluster_name=self.config.cluster_name)
        self._log = get_logger("app")
        self._log.info("workloadwatch starting", version=_version())

        # --- 3. Kubernetes client and gateway -----------------------------
        await self._start_gateway()

        # --- 4. Registry and report buffer --------------------------------
        self._registry = WorkloadRegistry()
        self._reports = ReportBuffer(max_records=self.config.report.buffer_max_records)

        # --- 5. Reconciler ------------------------------------------------
        await self._start_reconciler()

        # --- 6. Report shipper (optional) -------------------------------
        await self._start_shipper()

        # --- 7. Metrics exporter (optional) -----------------------------
        self._start_metrics()

        self._running = True
        self._log.info("workloadwatch started")

    async def _start_gateway(self) -> None:
        """Load in-cluster config or kubeconfig and build the gateway."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            # Import lazily so importing the app never triggers client
            # configuration side effects.
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]

            from workloadwatch.gateway.kubernetes import KubernetesGateway

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._gateway = KubernetesGateway()
        except Exception as exc:
            raise _ComponentError("gateway", exc) from exc

    async def _start_reconciler(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._gateway is not None
        assert self._registry is not None
        assert self._reports is not None
        self._log.debug("starting pod reconciler")
        try:
            from workloadwatch.reconciler import DesiredStateWaiter, OwnerResolver, PodReconciler

            watch_cfg = self.config.watch
            reconciler = PodReconciler(
                gateway=self._gateway,
                registry=self._registry,
                reports=self._reports,
                resolver=OwnerResolver(self._gateway),
                waiter=DesiredStateWaiter(
                    self._gateway,
                    timeout_seconds=watch_cfg.desired_state_timeout_seconds,
                    poll_interval=watch_cfg.desired_state_poll_interval,
                ),
                reconnect_backoff=watch_cfg.reconnect_backoff_seconds,
            )
            await reconciler.start()
            self._reconciler = reconciler
            self._log.info("pod reconciler started")
        except Exception as exc:
            raise _ComponentError("reconciler", exc) from exc

    async def _start_shipper(self) -> None:
        """Ship reports when a collector endpoint is configured."""
        assert self._log is not None
        assert self.config is not None
        assert self._reports is not None
        report_cfg = self.config.report
        if not report_cfg.url:
            self._log.info("report shipper disabled (no report url configured)")
            return
        try:
            from workloadwatch.reports import ReportShipper

            shipper = ReportShipper(
                buffer=self._reports,
                url=report_cfg.url,
                cluster_name=self.config.cluster_name,
                customer_guid=report_cfg.customer_guid,
                flush_interval=report_cfg.flush_interval_seconds,
                timeout=report_cfg.timeout_seconds,
            )
            await shipper.start()
            self._shipper = shipper
            self._log.info("report shipper started", url=report_cfg.url)
        except Exception as exc:
            # Shipping is non-fatal: the model stays current and reports queue up.
            self._log.warning("report shipper failed to start; reports will be buffered", error=str(exc))
            self._shipper = None

    def _start_metrics(self) -> None:
        assert self._log is not None
        assert self.config is not None
        if not self.config.metrics.enabled:
            self._log.info("metrics exporter disabled")
            return
        try:
            from workloadwatch.observability.metrics import start_metrics_server

            start_metrics_server(self.config.metrics.port)
            self._log.info("metrics exporter started", port=self.config.metrics.port)
        except Exception as exc:
            self._log.warning("metrics exporter failed to start", error=str(exc))

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("workloadwatch shutting down")
        self._running = False

        await self._stop_component("reconciler", self._reconciler)
        await self._stop_component("shipper", self._shipper)
        await self._stop_component("gateway", self._gateway)
        self._reconciler = None
        self._shipper = None
        self._gateway = None

        log.info("workloadwatch stopped")

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


def _version() -> str:
    from workloadwatch import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = WorkloadWatchApp()
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
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
