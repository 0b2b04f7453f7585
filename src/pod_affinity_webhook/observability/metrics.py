"""
Prometheus metrics for the pod affinity webhook.

This module provides metrics collection for monitoring registration
reconciles, admission decisions and leader election, plus the small HTTP
server that exposes them.
"""

import logging
import time
from collections.abc import Callable
from contextlib import asynccontextmanager

# aiohttp is provided transitively by Kopf; the admission server uses it too.
from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
    json_response,
)
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Global metrics registry
_metrics_registry: CollectorRegistry | None = None

# Metrics definitions
RECONCILIATION_TOTAL = Counter(
    "pod_affinity_webhook_reconciliation_total",
    "Total number of registration reconciliation attempts",
    ["resource_type", "name", "result"],
    registry=None,  # Will be set during initialization
)

RECONCILIATION_DURATION = Histogram(
    "pod_affinity_webhook_reconciliation_duration_seconds",
    "Time spent on reconciliation operations",
    ["resource_type", "operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=None,
)

RECONCILIATION_ERRORS = Counter(
    "pod_affinity_webhook_reconciliation_errors_total",
    "Total number of reconciliation errors",
    ["resource_type", "error_type", "retryable"],
    registry=None,
)

RECONCILIATION_SKIPPED_TOTAL = Counter(
    "pod_affinity_webhook_reconciliation_skipped_total",
    "Total number of reconciliations skipped",
    ["resource_type", "name", "reason"],
    registry=None,
)

REGISTRATION_UPDATES_TOTAL = Counter(
    "pod_affinity_webhook_registration_updates_total",
    "Total number of writes to the MutatingWebhookConfiguration",
    ["name"],
    registry=None,
)

ADMISSION_REQUESTS_TOTAL = Counter(
    "pod_affinity_webhook_admission_requests_total",
    "Total number of admission requests by outcome",
    ["kind", "operation", "result"],
    registry=None,
)

ADMISSION_DURATION = Histogram(
    "pod_affinity_webhook_admission_duration_seconds",
    "Time spent answering admission requests",
    ["kind"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
    registry=None,
)

# Leader election metrics
LEADER_ELECTION_STATUS = Gauge(
    "pod_affinity_webhook_leader_election_status",
    "Leader election status (1=leader, 0=follower)",
    ["instance_id", "namespace"],
    registry=None,
)

LEADER_ELECTION_CHANGES = Counter(
    "pod_affinity_webhook_leader_election_changes_total",
    "Total number of leader election changes",
    ["previous_leader", "new_leader", "namespace"],
    registry=None,
)


def get_metrics_registry() -> CollectorRegistry:
    """Get or create the global metrics registry."""
    global _metrics_registry

    if _metrics_registry is None:
        _metrics_registry = CollectorRegistry()

        for metric in [
            RECONCILIATION_TOTAL,
            RECONCILIATION_DURATION,
            RECONCILIATION_ERRORS,
            RECONCILIATION_SKIPPED_TOTAL,
            REGISTRATION_UPDATES_TOTAL,
            ADMISSION_REQUESTS_TOTAL,
            ADMISSION_DURATION,
            LEADER_ELECTION_STATUS,
            LEADER_ELECTION_CHANGES,
        ]:
            _metrics_registry.register(metric)

    return _metrics_registry


class MetricsCollector:
    """Collects and manages metrics for the pod affinity webhook."""

    def __init__(self):
        """Initialize metrics collector."""
        self.registry = get_metrics_registry()

    @asynccontextmanager
    async def track_reconciliation(
        self,
        resource_type: str,
        name: str,
        operation: str = "reconcile",
    ):
        """
        Context manager to track reconciliation operations.

        Args:
            resource_type: Type of resource being reconciled
            name: Name of the resource
            operation: Type of operation being performed
        """
        start_time = time.time()
        result = "unknown"

        try:
            yield
            result = "success"
        except Exception as e:
            result = "error"

            error_type = type(e).__name__
            retryable = "true" if getattr(e, "retryable", False) else "false"

            RECONCILIATION_ERRORS.labels(
                resource_type=resource_type,
                error_type=error_type,
                retryable=retryable,
            ).inc()

            raise
        finally:
            duration = time.time() - start_time

            RECONCILIATION_TOTAL.labels(
                resource_type=resource_type,
                name=name,
                result=result,
            ).inc()

            RECONCILIATION_DURATION.labels(
                resource_type=resource_type, operation=operation
            ).observe(duration)

    def record_reconciliation_skip(
        self, resource_type: str, name: str, reason: str
    ) -> None:
        """
        Record a skipped reconciliation.

        Args:
            resource_type: Type of resource
            name: Name of the resource
            reason: Why the pass was skipped (e.g. not_leader)
        """
        RECONCILIATION_SKIPPED_TOTAL.labels(
            resource_type=resource_type, name=name, reason=reason
        ).inc()

    def record_registration_update(self, name: str) -> None:
        REGISTRATION_UPDATES_TOTAL.labels(name=name).inc()

    def record_admission(
        self, kind: str, operation: str, result: str, duration: float
    ) -> None:
        """
        Record the outcome of one admission request.

        Args:
            kind: Kind of the admitted object
            operation: Admission operation (CREATE, UPDATE, ...)
            result: mutated, unchanged or denied
            duration: Time taken to answer the request
        """
        ADMISSION_REQUESTS_TOTAL.labels(
            kind=kind, operation=operation, result=result
        ).inc()
        ADMISSION_DURATION.labels(kind=kind).observe(duration)

    def update_leader_election_status(
        self, instance_id: str, namespace: str, is_leader: bool
    ):
        """
        Update leader election status.

        Args:
            instance_id: Unique identifier for this operator instance
            namespace: Namespace where the operator is running
            is_leader: Whether this instance is currently the leader
        """
        LEADER_ELECTION_STATUS.labels(instance_id=instance_id, namespace=namespace).set(
            1 if is_leader else 0
        )

    def record_leader_election_change(
        self, previous_leader: str, new_leader: str, namespace: str
    ):
        LEADER_ELECTION_CHANGES.labels(
            previous_leader=previous_leader,
            new_leader=new_leader,
            namespace=namespace,
        ).inc()


class MetricsServer:
    """HTTP server for exposing Prometheus metrics and probes."""

    def __init__(
        self,
        port: int = 8081,
        host: str = "0.0.0.0",
        readiness_check: Callable[[], bool] | None = None,
    ):
        """
        Initialize metrics server.

        Args:
            port: Port to serve metrics on
            host: Host interface to bind to
            readiness_check: Callable reporting whether the webhook can serve
        """
        self.port = port
        self.host = host
        self.readiness_check = readiness_check
        self.app = Application()
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/metrics", self._metrics_handler)
        self.app.router.add_get("/ready", self._ready_handler)
        self.app.router.add_get("/healthz", self._healthz_handler)

    async def _metrics_handler(self, request: Request) -> Response:
        """Handle /metrics endpoint for Prometheus scraping."""
        try:
            registry = get_metrics_registry()
            metrics_data = generate_latest(registry)
            return Response(
                body=metrics_data,
                headers={"Content-Type": CONTENT_TYPE_LATEST},
            )
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            return Response(
                text=f"Error generating metrics: {type(e).__name__}. Check logs for details.",
                status=500,
            )

    async def _ready_handler(self, request: Request) -> Response:
        """Handle /ready endpoint for readiness probes."""
        ready = self.readiness_check() if self.readiness_check else True
        return json_response(
            {"status": "ready" if ready else "not_ready", "timestamp": time.time()},
            status=200 if ready else 503,
        )

    async def _healthz_handler(self, request: Request) -> Response:
        """Handle /healthz endpoint for Kubernetes compatibility."""
        return Response(text="ok")

    async def start(self) -> None:
        """Start the metrics server."""
        try:
            self.runner = AppRunner(self.app)
            await self.runner.setup()

            self.site = TCPSite(self.runner, self.host, self.port)
            await self.site.start()

            logger.info(f"Metrics server started on {self.host}:{self.port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")
            raise

    async def stop(self) -> None:
        """Stop the metrics server."""
        try:
            if self.site:
                await self.site.stop()
                self.site = None

            if self.runner:
                await self.runner.cleanup()
                self.runner = None

            logger.info("Metrics server stopped")
        except Exception as e:
            logger.error(f"Error stopping metrics server: {e}")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


# Global metrics collector instance
metrics_collector = MetricsCollector()
