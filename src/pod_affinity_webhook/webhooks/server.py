"""
HTTPS server answering AdmissionReview requests from the API server.

Every replica serves admission requests, leader or not. The server decodes
the review envelope, hands the request to the mutator and wraps the
mutator's response in an envelope of the same API version. A body that is
not an AdmissionReview is answered with HTTP 400.
"""

import logging
import ssl
import time
from pathlib import Path
from typing import Any

from aiohttp import web
from opentelemetry.trace import SpanKind, Status, StatusCode
from pydantic import ValidationError

from pod_affinity_webhook.constants import (
    ADMISSION_RESULT_DENIED,
    ADMISSION_RESULT_MUTATED,
    ADMISSION_RESULT_UNCHANGED,
)
from pod_affinity_webhook.models.admission import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
)
from pod_affinity_webhook.observability.logging import (
    OperatorLogger,
    generate_correlation_id,
    set_correlation_id,
)
from pod_affinity_webhook.observability.metrics import (
    MetricsCollector,
    metrics_collector,
)
from pod_affinity_webhook.observability.tracing import (
    extract_trace_context,
    get_tracer,
)
from pod_affinity_webhook.services.admission_mutator import PodAffinityMutator

logger = logging.getLogger(__name__)


def _object_name(request: AdmissionRequest) -> str:
    if request.name:
        return request.name
    obj = request.object if isinstance(request.object, dict) else {}
    metadata = obj.get("metadata") or {}
    if metadata.get("name"):
        return metadata["name"]
    return f"{metadata.get('generateName') or ''}<generated>"


def _result_of(response: AdmissionResponse) -> str:
    if not response.allowed:
        return ADMISSION_RESULT_DENIED
    if response.patch:
        return ADMISSION_RESULT_MUTATED
    return ADMISSION_RESULT_UNCHANGED


class AdmissionWebhookServer:
    """aiohttp server routing one admission path to the pod affinity mutator."""

    def __init__(
        self,
        mutator: PodAffinityMutator,
        path: str,
        port: int = 8443,
        host: str = "0.0.0.0",
        cert_dir: str | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the admission webhook server.

        Args:
            mutator: Decides on each admission request
            path: URL path the API server posts reviews to
            port: Port to listen on
            host: Host interface to bind to
            cert_dir: Directory with tls.crt and tls.key; plain HTTP if None
            metrics: Metrics collector, defaults to the global one
        """
        self.mutator = mutator
        self.path = path
        self.port = port
        self.host = host
        self.cert_dir = cert_dir
        self.metrics = metrics or metrics_collector
        self.logger = OperatorLogger(__name__)
        self.app = web.Application()
        self.app.router.add_post(self.path, self.review_handler)
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None

    @property
    def is_serving(self) -> bool:
        return self.site is not None

    def _ssl_context(self) -> ssl.SSLContext | None:
        if self.cert_dir is None:
            return None
        cert_dir = Path(self.cert_dir)
        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        context.load_cert_chain(
            certfile=cert_dir / "tls.crt", keyfile=cert_dir / "tls.key"
        )
        return context

    async def review_handler(self, request: web.Request) -> web.Response:
        """Handle one POSTed AdmissionReview."""
        start_time = time.time()

        try:
            body: Any = await request.json()
        except ValueError as e:
            logger.warning(f"Rejected admission request with a non-JSON body: {e}")
            return web.Response(status=400, text=f"invalid JSON body: {e}")

        try:
            review = AdmissionReview.model_validate(body)
        except ValidationError as e:
            logger.warning(f"Rejected malformed AdmissionReview: {e}")
            return web.Response(status=400, text=f"malformed AdmissionReview: {e}")

        admission = review.request
        set_correlation_id(generate_correlation_id())

        tracer = get_tracer(__name__)
        with tracer.start_as_current_span(
            "admission_review",
            context=extract_trace_context(request.headers),
            kind=SpanKind.SERVER,
            attributes={
                "k8s.namespace": admission.namespace or "",
                "k8s.resource.type": admission.kind.kind,
                "admission.uid": admission.uid,
                "admission.operation": admission.operation,
            },
        ) as span:
            response = self.mutator.admit(admission)
            result = _result_of(response)
            span.set_attribute("admission.result", result)
            if response.allowed:
                span.set_status(Status(StatusCode.OK))
            else:
                span.set_status(Status(StatusCode.ERROR, response.status.message))

        self.metrics.record_admission(
            kind=admission.kind.kind,
            operation=admission.operation,
            result=result,
            duration=time.time() - start_time,
        )
        self.logger.log_admission_decision(
            uid=admission.uid,
            resource_name=_object_name(admission),
            namespace=admission.namespace,
            outcome=result,
            patch_operations=len(response.patch or []),
            reason=response.status.message if response.status else None,
        )

        return web.json_response(review.respond(response))

    async def start(self) -> None:
        """Start serving admission requests."""
        ssl_context = self._ssl_context()

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(
            self.runner, self.host, self.port, ssl_context=ssl_context
        )
        await self.site.start()

        scheme = "https" if ssl_context else "http"
        logger.info(
            f"Admission webhook listening on {scheme}://{self.host}:{self.port}{self.path}"
        )

    async def stop(self) -> None:
        """Stop serving admission requests."""
        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("Admission webhook server stopped")
