"""
OpenTelemetry distributed tracing for the pod affinity webhook.

This module provides:
- Manual span creation for reconcile passes and admission requests
- Trace context extraction from incoming admission requests
- Kopf handler decorator for automatic span creation

Usage:
    from pod_affinity_webhook.observability.tracing import (
        setup_tracing,
        get_tracer,
        traced_handler,
    )

    setup_tracing(enabled=True)

    @traced_handler("reconcile_registration", resource_type="mutatingwebhookconfiguration")
    async def on_registration_event(name, namespace, **kwargs):
        ...
"""

import asyncio
import functools
import logging
from collections.abc import Callable, Mapping
from contextvars import ContextVar
from typing import ParamSpec, TypeVar

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import SpanKind, Status, StatusCode, Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None
_initialized: bool = False

# None default avoids a shared mutable dict across contexts
_resource_context: ContextVar[dict[str, str] | None] = ContextVar(
    "resource_context", default=None
)

P = ParamSpec("P")
R = TypeVar("R")


def setup_tracing(
    enabled: bool = False,
    endpoint: str = "http://localhost:4317",
    service_name: str = "pod-affinity-webhook",
    sample_rate: float = 1.0,
    insecure: bool = True,
    headers: dict[str, str] | None = None,
    use_simple_processor: bool = False,
) -> TracerProvider | None:
    """
    Initialize OpenTelemetry tracing.

    Args:
        enabled: Enable tracing (if False, returns None and does nothing)
        endpoint: OTLP collector endpoint (gRPC)
        service_name: Service name for traces
        sample_rate: Sampling rate (0.0-1.0, 1.0 = 100% of traces)
        insecure: Use insecure connection (no TLS)
        headers: Additional headers for OTLP exporter
        use_simple_processor: Export spans immediately instead of batching

    Returns:
        TracerProvider if enabled, None otherwise
    """
    global _tracer_provider, _initialized

    if _initialized:
        logger.debug("Tracing already initialized, skipping")
        return _tracer_provider

    if not enabled:
        logger.info("OpenTelemetry tracing is disabled")
        _initialized = True
        return None

    logger.info(
        f"Initializing OpenTelemetry tracing: endpoint={endpoint}, "
        f"service={service_name}, sample_rate={sample_rate}"
    )

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "tekton-pipelines",
            "deployment.environment": "kubernetes",
        }
    )

    # Root spans are sampled by ratio; child spans follow their parent
    sampler = ParentBased(root=TraceIdRatioBased(sample_rate))
    _tracer_provider = TracerProvider(resource=resource, sampler=sampler)

    exporter = OTLPSpanExporter(
        endpoint=endpoint,
        insecure=insecure,
        headers=headers or {},
    )

    if use_simple_processor:
        processor = SimpleSpanProcessor(exporter)
    else:
        processor = BatchSpanProcessor(exporter)
    _tracer_provider.add_span_processor(processor)

    trace.set_tracer_provider(_tracer_provider)

    _initialized = True
    logger.info("OpenTelemetry tracing initialized successfully")

    return _tracer_provider


def shutdown_tracing() -> None:
    """Shutdown tracing and flush any pending spans."""
    global _tracer_provider, _initialized

    if _tracer_provider is not None:
        logger.info("Shutting down OpenTelemetry tracing")
        _tracer_provider.shutdown()
        _tracer_provider = None

    _initialized = False


def get_tracer(name: str = __name__) -> Tracer:
    """Get a tracer instance (no-op if tracing is disabled)."""
    return trace.get_tracer(name)


def extract_trace_context(headers: Mapping[str, str]) -> otel_context.Context:
    """
    Extract W3C trace context from incoming request headers.

    Args:
        headers: Headers of the incoming request

    Returns:
        Context to parent new spans on
    """
    return TraceContextTextMapPropagator().extract(dict(headers))


def set_resource_context(
    namespace: str | None = None,
    name: str | None = None,
    resource_type: str | None = None,
    **kwargs: str,
) -> None:
    """
    Set resource context for the current execution context.

    This context is added to spans created by traced_handler.
    """
    current = _resource_context.get()
    context = current.copy() if current is not None else {}
    if namespace:
        context["k8s.namespace"] = namespace
    if name:
        context["k8s.resource.name"] = name
    if resource_type:
        context["k8s.resource.type"] = resource_type
    context.update(kwargs)
    _resource_context.set(context)


def get_resource_context() -> dict[str, str]:
    current = _resource_context.get()
    return current.copy() if current is not None else {}


def clear_resource_context() -> None:
    _resource_context.set({})


def _span_attributes(
    func: Callable, resource_type: str, kwargs: Mapping
) -> dict[str, str]:
    attributes = {
        "k8s.namespace": kwargs.get("namespace") or "cluster",
        "k8s.resource.name": kwargs.get("name") or "unknown",
        "k8s.resource.type": resource_type,
        "kopf.handler": getattr(func, "__name__", "unknown"),
    }
    attributes.update(get_resource_context())
    return attributes


def traced_handler(
    operation_name: str,
    resource_type: str = "unknown",
    span_kind: SpanKind = SpanKind.INTERNAL,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator for Kopf handlers to automatically create spans.

    The span carries the handler's namespace and name, records raised
    exceptions and sets its status from the outcome.

    Args:
        operation_name: Name of the operation (e.g., "reconcile_registration")
        resource_type: Kind of resource the handler deals with
        span_kind: Kind of span (INTERNAL, SERVER, CLIENT, etc.)
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            tracer = get_tracer(func.__module__ or __name__)
            with tracer.start_as_current_span(
                operation_name,
                kind=span_kind,
                attributes=_span_attributes(func, resource_type, kwargs),
            ) as span:
                try:
                    result = await func(*args, **kwargs)
                    span.set_status(Status(StatusCode.OK))
                    return result
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    raise

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            tracer = get_tracer(func.__module__ or __name__)
            with tracer.start_as_current_span(
                operation_name,
                kind=span_kind,
                attributes=_span_attributes(func, resource_type, kwargs),
            ) as span:
                try:
                    result = func(*args, **kwargs)
                    span.set_status(Status(StatusCode.OK))
                    return result
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    raise

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def is_tracing_enabled() -> bool:
    """Check if tracing is currently enabled and initialized."""
    return _initialized and _tracer_provider is not None
