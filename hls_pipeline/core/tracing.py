"""OpenTelemetry tracing for transcode runs.

A run is one ``hls.transcode`` span. Fetch, each tier's encode, the master
manifest and the upload batch are ``hls.<stage>`` children, so a slow or
failing stage is visible in the trace of its source object. Webhook
requests get a server span from the middleware.

Spans are created even when no exporter is configured; their ids still
reach the logs through the structured formatter.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from opentelemetry import trace
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.trace import Span, SpanContext, SpanKind, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

TRACER_NAME = "hls_pipeline"
ATTRIBUTE_PREFIX = "hls."


def _otlp_exporter(endpoint: str) -> Optional[SpanExporter]:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        logger.warning("OTLP exporter not installed, spans will not be exported", extra={"endpoint": endpoint})
        return None
    return OTLPSpanExporter(endpoint=endpoint)


def setup_tracing(
    service_name: str,
    service_version: str,
    environment: str = "development",
    otlp_endpoint: Optional[str] = None,
    enable_console_export: bool = False,
) -> TracerProvider:
    """Install the global tracer provider for the API process or a worker.

    Args:
        service_name: Name reported on every span
        service_version: Version reported on every span
        environment: Deployment environment attribute
        otlp_endpoint: OTLP gRPC collector; spans are exported there when set
        enable_console_export: Also print finished spans, for debugging

    Returns:
        The installed provider
    """
    provider = TracerProvider(resource=Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
        "deployment.environment": environment,
    }))

    exporters: list[SpanExporter] = []
    if otlp_endpoint:
        exporter = _otlp_exporter(otlp_endpoint)
        if exporter is not None:
            exporters.append(exporter)
    if enable_console_export:
        exporters.append(ConsoleSpanExporter())
    for exporter in exporters:
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    set_global_textmap(TraceContextTextMapPropagator())

    logger.info(
        "Tracing initialized",
        extra={
            "service": service_name,
            "service_version": service_version,
            "exporters": [type(exporter).__name__ for exporter in exporters],
        },
    )
    return provider


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


def _active_context() -> Optional[SpanContext]:
    context = trace.get_current_span().get_span_context()
    return context if context.is_valid else None


def get_trace_id() -> Optional[str]:
    """Hex trace id of the active span, or None outside any span."""
    context = _active_context()
    return format(context.trace_id, "032x") if context else None


def get_span_id() -> Optional[str]:
    context = _active_context()
    return format(context.span_id, "016x") if context else None


@contextmanager
def create_span(
    name: str,
    attributes: Optional[dict] = None,
    kind: SpanKind = SpanKind.INTERNAL,
) -> Iterator[Span]:
    """Open ``name`` as the current span for the duration of the block."""
    with get_tracer().start_as_current_span(name, kind=kind, attributes=attributes or {}) as span:
        yield span


@contextmanager
def stage_span(stage: str, kind: SpanKind = SpanKind.INTERNAL, **attributes: Any) -> Iterator[Span]:
    """Open an ``hls.<stage>`` span.

    Keyword attributes are namespaced under ``hls.`` and ``None`` values are
    dropped:

        with stage_span("encode", tier="720p"):
            ...
    """
    namespaced = {
        f"{ATTRIBUTE_PREFIX}{key}": value
        for key, value in attributes.items()
        if value is not None
    }
    with create_span(f"{ATTRIBUTE_PREFIX}{stage}", namespaced, kind) as span:
        yield span


def add_span_attributes(attributes: dict) -> None:
    span = trace.get_current_span()
    for key, value in attributes.items():
        span.set_attribute(key, value)


def record_exception(exception: BaseException, attributes: Optional[dict] = None) -> None:
    """Attach an exception to the active span and mark the span failed."""
    span = trace.get_current_span()
    span.record_exception(exception, attributes=attributes)
    span.set_status(Status(StatusCode.ERROR, str(exception)))
