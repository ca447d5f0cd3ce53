import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # type: ignore[attr-defined]
    OTLPSpanExporter as OTLPGrpcExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[attr-defined]
    OTLPSpanExporter as OTLPHttpExporter,
)
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Span
from opentelemetry.trace import TracerProvider as APITracerProvider

from .config import ServiceSettings

_LOGGER = logging.getLogger(__name__)
_TRACER_NAME = "marketplace"
_SERVICE_NAMESPACE = "marketplace"
_INSTRUMENTED_APPS: set[int] = set()
_HTTPX_INSTRUMENTED = False

_EXPORTERS: dict[str, Callable[[ServiceSettings, str], SpanExporter]] = {
    "grpc": lambda settings, endpoint: OTLPGrpcExporter(
        endpoint=endpoint, insecure=settings.tracing_insecure
    ),
    "http/protobuf": lambda settings, endpoint: OTLPHttpExporter(endpoint=endpoint),
}


def current_trace_ids() -> tuple[str, str] | None:
    """Hex trace and span ids of the active span, or ``None`` outside a span."""

    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x"), format(span_context.span_id, "016x")


def _build_provider(settings: ServiceSettings) -> TracerProvider:
    resource = Resource.create(
        {
            "service.name": settings.app_name,
            "service.namespace": _SERVICE_NAMESPACE,
            "deployment.environment": settings.environment,
        }
    )
    # Child spans follow the sampling decision of their parent.
    sampler = ParentBased(TraceIdRatioBased(settings.tracing_sample_rate))
    provider = TracerProvider(resource=resource, sampler=sampler)

    endpoint = settings.tracing_endpoint
    if endpoint is None:
        _LOGGER.warning(
            "Tracing enabled for %s without an OTLP endpoint; spans stay in process.",
            settings.app_name,
        )
        return provider
    exporter = _EXPORTERS[settings.tracing_protocol](settings, endpoint)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def _active_provider(settings: ServiceSettings) -> APITracerProvider:
    existing = trace.get_tracer_provider()
    if isinstance(existing, TracerProvider):
        return existing
    trace.set_tracer_provider(_build_provider(settings))
    return trace.get_tracer_provider()


def configure_tracing(app: FastAPI, settings: ServiceSettings) -> None:
    """Install the SDK provider once per process and instrument ``app`` and httpx."""

    global _HTTPX_INSTRUMENTED
    if not settings.enable_tracing:
        return

    provider = _active_provider(settings)
    if id(app) not in _INSTRUMENTED_APPS:
        FastAPIInstrumentor().instrument_app(app, tracer_provider=provider)
        _INSTRUMENTED_APPS.add(id(app))
    if not _HTTPX_INSTRUMENTED:
        # Order lookups go out through httpx.
        HTTPXClientInstrumentor().instrument(tracer_provider=provider)
        _HTTPX_INSTRUMENTED = True


@contextmanager
def start_span(name: str, **attributes: Any) -> Iterator[Span]:
    """Open a child span on the marketplace tracer.

    ``None`` attribute values are dropped because OpenTelemetry rejects them.
    Without a configured provider the span is a no-op.
    """

    tracer = trace.get_tracer(_TRACER_NAME)
    clean = {key: value for key, value in attributes.items() if value is not None}
    with tracer.start_as_current_span(name, attributes=clean) as span:
        yield span
