"""Request tracing for the FastAPI services, off unless `otel_enabled` is set."""

from fastapi import FastAPI
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter

from paylink.common.config import settings
from paylink.common.logging import logger

UNTRACED_ROUTES = "health,metrics"


def build_tracer_provider(service_name: str, exporter: SpanExporter | None = None) -> TracerProvider:
    """Ship spans to the OTLP collector in batches, or straight to `exporter` when given."""

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if exporter is None:
        otlp = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(otlp))
    else:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    return provider


def configure_tracing(
    app: FastAPI,
    service_name: str,
    enabled: bool | None = None,
    exporter: SpanExporter | None = None,
) -> TracerProvider | None:
    """Open a server span for every request `app` handles.

    Returns the provider the spans go to, or None when tracing is disabled.
    Health and scrape routes are never traced.
    """

    if not (settings.otel_enabled if enabled is None else enabled):
        return None
    provider = build_tracer_provider(service_name, exporter)
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls=UNTRACED_ROUTES)
    logger.info("tracing enabled service=%s", service_name)
    return provider
