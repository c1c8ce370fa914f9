"""
OpenTelemetry tracing for the FastAPI app and the MongoDB driver.

Spans are batched and exported over OTLP/HTTP to OTEL_EXPORTER_OTLP_ENDPOINT.
Set ENABLE_TRACING=false to run without tracing.
"""

from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.pymongo import PymongoInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from app.core.config import config
from app.core.logger import logger

_tracer_provider: Optional[TracerProvider] = None


def build_tracer_provider(exporter: Optional[SpanExporter] = None) -> TracerProvider:
    """Tracer provider tagged with the service identity, exporting in batches"""
    resource = Resource.create({
        "service.name": config.service_name,
        "service.version": config.service_version,
        "deployment.environment": config.environment,
    })
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(exporter or OTLPSpanExporter(endpoint=config.otel_exporter_otlp_endpoint))
    )
    return provider


def instrument_app(app):
    """Install the tracer provider and instrument FastAPI and PyMongo"""
    global _tracer_provider

    if not config.enable_tracing:
        logger.info("Tracing disabled by configuration", metadata={"event": "telemetry_disabled"})
        return

    try:
        _tracer_provider = build_tracer_provider()
        trace.set_tracer_provider(_tracer_provider)
        FastAPIInstrumentor.instrument_app(app, tracer_provider=_tracer_provider)
        PymongoInstrumentor().instrument(tracer_provider=_tracer_provider)
        logger.info(
            f"Tracing initialized with endpoint: {config.otel_exporter_otlp_endpoint}",
            metadata={"event": "telemetry_instrumented"}
        )
    except Exception as e:
        # Tracing is optional; the service runs without it
        logger.error("Failed to initialize tracing", error=e, metadata={"event": "telemetry_error"})


def shutdown_tracing() -> None:
    """Flush pending spans"""
    global _tracer_provider
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
        _tracer_provider = None
