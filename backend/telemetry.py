# telemetry.py — OpenTelemetry tracing for TaskFlow
"""
Traces the HTTP API and its SQL. The WebSocket endpoint and the health
check are not traced.

Off unless OTEL_EXPORTER_OTLP_ENDPOINT is set and the ``telemetry`` extra
is installed.
"""
import os
import logging

logger = logging.getLogger("taskflow.telemetry")

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "taskflow-api")
SERVICE_VERSION = "1.0.0"

# Regexes matched against the request URL by the FastAPI instrumentation
EXCLUDED_URLS = ("/api/health$", "/ws$")


def excluded_urls() -> str:
    return ",".join(EXCLUDED_URLS)


def resource_attributes(app=None) -> dict:
    attributes = {
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "deployment.environment": os.getenv("ENVIRONMENT", "development"),
    }
    gateway = getattr(getattr(app, "state", None), "gateway", None)
    if gateway is not None:
        attributes["taskflow.broadcast.backend"] = type(gateway.backend).__name__
    return attributes


def setup_telemetry(app=None):
    """Install a tracer provider exporting over OTLP and instrument the app and engine.

    Returns the provider, or None when tracing stays off.
    """
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")
    if not endpoint:
        logger.info("Tracing off (OTEL_EXPORTER_OTLP_ENDPOINT not set)")
        return None

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError:
        logger.warning("Tracing requested but the telemetry extra is not installed")
        return None

    from database import engine

    provider = TracerProvider(resource=Resource.create(resource_attributes(app)))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
    trace.set_tracer_provider(provider)

    if app is not None:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=excluded_urls(), tracer_provider=provider)
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=provider)

    logger.info(f"Tracing {SERVICE_NAME} to {endpoint} (excluding {excluded_urls()})")
    return provider
