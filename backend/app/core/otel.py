"""OpenTelemetry tracing; metrics are served by Prometheus at /metrics"""
import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from app.core.config import settings

logger = logging.getLogger(__name__)

# Health checks and scrapes are not traced
EXCLUDED_URLS = "/health,/metrics"


def initialize_tracing() -> bool:
    """Export spans to the OTLP collector, if one is configured"""
    if not settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        return False

    try:
        provider = TracerProvider(resource=Resource.create({
            "service.name": settings.OTEL_SERVICE_NAME,
            "deployment.environment": settings.OTEL_ENVIRONMENT
        }))
        provider.add_span_processor(BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True)
        ))
        trace.set_tracer_provider(provider)
        return True
    except Exception as e:
        logger.warning(f"Failed to initialize OpenTelemetry tracing: {e}")
        return False


def instrument_app(app, engine) -> None:
    """Trace HTTP requests and database queries"""
    FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)
    try:
        SQLAlchemyInstrumentor().instrument(engine=engine)
    except Exception as e:
        logger.warning(f"Failed to instrument SQLAlchemy: {e}")
