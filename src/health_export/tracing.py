"""OpenTelemetry tracing for fetch and export runs."""

from __future__ import annotations

import os

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanProcessor,
)

from .config import TracingSettings

logger = structlog.get_logger(__name__)


def _span_processor(exporter_name: str) -> SpanProcessor | None:
    if exporter_name == "otlp":
        return BatchSpanProcessor(OTLPSpanExporter())
    if exporter_name == "console":
        # Export synchronously; a CLI run may exit before a batch flushes
        return SimpleSpanProcessor(ConsoleSpanExporter())
    return None


def setup_tracing(settings: TracingSettings) -> bool:
    """Install a tracer provider for the run.

    The exporter is chosen by ``OTEL_TRACES_EXPORTER``: ``otlp`` (default),
    ``console``, or ``none``.

    Returns:
        True if tracing was configured, False otherwise.
    """
    if not settings.enabled:
        logger.info("tracing_disabled")
        return False

    exporter_name = os.getenv("OTEL_TRACES_EXPORTER", "otlp").strip().lower()
    if exporter_name in {"none", ""}:
        logger.info("tracing_exporter_disabled")
        return False

    processor = _span_processor(exporter_name)
    if processor is None:
        logger.warning("tracing_exporter_unknown", exporter=exporter_name)
        return False

    from . import __version__

    resource = Resource.create(
        {"service.name": settings.service_name, "service.version": __version__}
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
    logger.info(
        "tracing_configured",
        exporter=exporter_name,
        service_name=settings.service_name,
    )
    return True


def shutdown_tracing() -> None:
    """Flush pending spans before the process exits."""
    provider = trace.get_tracer_provider()
    shutdown = getattr(provider, "shutdown", None)
    if callable(shutdown):
        shutdown()
