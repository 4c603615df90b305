"""Tests for tracing utilities."""

from health_export.config import TracingSettings
from health_export.tracing import setup_tracing, shutdown_tracing


def test_setup_tracing_disabled():
    """Tracing should be disabled when setting is false."""
    assert setup_tracing(TracingSettings(enabled=False)) is False


def test_setup_tracing_exporter_disabled(monkeypatch):
    """Tracing should be disabled when exporter env var is none."""
    monkeypatch.setenv("OTEL_TRACES_EXPORTER", "none")

    settings = TracingSettings(enabled=True, service_name="health-export")
    assert setup_tracing(settings) is False


def test_shutdown_without_provider():
    """Shutdown is a no-op when no SDK provider was installed."""
    shutdown_tracing()


def test_setup_tracing_unknown_exporter(monkeypatch):
    """An unrecognized exporter leaves tracing off."""
    monkeypatch.setenv("OTEL_TRACES_EXPORTER", "zipkin-thrift")

    assert setup_tracing(TracingSettings(enabled=True)) is False
