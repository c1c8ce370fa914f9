"""Tests for tracing setup"""
import pytest
from unittest.mock import MagicMock, patch
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from app.core import telemetry
from app.core.config import config


class TestBuildTracerProvider:
    """Provider configuration"""

    def test_spans_carry_service_identity(self):
        exporter = InMemorySpanExporter()
        provider = telemetry.build_tracer_provider(exporter)

        with provider.get_tracer("test").start_as_current_span("increment_downloads"):
            pass
        provider.force_flush()

        spans = exporter.get_finished_spans()
        assert [s.name for s in spans] == ["increment_downloads"]
        assert spans[0].resource.attributes["service.name"] == config.service_name
        assert spans[0].resource.attributes["service.version"] == config.service_version
        provider.shutdown()


class TestInstrumentApp:
    """Instrumentation switch"""

    def test_disabled_by_configuration(self, monkeypatch):
        monkeypatch.setattr(config, "enable_tracing", False)

        with patch.object(telemetry, "FastAPIInstrumentor") as fastapi_instrumentor, \
                patch.object(telemetry, "build_tracer_provider") as build:
            telemetry.instrument_app(MagicMock())

        build.assert_not_called()
        fastapi_instrumentor.instrument_app.assert_not_called()

    def test_instruments_with_configured_provider(self, monkeypatch):
        monkeypatch.setattr(config, "enable_tracing", True)
        provider = MagicMock()
        app = MagicMock()

        with patch.object(telemetry, "build_tracer_provider", return_value=provider), \
                patch.object(telemetry, "trace") as mock_trace, \
                patch.object(telemetry, "FastAPIInstrumentor") as fastapi_instrumentor, \
                patch.object(telemetry, "PymongoInstrumentor") as pymongo_instrumentor:
            telemetry.instrument_app(app)

        mock_trace.set_tracer_provider.assert_called_once_with(provider)
        fastapi_instrumentor.instrument_app.assert_called_once_with(app, tracer_provider=provider)
        pymongo_instrumentor.return_value.instrument.assert_called_once_with(tracer_provider=provider)

        telemetry.shutdown_tracing()
        provider.shutdown.assert_called_once()

    def test_failure_is_logged_not_raised(self, monkeypatch):
        monkeypatch.setattr(config, "enable_tracing", True)

        with patch.object(telemetry, "build_tracer_provider", side_effect=RuntimeError("no exporter")), \
                patch.object(telemetry, "logger") as mock_logger:
            telemetry.instrument_app(MagicMock())

        mock_logger.error.assert_called_once()
