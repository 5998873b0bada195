"""
Tests for observability/logging.py and observability/tracing.py.

Covers:
- LoggingConfig per mode
- setup_logging applied by create_app
- Trace context and service processors
- Request-scoped context binding
- create_span error recording
"""
import logging

import pytest
import structlog
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider

from config import DeploymentMode
from observability.logging import (
    LogContext,
    LoggingConfig,
    add_service_context,
    add_trace_context,
    bind_context,
    clear_context,
    setup_logging,
)
from observability.tracing import create_span


class TestLoggingConfig:
    """Tests for LoggingConfig.for_mode."""

    def test_production_logs_json_at_warning(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        config = LoggingConfig.for_mode(DeploymentMode.PRODUCTION)
        assert config.json_format
        assert config.level == "WARNING"
        assert config.environment == "production"

    def test_development_logs_console_at_info(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        config = LoggingConfig.for_mode(DeploymentMode.DEVELOPMENT)
        assert not config.json_format
        assert config.level == "INFO"


class TestSetupLogging:
    """Tests for setup_logging and the configuration create_app applies."""

    @pytest.fixture(autouse=True)
    def restore_logging(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        yield
        setup_logging(LoggingConfig())

    def test_production_app_logs_json_at_warning(self, make_app):
        make_app(DeploymentMode.PRODUCTION)
        assert logging.getLogger().level == logging.WARNING
        assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)

    def test_development_app_logs_console_at_info(self, make_app):
        make_app(DeploymentMode.PRODUCTION)
        make_app(DeploymentMode.DEVELOPMENT)
        assert logging.getLogger().level == logging.INFO
        assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)

    def test_setup_without_config_keeps_existing(self):
        setup_logging(LoggingConfig(level="ERROR"))
        setup_logging()
        assert logging.getLogger().level == logging.ERROR


class TestProcessors:
    """Tests for the custom structlog processors."""

    def test_service_context(self):
        processor = add_service_context("logetogo-api", "test")
        event = processor(None, "info", {"event": "hello"})
        assert event["service"] == "logetogo-api"
        assert event["environment"] == "test"

    def test_trace_context_inside_span(self):
        tracer = TracerProvider().get_tracer("tests")
        with tracer.start_as_current_span("request") as span:
            event = add_trace_context(None, "info", {"event": "hello"})
            expected = format(span.get_span_context().trace_id, "032x")
        assert event["trace_id"] == expected
        assert len(event["span_id"]) == 16

    def test_no_trace_context_outside_span(self):
        assert "trace_id" not in add_trace_context(None, "info", {"event": "hello"})


class TestContextBinding:
    """Tests for request-scoped context variables."""

    def test_bind_and_clear(self):
        bind_context(request_id="req-1")
        assert structlog.contextvars.get_contextvars()["request_id"] == "req-1"
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_log_context_restores(self):
        with LogContext(listing_id="p-9"):
            assert structlog.contextvars.get_contextvars()["listing_id"] == "p-9"
        assert "listing_id" not in structlog.contextvars.get_contextvars()


class TestCreateSpan:
    """Tests for create_span."""

    def test_exception_is_recorded_and_reraised(self):
        with pytest.raises(ValueError):
            with create_span("db.ping", attributes={"db.system": "sqlite"}) as span:
                raise ValueError("boom")
        assert span is not None
        assert trace.get_current_span() is not span
