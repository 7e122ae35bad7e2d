"""
Unit tests for errors, settings, metrics and logging.
"""

import io
import logging

import pytest
from prometheus_client import CollectorRegistry

from restcache.config import EngineSettings, get_settings
from restcache.errors import (
    ClientTransportError,
    ConfigurationError,
    ErrorResponse,
    InvalidationWarning,
    RestCacheException,
    TransientTransportError,
    UnresolvedParametersError,
    classify_status,
)
from restcache.logging import (
    add_engine_context,
    bind_operation,
    configure_from_settings,
    configure_logging,
    format_key,
    get_logger,
    operation_id_var,
    render_query_keys,
    request_id_var,
)
from restcache.metrics import MetricsCollector


class TestErrors:
    """Test cases for the error taxonomy."""

    @pytest.mark.parametrize("status,error_type", [
        (400, ClientTransportError),
        (404, ClientTransportError),
        (499, ClientTransportError),
        (500, TransientTransportError),
        (503, TransientTransportError),
    ])
    def test_classify_status(self, status, error_type):
        """Test status classification."""
        error = classify_status(status, "failed")

        assert isinstance(error, error_type)
        assert error.status_code == status
        assert error.details["status_code"] == status

    def test_client_flag(self):
        """Test is_client_error."""
        assert ClientTransportError("bad", 422).is_client_error
        assert not TransientTransportError("down", 502).is_client_error
        assert not TransientTransportError("timeout").is_client_error

    def test_unresolved_parameters_details(self):
        """Test the unresolved-parameters payload."""
        error = UnresolvedParametersError("getPet", "/pets/{petId}", {"petId": None})

        assert error.code == "UNRESOLVED_PARAMETERS"
        assert error.path == "/pets/{petId}"
        assert error.details == {"operation_id": "getPet", "path": "/pets/{petId}", "params": {"petId": None}}
        assert "/pets/{petId}" in str(error)

    def test_to_response(self):
        """Test conversion to the error response model."""
        response = ConfigurationError("wrong verb", details={"method": "GET"}).to_response()

        assert isinstance(response, ErrorResponse)
        assert response.code == "CONFIGURATION_ERROR"
        assert response.message == "wrong verb"
        assert response.details == {"method": "GET"}

    def test_hierarchy(self):
        """Test that every error derives from the base exception."""
        for error in (
            ConfigurationError(),
            ClientTransportError(),
            TransientTransportError(),
            InvalidationWarning("createPet", "skipped"),
        ):
            assert isinstance(error, RestCacheException)


class TestSettings:
    """Test cases for EngineSettings."""

    def test_defaults(self, monkeypatch):
        """Test default values."""
        monkeypatch.delenv("RESTCACHE_STALE_TIME", raising=False)
        settings = EngineSettings(_env_file=None)

        assert settings.request_timeout == 10.0
        assert settings.stale_time == 60.0
        assert settings.gc_time == 300.0
        assert settings.max_retries == 3
        assert settings.exclude_prefix == "_deprecated"
        assert settings.log_format == "json"

    def test_environment_prefix(self, monkeypatch):
        """Test RESTCACHE_ environment variables."""
        monkeypatch.setenv("RESTCACHE_BASE_URL", "https://api.example.com")
        monkeypatch.setenv("RESTCACHE_MAX_RETRIES", "1")

        settings = get_settings()

        assert settings.base_url == "https://api.example.com"
        assert settings.max_retries == 1

    def test_overrides(self):
        """Test explicit overrides."""
        assert get_settings(stale_time=5).stale_time == 5.0

    def test_validation(self):
        """Test that invalid values are rejected."""
        with pytest.raises(ValueError):
            EngineSettings(request_timeout=0)


class TestMetrics:
    """Test cases for MetricsCollector."""

    def test_counters_and_histograms(self):
        """Test recording into an isolated registry."""
        registry = CollectorRegistry()
        metrics = MetricsCollector(registry=registry)

        metrics.increment_counter("invalidations_total", operation="createPet", kind="own")
        metrics.increment_counter("invalidations_total", operation="createPet", kind="own")
        with metrics.time_request("listPets", "GET"):
            pass

        assert registry.get_sample_value(
            "restcache_invalidations_total", {"operation": "createPet", "kind": "own"}
        ) == 2.0
        assert registry.get_sample_value(
            "restcache_request_duration_seconds_count", {"operation": "listPets", "method": "GET"}
        ) == 1.0

    def test_unknown_metric_is_ignored(self):
        """Test that unknown names are a no-op."""
        metrics = MetricsCollector(registry=CollectorRegistry())

        metrics.increment_counter("nope", operation="x")

        assert metrics.get_metric("nope") is None
        assert metrics.get_metric("requests_total") is not None

    def test_collectors_do_not_clash(self):
        """Test that two collectors can coexist."""
        MetricsCollector()
        MetricsCollector()


class TestLogging:
    """Test cases for structured logging."""

    def test_bind_operation_scopes_context(self):
        """Test correlation context is set and restored."""
        with bind_operation("getPet", request_id="req-1") as request_id:
            assert request_id == "req-1"
            assert operation_id_var.get() == "getPet"
            assert request_id_var.get() == "req-1"

        assert operation_id_var.get() is None
        assert request_id_var.get() is None

    def test_nested_binding_inherits_request_id(self):
        """Test that inner engine calls keep the outer request id."""
        with bind_operation("updatePet") as outer:
            with bind_operation("getPet") as inner:
                assert inner == outer
                assert operation_id_var.get() == "getPet"
            assert operation_id_var.get() == "updatePet"

    @pytest.mark.parametrize("key,expected", [
        (["pets", "1"], "pets/1"),
        (["pets", {"status": "sold", "limit": 5}], "pets?limit=5&status=sold"),
        ([], ""),
        ("pets", "pets"),
    ])
    def test_format_key(self, key, expected):
        """Test compact key rendering."""
        assert format_key(key) == expected

    def test_processors_render_context(self):
        """Test the engine-specific processors."""
        with bind_operation("listPets", request_id="req-2"):
            event = add_engine_context(None, "info", {"event": "Fetching"})
        event = render_query_keys(None, "info", {**event, "key": ["pets", {"limit": 5}]})

        assert event["operation_id"] == "listPets"
        assert event["request_id"] == "req-2"
        assert event["key"] == "pets?limit=5"

    @pytest.mark.parametrize("log_format", ["json", "console"])
    def test_configure_logging(self, log_format):
        """Test that both renderers configure and log."""
        stream = io.StringIO()
        configure_logging("debug", log_format, stream=stream)

        with bind_operation("getPet", request_id="req-3"):
            get_logger("restcache.test").info("Fetching", key=["pets", "1"])

        output = stream.getvalue()
        assert "Fetching" in output
        assert "req-3" in output
        assert "pets/1" in output

    def test_configure_from_settings(self):
        """Test applying settings."""
        configure_from_settings(EngineSettings(log_level="warning", log_format="console"))

        assert logging.getLogger().level == logging.WARNING
