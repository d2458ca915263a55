"""
Unit tests for shared errors, metrics and configuration.
"""

import pytest

from shared.config import get_config
from shared.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from shared.logging import request_id_var, set_request_id
from shared.metrics import MetricsCollector


class TestErrors:
    """Test cases for error types."""

    @pytest.mark.parametrize("error,status,code", [
        (AuthenticationError(), 401, "AUTHENTICATION_ERROR"),
        (AuthorizationError(), 403, "AUTHORIZATION_ERROR"),
        (ValidationError(), 400, "VALIDATION_ERROR"),
        (NotFoundError(), 404, "NOT_FOUND"),
        (ConflictError(), 409, "CONFLICT"),
        (ServiceError(), 500, "SERVICE_ERROR"),
        (ExternalServiceError("postgres"), 502, "EXTERNAL_SERVICE_ERROR"),
    ])
    def test_status_codes(self, error, status, code):
        """Test each error maps to its HTTP status and code."""
        assert error.status_code == status
        assert error.code == code

    def test_response_carries_request_id(self):
        """Test error responses include the current request id."""
        token = request_id_var.set(None)
        try:
            set_request_id("req-42")
            response = NotFoundError("Listing not found", details={"listing_id": "P1"}).to_response()
        finally:
            request_id_var.reset(token)

        assert response.request_id == "req-42"
        assert response.details == {"listing_id": "P1"}

    def test_external_service_message(self):
        """Test the failing dependency is named in the message."""
        assert ExternalServiceError("postgres", "timeout").message == "postgres: timeout"


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    def test_collectors_are_isolated(self):
        """Test two collectors in one process do not share series."""
        first = MetricsCollector("listings")
        second = MetricsCollector("listings")

        first.increment_counter("cache_hits_total", cache_type="listing")

        assert first.registry.get_sample_value("cache_hits_total", {"cache_type": "listing"}) == 1.0
        assert second.registry.get_sample_value("cache_hits_total", {"cache_type": "listing"}) is None

    def test_record_http_request(self):
        """Test request counters and histograms are labelled by route."""
        metrics = MetricsCollector("listings")

        metrics.record_http_request("GET", "/properties/{listing_id}", 200, 0.01)

        assert metrics.registry.get_sample_value(
            "http_requests_total",
            {"method": "GET", "endpoint": "/properties/{listing_id}", "status_code": "200"},
        ) == 1.0

    def test_unknown_metric_ignored(self):
        """Test incrementing an unregistered metric is a no-op."""
        MetricsCollector("listings").increment_counter("no_such_metric", label="x")

    def test_render(self):
        """Test exposition output contains service info."""
        assert b"service_info" in MetricsCollector("listings").render()


class TestConfig:
    """Test cases for configuration."""

    def test_defaults(self, monkeypatch):
        """Test defaults apply when no environment is set."""
        monkeypatch.delenv("LISTINGS_CACHE_DEFAULT_TTL", raising=False)
        config = get_config("listings", 5000)

        assert config.cache_default_ttl == 3600
        assert config.search_max_limit == 100
        assert config.invalidate_filter_options_on_write is False

    def test_environment_overrides(self, monkeypatch):
        """Test LISTINGS_ prefixed variables are read."""
        monkeypatch.setenv("LISTINGS_CACHE_DEFAULT_TTL", "120")
        monkeypatch.setenv("LISTINGS_INVALIDATE_FILTER_OPTIONS_ON_WRITE", "true")

        config = get_config("listings", 5000)

        assert config.cache_default_ttl == 120
        assert config.invalidate_filter_options_on_write is True
