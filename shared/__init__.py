"""
Shared utilities for the Listings Platform.

This package aggregates common building blocks consumed by the services:

- base_service: FastAPI service skeleton with health, metrics and error handlers
- config: Service configuration via pydantic-settings
- logging: Structured logging with request/user correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Do not import from service_* packages into shared/.
"""
