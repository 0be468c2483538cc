"""
Shared utilities for the content cache proxy.

This package aggregates the service plumbing:

- config: Service settings via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI app bootstrap, middleware and error handlers

Do not import from service packages into shared/.
"""
