"""
Shared utilities for bucketgate.

This package aggregates common building blocks consumed by the limiter:

- config: Limiter configuration via pydantic-settings
- logging: Structured logging with bucket correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Do not import from service_* packages into shared/.
"""
