"""
Shared utilities for the BR Visibility extension.

This package aggregates common building blocks consumed by the engine
and its settings surface:

- config: Service configuration via pydantic-settings
- logging: Structured logging with run correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Backoff configuration for host initialization
- test_helpers: Deterministic timer and document factories for tests

Any cross-module logic should live here to avoid import cycles. Do not
import from service_* packages into shared/.
"""
