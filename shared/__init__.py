"""
Shared utilities for the identity validation service.

This package aggregates common building blocks:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- errors: Canonical error types and responses
- retry: Retry decorator for outbound calls
- circuit_breaker: Protection for calls to the identity provider
- base_service: FastAPI host with health checks and request context

Do not import from service_* packages into shared/.
"""
