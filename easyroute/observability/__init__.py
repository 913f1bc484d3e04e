"""Observability helpers.

structlog configuration, request-id tracing middleware, and an in-memory
dispatch metrics snapshot served from the debug endpoints.
"""
